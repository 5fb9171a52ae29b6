from collections import namedtuple
from typing import Iterator, List, Optional

from stage_timing import Stage, PIPELINE_STAGES

CycleEvent = namedtuple('CycleEvent', ['cycle', 'stage', 'hazard'])


class TimelineEntry:
    """Per-cycle view of one scheduled instruction."""

    def __init__(self, scheduled):
        self.index = scheduled.index
        self.instruction = scheduled.instruction
        self.intervals = scheduled.intervals
        self.forwarding_paths = tuple(scheduled.forwarding_paths)

    def __repr__(self):
        return f"TimelineEntry(index={self.index}, instruction={self.instruction!r})"

    def __iter__(self):
        return self.events()

    def events(self) -> Iterator[CycleEvent]:
        """Yield stall cycles then occupied cycles for each stage, in cycle order."""
        for stage in PIPELINE_STAGES:
            interval = self.intervals[stage]
            cycle = interval.start - interval.stalls_before
            for hazard in interval.hazards:
                for _ in range(hazard.stall_cycles):
                    yield CycleEvent(cycle, Stage.STALL, hazard)
                    cycle += 1
            if cycle != interval.start:
                raise AssertionError(
                    f"instruction {self.index}: stalls before {stage.value} do not add up "
                    f"({interval.stalls_before} recorded, {cycle - interval.start + interval.stalls_before} attributed)")
            for cycle in range(interval.start, interval.end + 1):
                yield CycleEvent(cycle, stage, None)

    @property
    def first_cycle(self):
        fetch = self.intervals[Stage.FETCH]
        return fetch.start - fetch.stalls_before

    @property
    def last_cycle(self):
        return self.intervals[Stage.WRITEBACK].end

    @property
    def hazards(self):
        return tuple(h for stage in PIPELINE_STAGES for h in self.intervals[stage].hazards)

    @property
    def stall_cycles(self):
        return sum(self.intervals[stage].stalls_before for stage in PIPELINE_STAGES)

    def stage_entry_cycle(self, stage) -> int:
        return self.intervals[stage].start

    def event_at(self, cycle) -> Optional[CycleEvent]:
        for event in self.events():
            if event.cycle == cycle:
                return event
            if event.cycle > cycle:
                break
        return None

    def forwarding_at(self, cycle, stage=None):
        return [path for path in self.forwarding_paths
                if path.cycle == cycle and (stage is None or path.to_stage == stage)]

    def check_contiguous(self):
        expected = None
        for event in self.events():
            if expected is not None and event.cycle != expected:
                raise AssertionError(
                    f"instruction {self.index}: expected cycle {expected}, got {event.cycle}")
            expected = event.cycle + 1
        return True


def project_timeline(result) -> List[TimelineEntry]:
    """Flatten a simulation result into per-instruction cycle event sequences."""
    entries = []
    for scheduled in result.timeline:
        entry = TimelineEntry(scheduled)
        entry.check_contiguous()
        entries.append(entry)
    return entries


def stage_occupancy(entries):
    """For each cycle, the instruction indices in every stage (and stalled)."""
    total = max((entry.last_cycle for entry in entries), default=0)
    log = [{stage: [] for stage in PIPELINE_STAGES + (Stage.STALL,)} for _ in range(total)]
    for entry in entries:
        for event in entry.events():
            log[event.cycle - 1][event.stage].append(entry.index)
    return log
