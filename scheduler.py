from enum import Enum
from collections import namedtuple
from types import MappingProxyType
from typing import Dict, List, Optional

from instructions import register_operands, register_sets
from stage_timing import Stage, StageTiming, PIPELINE_STAGES


class HazardType(Enum):
    RAW = "RAW"
    STRUCTURAL = "Structural"


HAZARD_TYPES = (HazardType.RAW, HazardType.STRUCTURAL)


class StructuralHazard(namedtuple('StructuralHazard', ['producer_index', 'consumer_index', 'stall_cycles'])):
    """Predecessor has not yet vacated the stage the consumer wants to enter."""
    __slots__ = ()
    type = HazardType.STRUCTURAL
    register = None


class RAWHazard(namedtuple('RAWHazard', ['register', 'producer_index', 'consumer_index', 'stall_cycles'])):
    """Consumer waits for a register value the producer has not yet made available."""
    __slots__ = ()
    type = HazardType.RAW


# from_stage is the producer stage occupying the cycle before use; None when that cycle is a stall gap
ForwardingPath = namedtuple('ForwardingPath', ['producer_index', 'consumer_index', 'register',
                                               'from_stage', 'to_stage', 'cycle'])

StageInterval = namedtuple('StageInterval', ['start', 'end', 'stalls_before', 'hazards'])


class ScheduledInstruction(namedtuple('ScheduledInstruction', ['index', 'instruction', 'intervals',
                                                               'forwarding_paths'])):
    __slots__ = ()

    @property
    def hazards(self):
        return tuple(h for stage in PIPELINE_STAGES for h in self.intervals[stage].hazards)

    @property
    def first_cycle(self):
        fetch = self.intervals[Stage.FETCH]
        return fetch.start - fetch.stalls_before

    @property
    def last_cycle(self):
        return self.intervals[Stage.WRITEBACK].end


class SimulationResult(namedtuple('SimulationResult', ['timeline', 'hazards', 'forwarding_paths',
                                                       'forwarding_enabled'])):
    __slots__ = ()

    def paths_for(self, consumer_index):
        return tuple(p for p in self.forwarding_paths if p.consumer_index == consumer_index)

    @property
    def total_cycles(self):
        return max((entry.last_cycle for entry in self.timeline), default=0)


def stage_at(intervals, cycle) -> Optional[Stage]:
    """Stage occupying `cycle`, or None when the cycle is a stall or outside the run."""
    for stage in PIPELINE_STAGES:
        interval = intervals[stage]
        if interval.start <= cycle <= interval.end:
            return stage
    return None


class PipelineScheduler:
    def __init__(self, latencies, forwarding=False, write_before_read_same_cycle=True):
        self.timing = StageTiming(latencies, write_before_read_same_cycle=write_before_read_same_cycle)
        self.forwarding = bool(forwarding)

    def hazardous_registers(self, instruction, stage) -> List[str]:
        """Registers the instruction must have resolved before entering `stage`."""
        read_operands, _ = register_operands(instruction)
        regs = []
        for operand in read_operands:
            reg = getattr(instruction, operand)
            if not reg or reg in regs:
                continue
            if self.timing.operand_read_stage(instruction.type, operand, self.forwarding) == stage:
                regs.append(reg)
        return regs

    def result_available_cycle(self, producer: ScheduledInstruction) -> Optional[int]:
        instr_type = producer.instruction.type
        cycle = self.timing.result_available_cycle(instr_type, producer.intervals, self.forwarding)
        if cycle is None:
            return None
        stage = stage_at(producer.intervals, cycle)
        if stage is None:
            raise AssertionError(f"cycle {cycle} of instruction {producer.index} lies outside every stage")
        # Register file writes in the first half of a cycle and reads in the second
        if stage == Stage.WRITEBACK and self.timing.read_before_write_same_cycle():
            cycle -= 1
        return cycle

    def run(self, instructions) -> SimulationResult:
        timeline: List[ScheduledInstruction] = []
        hazards = []
        forwarding_paths = []
        last_writer: Dict[str, int] = {}

        for i, instruction in enumerate(instructions):
            prev = timeline[i - 1] if i > 0 else None
            intervals = {}
            consumer_paths = []

            # Fetch issues one per cycle behind the predecessor's fetch
            current_cycle = prev.intervals[Stage.FETCH].end + 1 if prev else 1

            for stage_idx, stage in enumerate(PIPELINE_STAGES):
                start = current_cycle
                stall_cycles = 0
                stage_hazards = []

                # Structural hazard: predecessor must have moved on to the next stage
                if prev is not None and stage_idx + 1 < len(PIPELINE_STAGES):
                    next_stage_start = prev.intervals[PIPELINE_STAGES[stage_idx + 1]].start
                    if start < next_stage_start:
                        hazard = StructuralHazard(producer_index=i - 1, consumer_index=i,
                                                  stall_cycles=next_stage_start - start)
                        stall_cycles += hazard.stall_cycles
                        start = next_stage_start
                        stage_hazards.append(hazard)

                # RAW hazard: nearest in-flight writer of each register needed here
                for reg in self.hazardous_registers(instruction, stage):
                    producer_index = last_writer.get(reg)
                    if producer_index is None:
                        continue
                    producer = timeline[producer_index]
                    if producer.intervals[Stage.WRITEBACK].end < start:
                        continue

                    available = self.result_available_cycle(producer)
                    if available is not None and available >= start:
                        hazard = RAWHazard(register=reg, producer_index=producer_index,
                                           consumer_index=i, stall_cycles=available - start + 1)
                        stall_cycles += hazard.stall_cycles
                        start = available + 1
                        stage_hazards.append(hazard)

                    if self.forwarding:
                        consumer_paths.append(ForwardingPath(
                            producer_index=producer_index,
                            consumer_index=i,
                            register=reg,
                            from_stage=stage_at(producer.intervals, start - 1),
                            to_stage=stage,
                            cycle=start,
                        ))

                duration = self.timing.stage_cost(instruction.type, stage)
                intervals[stage] = StageInterval(start=start, end=start + duration - 1,
                                                 stalls_before=stall_cycles, hazards=tuple(stage_hazards))
                hazards.extend(stage_hazards)
                current_cycle = intervals[stage].end + 1

            _, write_set = register_sets(instruction)
            for reg in write_set:
                last_writer[reg] = i

            forwarding_paths.extend(consumer_paths)
            timeline.append(ScheduledInstruction(
                index=i,
                instruction=instruction,
                intervals=MappingProxyType(intervals),
                forwarding_paths=tuple(consumer_paths),
            ))

        return SimulationResult(
            timeline=tuple(timeline),
            hazards=tuple(hazards),
            forwarding_paths=tuple(forwarding_paths) if self.forwarding else (),
            forwarding_enabled=self.forwarding,
        )


def simulate_pipeline(instructions, latencies, forwarding=False, write_before_read_same_cycle=True):
    scheduler = PipelineScheduler(latencies, forwarding=forwarding,
                                  write_before_read_same_cycle=write_before_read_same_cycle)
    return scheduler.run(instructions)
