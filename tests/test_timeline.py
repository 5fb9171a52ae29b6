import pytest

from scheduler import HazardType, RAWHazard, StructuralHazard, simulate_pipeline
from stage_timing import Stage, PIPELINE_STAGES
from timeline import CycleEvent, TimelineEntry, project_timeline, stage_occupancy


def labels(entry):
    return [(e.cycle, e.stage.short_name) for e in entry.events()]


def test_single_instruction_has_one_event_per_stage(program, latencies):
    entry, = project_timeline(simulate_pipeline(program("ADD R1, R2, R3"), latencies))
    assert labels(entry) == [(1, 'IF'), (2, 'ID'), (3, 'EX'), (4, 'MEM'), (5, 'WB')]
    assert entry.first_cycle == 1
    assert entry.last_cycle == 5


def test_stall_cycles_carry_their_hazard(program, latencies):
    _, sub = project_timeline(simulate_pipeline(program("ADD R1, R2, R3\nSUB R4, R1, R5"), latencies))
    hazard = RAWHazard('R1', 0, 1, 2)
    assert list(sub.events()) == [
        CycleEvent(2, Stage.FETCH, None),
        CycleEvent(3, Stage.STALL, hazard),
        CycleEvent(4, Stage.STALL, hazard),
        CycleEvent(5, Stage.DECODE, None),
        CycleEvent(6, Stage.EXECUTE, None),
        CycleEvent(7, Stage.MEMORY, None),
        CycleEvent(8, Stage.WRITEBACK, None),
    ]
    assert sub.stall_cycles == 2
    assert sub.hazards == (hazard,)


def test_mixed_stall_causes_are_rendered_in_order(program, latencies):
    entries = project_timeline(simulate_pipeline(program("MUL R1, R2, R3\nADD R4, R5, R6\nSUB R7, R1, R4"),
                                                 latencies))
    stalls = [(e.cycle, e.hazard) for e in entries[2].events() if e.stage == Stage.STALL]
    assert stalls == [
        (4, StructuralHazard(1, 2, 2)),
        (5, StructuralHazard(1, 2, 2)),
        (6, RAWHazard('R1', 0, 2, 1)),
        (7, RAWHazard('R4', 1, 2, 1)),
    ]


def test_multicycle_stage_emits_every_cycle(program, latencies):
    entry, = project_timeline(simulate_pipeline(program("DIV R1, R2, R3"), latencies))
    assert [e.cycle for e in entry.events() if e.stage == Stage.EXECUTE] == [3, 4, 5, 6]


def test_events_are_lazy(program, latencies):
    entry, = project_timeline(simulate_pipeline(program("ADD R1, R2, R3"), latencies))
    events = entry.events()
    assert next(events) == CycleEvent(1, Stage.FETCH, None)
    assert list(iter(entry))[0] == CycleEvent(1, Stage.FETCH, None)


def test_stage_entry_and_event_lookup(program, latencies):
    _, sub = project_timeline(simulate_pipeline(program("ADD R1, R2, R3\nSUB R4, R1, R5"), latencies))
    assert [sub.stage_entry_cycle(s) for s in PIPELINE_STAGES] == [2, 5, 6, 7, 8]
    assert sub.event_at(3).stage == Stage.STALL
    assert sub.event_at(1) is None
    assert sub.event_at(9) is None


def test_forwarding_paths_are_carried_for_lookup(program, latencies):
    result = simulate_pipeline(program("ADD R1, R2, R3\nSUB R4, R1, R5"), latencies, forwarding=True)
    add, sub = project_timeline(result)
    assert add.forwarding_paths == ()
    assert sub.forwarding_paths == result.paths_for(1)
    assert [p.register for p in sub.forwarding_at(4, Stage.EXECUTE)] == ['R1']
    assert sub.forwarding_at(4, Stage.DECODE) == []
    assert sub.forwarding_at(5) == []


def test_stage_occupancy(program, latencies):
    entries = project_timeline(simulate_pipeline(program("ADD R1, R2, R3\nSUB R4, R1, R5"), latencies))
    log = stage_occupancy(entries)
    assert len(log) == 8
    assert log[2][Stage.EXECUTE] == [0]
    assert log[2][Stage.STALL] == [1]
    assert log[4][Stage.WRITEBACK] == [0]
    assert log[4][Stage.DECODE] == [1]
    assert stage_occupancy([]) == []


def test_inconsistent_stall_attribution_is_an_assertion(program, latencies):
    scheduled = simulate_pipeline(program("ADD R1, R2, R3\nSUB R4, R1, R5"), latencies).timeline[1]
    intervals = dict(scheduled.intervals)
    decode = intervals[Stage.DECODE]
    intervals[Stage.DECODE] = decode._replace(hazards=())
    broken = TimelineEntry(scheduled._replace(intervals=intervals))
    with pytest.raises(AssertionError):
        broken.check_contiguous()


def test_projection_covers_every_instruction(program, latencies):
    source = "LOAD R1, 0(R2)\nADD R3, R1, R4\nMUL R5, R3, R6\nSTORE R5, 4(R2)"
    for forwarding in (False, True):
        result = simulate_pipeline(program(source), latencies, forwarding=forwarding)
        entries = project_timeline(result)
        assert [e.index for e in entries] == [0, 1, 2, 3]
        for entry in entries:
            assert entry.check_contiguous()
            stall_hazards = [e.hazard for e in entry.events() if e.stage == Stage.STALL]
            assert len(stall_hazards) == sum(h.stall_cycles for h in entry.hazards)
            assert all(h.type in (HazardType.RAW, HazardType.STRUCTURAL) for h in stall_hazards)
