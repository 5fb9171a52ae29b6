import pytest

from metrics import calculate_metrics, stalls_by_type, total_cycles
from scheduler import HazardType, RAWHazard, StructuralHazard, simulate_pipeline
from timeline import project_timeline


def run(program_source, program, latencies, forwarding=False):
    result = simulate_pipeline(program(program_source), latencies, forwarding=forwarding)
    return project_timeline(result), result.hazards


def test_single_instruction(program, latencies):
    timeline, hazards = run("ADD R1, R2, R3", program, latencies)
    m = calculate_metrics(timeline, hazards)
    assert m.total_cycles == 5
    assert m.instruction_count == 1
    assert m.cpi == 1.0
    assert m.ideal_cycles == 5
    assert m.stalls_by_type == {}
    assert m.total_stalls == 0
    assert m.stall_percentage == 0
    assert m.forwarding_enabled is False
    assert m.comparison is None


def test_empty_program():
    m = calculate_metrics([], ())
    assert m.total_cycles == 0
    assert m.instruction_count == 0
    assert m.cpi == 0
    assert m.ideal_cycles == 0
    assert m.stall_percentage == 0
    assert m.forwarding_count == 0


def test_structural_stalls_are_counted(program, latencies):
    timeline, hazards = run("MUL R1, R2, R3\nMUL R4, R5, R6\nMUL R7, R8, R9", program, latencies)
    m = calculate_metrics(timeline, hazards)
    assert m.total_cycles == 13
    assert m.ideal_cycles == 7
    assert m.stalls_by_type == {HazardType.STRUCTURAL: 6}
    assert m.total_stalls == 6
    assert m.stall_percentage == pytest.approx(6 / 13 * 100)
    assert m.cpi == pytest.approx(13 / 3)


def test_stalls_by_type_orders_raw_first():
    hazards = [StructuralHazard(0, 1, 2), RAWHazard('R1', 0, 1, 1), RAWHazard('R2', 1, 2, 3)]
    totals = stalls_by_type(hazards)
    assert list(totals) == [HazardType.RAW, HazardType.STRUCTURAL]
    assert totals == {HazardType.RAW: 4, HazardType.STRUCTURAL: 2}


def test_total_cycles_is_last_event(program, latencies):
    timeline, _ = run("DIV R1, R2, R3\nADD R4, R5, R6", program, latencies)
    assert total_cycles(timeline) == max(entry.last_cycle for entry in timeline)
    assert total_cycles([]) == 0


def test_forwarding_comparison(program, latencies):
    source = "LOAD R1, 0(R2)\nADD R3, R1, R4"
    timeline, hazards = run(source, program, latencies, forwarding=True)
    baseline, baseline_hazards = run(source, program, latencies)
    m = calculate_metrics(timeline, hazards, forwarding=True,
                          baseline_timeline=baseline, baseline_hazards=baseline_hazards)
    assert m.total_cycles == 8
    assert m.total_stalls == 2
    assert m.forwarding_enabled is True
    assert m.forwarding_count == 1

    c = m.comparison
    assert c.baseline_cycles == 9
    assert c.baseline_stalls == 3
    assert c.cycle_reduction == 1
    assert c.stall_reduction == 1
    assert c.cpi_reduction == pytest.approx(0.5)
    assert c.speedup == pytest.approx(9 / 8)


def test_no_gain_without_dependences(program, latencies):
    source = "ADD R1, R2, R3\nSUB R4, R5, R6"
    timeline, hazards = run(source, program, latencies, forwarding=True)
    baseline, baseline_hazards = run(source, program, latencies)
    m = calculate_metrics(timeline, hazards, forwarding=True,
                          baseline_timeline=baseline, baseline_hazards=baseline_hazards)
    assert m.forwarding_count == 0
    assert m.comparison.cycle_reduction == 0
    assert m.comparison.speedup == 1.0
