from collections import namedtuple

from scheduler import HAZARD_TYPES
from stage_timing import PIPELINE_STAGES

PipelineMetrics = namedtuple('PipelineMetrics', [
    'total_cycles',
    'instruction_count',
    'cpi',
    'ideal_cycles',
    'stalls_by_type',
    'total_stalls',
    'stall_percentage',
    'forwarding_enabled',
    'forwarding_count',
    'comparison',
])

ForwardingComparison = namedtuple('ForwardingComparison', [
    'baseline_cycles',
    'baseline_cpi',
    'baseline_stalls',
    'cycle_reduction',
    'cpi_reduction',
    'stall_reduction',
    'speedup',
])


def total_cycles(timeline):
    return max((event.cycle for entry in timeline for event in entry.events()), default=0)


def stalls_by_type(hazards):
    # Every hazard instance counts; grouping for display happens in the report
    totals = {}
    for hazard in hazards:
        totals[hazard.type] = totals.get(hazard.type, 0) + hazard.stall_cycles
    return {t: totals[t] for t in HAZARD_TYPES if t in totals}


def _cpi(cycles, count):
    return cycles / count if count > 0 else 0


def calculate_metrics(timeline, hazards, forwarding=False, baseline_timeline=None, baseline_hazards=None):
    cycles = total_cycles(timeline)
    count = len(timeline)
    cpi = _cpi(cycles, count)
    by_type = stalls_by_type(hazards)
    total_stalls = sum(by_type.values())

    comparison = None
    if baseline_timeline is not None:
        base_cycles = total_cycles(baseline_timeline)
        base_cpi = _cpi(base_cycles, len(baseline_timeline))
        base_stalls = sum(stalls_by_type(baseline_hazards or ()).values())
        comparison = ForwardingComparison(
            baseline_cycles=base_cycles,
            baseline_cpi=base_cpi,
            baseline_stalls=base_stalls,
            cycle_reduction=base_cycles - cycles,
            cpi_reduction=base_cpi - cpi,
            stall_reduction=base_stalls - total_stalls,
            speedup=base_cycles / cycles if cycles > 0 else 0,
        )

    return PipelineMetrics(
        total_cycles=cycles,
        instruction_count=count,
        cpi=cpi,
        ideal_cycles=len(PIPELINE_STAGES) + count - 1 if count > 0 else 0,
        stalls_by_type=by_type,
        total_stalls=total_stalls,
        stall_percentage=total_stalls / cycles * 100 if cycles > 0 else 0,
        forwarding_enabled=bool(forwarding),
        forwarding_count=sum(len(entry.forwarding_paths) for entry in timeline),
        comparison=comparison,
    )
