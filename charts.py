import os

import matplotlib.pyplot as plt

from assembler import format_instruction
from scheduler import HazardType
from stage_timing import Stage, PIPELINE_STAGES

STAGE_COLORS = {
    Stage.FETCH: "#3498db",
    Stage.DECODE: "#9b59b6",
    Stage.EXECUTE: "#f1c40f",
    Stage.MEMORY: "#2ecc71",
    Stage.WRITEBACK: "#e74c3c",
    Stage.STALL: "#bdc3c7",
}

HAZARD_COLORS = {
    HazardType.RAW: "#e74c3c",
    HazardType.STRUCTURAL: "#9b59b6",
}

STAT_COLORS = {
    'cycles': "#3498db",
    'instructions': "#2ecc71",
    'stalls': "#e74c3c",
    'forwarding': "#f1c40f",
    'efficiency': "#1abc9c",
}


def _label_bars(ax, bars, fmt='{:d}'):
    for b in bars:
        h = b.get_height()
        text = fmt.format(int(h)) if fmt == '{:d}' else fmt.format(h)
        ax.text(b.get_x() + b.get_width() / 2, h + 0.1, text, ha='center')


def stall_chart(metrics):
    fig, ax = plt.subplots(figsize=(8, 5))
    cats = [t.value for t in HazardType]
    vals = [metrics.stalls_by_type.get(t, 0) for t in HazardType]
    cols = [HAZARD_COLORS[t] for t in HazardType]
    bars = ax.bar(cats, vals, color=cols)
    ax.set_ylabel('Stall Cycles')
    ax.set_title('Stalls by Hazard Type')
    _label_bars(ax, bars)
    ax.text(0.5, -0.15,
            f"Total stalls: {metrics.total_stalls} ({metrics.stall_percentage:.1f}% of {metrics.total_cycles} cycles)",
            transform=ax.transAxes, ha='center')
    fig.tight_layout()
    return fig


def forwarding_chart(metrics):
    fig, (a1, a2) = plt.subplots(1, 2, figsize=(8, 5))
    comparison = metrics.comparison
    if comparison is not None and metrics.forwarding_enabled:
        labels = ['No Forwarding', 'Forwarding']
        cycles = [comparison.baseline_cycles, metrics.total_cycles]
        cpis = [comparison.baseline_cpi, metrics.cpi]
    else:
        labels = ['No Forwarding']
        cycles = [metrics.total_cycles]
        cpis = [metrics.cpi]
    cols = [STAT_COLORS['stalls'], STAT_COLORS['forwarding']][:len(labels)]

    bars = a1.bar(labels, cycles, color=cols)
    a1.bar(['Ideal'], [metrics.ideal_cycles], color=STAT_COLORS['efficiency'])
    a1.set_title('Total Cycles')
    _label_bars(a1, bars)

    bars = a2.bar(labels, cpis, color=cols)
    a2.axhline(1.0, color=STAT_COLORS['efficiency'], linestyle='--', label='Ideal CPI')
    a2.set_ylim(0, max([1.0] + cpis) * 1.2)
    a2.set_title('CPI')
    a2.legend()
    _label_bars(a2, bars, fmt='{:.2f}')
    fig.tight_layout()
    return fig


def pipeline_chart(timeline):
    rows = max(len(timeline), 1)
    fig, ax = plt.subplots(figsize=(10, 1 + 0.5 * rows))
    for row, entry in enumerate(timeline):
        for event in entry.events():
            ax.broken_barh([(event.cycle - 0.5, 1)], (row - 0.4, 0.8),
                           facecolors=STAGE_COLORS[event.stage], edgecolor='white')
            ax.text(event.cycle, row, event.stage.short_name, ha='center', va='center', fontsize=7)
    ax.set_yticks(range(len(timeline)))
    ax.set_yticklabels([f"{e.index + 1}. {format_instruction(e.instruction)}" for e in timeline])
    ax.invert_yaxis()
    ax.set_xlabel('Cycle')
    ax.set_title('Pipeline Diagram')
    handles = [plt.Rectangle((0, 0), 1, 1, color=STAGE_COLORS[s]) for s in PIPELINE_STAGES + (Stage.STALL,)]
    ax.legend(handles, [s.value for s in PIPELINE_STAGES + (Stage.STALL,)],
              loc='upper center', bbox_to_anchor=(0.5, -0.15), ncol=6, fontsize=7)
    fig.tight_layout()
    return fig


def save_charts(simulator, directory):
    os.makedirs(directory, exist_ok=True)
    figures = {
        'pipeline.png': pipeline_chart(simulator.timeline),
        'stalls.png': stall_chart(simulator.metrics),
        'forwarding.png': forwarding_chart(simulator.metrics),
    }
    paths = []
    for name, fig in figures.items():
        path = os.path.join(directory, name)
        fig.savefig(path)
        plt.close(fig)
        paths.append(path)
    return paths
