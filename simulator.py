#!/usr/bin/env python3
import sys
import argparse

from assembler import (AssemblerError, CYAN, PINK, RED, RESET, YELLOW, format_instruction,
                       load_program, parse_program, print_program)
from instructions import InstructionError, InstructionType, MEMORY_INSTRUCTIONS, validate_program
from metrics import calculate_metrics
from scheduler import HazardType, simulate_pipeline
from stage_timing import (ConfigurationError, DEFAULT_LATENCIES, PIPELINE_STAGES, Stage,
                          load_latencies, merge_latencies, normalize_latencies)
from timeline import project_timeline

DEMO_PROGRAM = """
LOAD R1, 0(R2)
ADD R3, R1, R4
MUL R5, R3, R6
SUB R7, R5, R1
DIV R8, R7, R9
STORE R8, 4(R2)
"""


def unique_hazards(hazards):
    """Collapse repeated hazards for display, keyed on (type, register, producer)."""
    grouped = {}
    for hazard in hazards:
        key = (hazard.type, hazard.register, hazard.producer_index)
        if key not in grouped:
            grouped[key] = hazard
    return list(grouped.values())


def describe_hazard(hazard):
    if hazard.type == HazardType.RAW:
        return (f"RAW hazard: Waiting for {hazard.register} from instruction "
                f"{hazard.producer_index + 1} ({hazard.stall_cycles} cycles)")
    return (f"Structural hazard: Waiting for instruction {hazard.producer_index + 1} "
            f"to advance ({hazard.stall_cycles} cycles)")


def _source(path):
    return path.from_stage.value if path.from_stage is not None else "stalled"


def describe_forwarding(paths):
    # One line per register; the first path for a register is the one shown
    by_register = {}
    for path in paths:
        by_register.setdefault(path.register, path)
    return [f"{p.register} from instruction {p.producer_index + 1} ({_source(p)}) "
            f"to {p.to_stage.value} in cycle {p.cycle}" for p in by_register.values()]


def remarks(entry):
    lines = [describe_hazard(h) for h in unique_hazards(entry.hazards)]
    lines.extend(f"Forwarded {line}" for line in describe_forwarding(entry.forwarding_paths))
    return lines or ["None"]


class PipelineSimulator:
    def __init__(self, latencies=DEFAULT_LATENCIES, forwarding=False, write_before_read_same_cycle=True):
        self.latencies = normalize_latencies(latencies)
        self.forwarding = forwarding
        self.write_before_read_same_cycle = write_before_read_same_cycle
        self.instructions = []
        self.result = None
        self.baseline = None
        self.timeline = []
        self.baseline_timeline = []
        self.metrics = None

    def load_program(self, instructions):
        self.instructions = validate_program(instructions)
        self.result = self.baseline = self.metrics = None

    def _run(self, forwarding):
        return simulate_pipeline(self.instructions, self.latencies, forwarding=forwarding,
                                 write_before_read_same_cycle=self.write_before_read_same_cycle)

    def run_simulation(self):
        # The forwarding-disabled run is the reference for forwarding savings
        self.result = self._run(self.forwarding)
        self.baseline = self._run(False) if self.forwarding else self.result
        self.timeline = project_timeline(self.result)
        self.baseline_timeline = project_timeline(self.baseline) if self.forwarding else self.timeline
        self.metrics = calculate_metrics(
            self.timeline,
            self.result.hazards,
            forwarding=self.forwarding,
            baseline_timeline=self.baseline_timeline,
            baseline_hazards=self.baseline.hazards,
        )
        return self.metrics

    def set_forwarding(self, enabled):
        self.forwarding = bool(enabled)
        if self.instructions:
            self.run_simulation()

    def print_timing_table(self):
        total = self.metrics.total_cycles if self.metrics else 0
        width = max(len(format_instruction(i)) for i in self.instructions) + 5 if self.instructions else 20
        print("\nPipeline Timing Table:")
        print("=" * (width + 5 * total))
        print(f"{'Instruction':<{width}}" + "".join(f"{c:<5}" for c in range(1, total + 1)))
        print("-" * (width + 5 * total))
        for entry in self.timeline:
            row = ["     "] * total
            for event in entry.events():
                label = event.stage.short_name
                if event.stage == Stage.STALL:
                    label = f"{RED}{label:<5}{RESET}"
                else:
                    label = f"{label:<5}"
                row[event.cycle - 1] = label
            name = f"{entry.index + 1}. {format_instruction(entry.instruction)}"
            print(f"{name:<{width}}" + "".join(row))

    def print_stage_entry_table(self):
        print("\nStage Entry Cycles:")
        print("=" * 100)
        header = f"{'Instruction':<24}" + "".join(f"{s.value:<11}" for s in PIPELINE_STAGES) + "Remarks"
        print(header)
        print("-" * 100)
        for entry in self.timeline:
            name = f"{entry.index + 1}. {format_instruction(entry.instruction)}"
            cycles = "".join(f"{entry.stage_entry_cycle(s):<11}" for s in PIPELINE_STAGES)
            notes = remarks(entry)
            print(f"{name:<24}{cycles}{notes[0]}")
            for note in notes[1:]:
                print(f"{'':<{24 + 11 * len(PIPELINE_STAGES)}}{note}")

    def print_trace(self):
        print("\nCycle Trace:")
        total = self.metrics.total_cycles if self.metrics else 0
        events = {}
        for entry in self.timeline:
            for event in entry.events():
                events.setdefault(event.cycle, []).append((entry.index, event))
        for cycle in range(1, total + 1):
            parts = []
            for index, event in events.get(cycle, []):
                text = f"I{index + 1}:{event.stage.short_name}"
                if event.hazard is not None:
                    text += f"({event.hazard.type.value})"
                for path in self.timeline[index].forwarding_at(cycle, event.stage):
                    text += f"<-{path.register}@I{path.producer_index + 1}"
                parts.append(text)
            print(f"[Cycle {cycle:2d}] {'; '.join(parts)}")

    def print_statistics(self):
        m = self.metrics
        print("\nSimulation Statistics:")
        print("=" * 50)
        print(f"Forwarding: {'enabled' if m.forwarding_enabled else 'disabled'}")
        print(f"Total Clock Cycles: {m.total_cycles} (ideal: {m.ideal_cycles})")
        print(f"Total Instructions: {m.instruction_count}")
        print(f"Cycles Per Instruction (CPI): {m.cpi:.2f}")
        print(f"Total Stalls: {m.total_stalls} ({m.stall_percentage:.1f}% of cycles)")
        for hazard_type, cycles in m.stalls_by_type.items():
            share = cycles / m.total_stalls * 100 if m.total_stalls else 0
            print(f"  - {hazard_type.value}: {cycles} cycles ({share:.1f}%)")
        if m.forwarding_enabled:
            c = m.comparison
            print(f"Forwarding Paths Used: {m.forwarding_count}")
            print(f"Without Forwarding: {c.baseline_cycles} cycles, CPI {c.baseline_cpi:.2f}, "
                  f"{c.baseline_stalls} stalls")
            print(f"  - Cycles Saved: {c.cycle_reduction}")
            print(f"  - CPI Reduction: {c.cpi_reduction:.2f}")
            print(f"  - Stalls Avoided: {c.stall_reduction}")
            print(f"  - Speedup: {c.speedup:.2f}x")


def parse_latency_override(text):
    """`MUL=5` sets the type's configurable stage, `MUL=5/1` sets execute/memory."""
    try:
        name, value = text.split('=', 1)
        instr_type = InstructionType(name.strip().upper())
        if '/' in value:
            execute, memory = (int(v) for v in value.split('/', 1))
            return instr_type, {'execute': execute, 'memory': memory}
        cycles = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid latency override: {text}") from None
    if instr_type in MEMORY_INSTRUCTIONS:
        return instr_type, {'memory': cycles}
    return instr_type, {'execute': cycles}


def build_parser():
    parser = argparse.ArgumentParser(description="In-order 5-stage pipeline hazard simulator")
    parser.add_argument('program', nargs='?', help="program file (one instruction per line); demo if omitted")
    parser.add_argument('--forwarding', action='store_true', help="enable data forwarding")
    parser.add_argument('--config', help="JSON latency table merged over the defaults")
    parser.add_argument('--latency', action='append', type=parse_latency_override, default=[],
                        metavar='TYPE=N', help="override a latency, e.g. MUL=5 or LOAD=1/3")
    parser.add_argument('--trace', action='store_true', help="print a per-cycle trace")
    parser.add_argument('--charts', metavar='DIR', help="write PNG charts to DIR")
    parser.add_argument('--gui', action='store_true', help="open the pipeline viewer")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    try:
        latencies = load_latencies(args.config) if args.config else DEFAULT_LATENCIES
        latencies = merge_latencies(dict(args.latency), base=latencies)
        if args.program:
            program = load_program(args.program)
        else:
            program = parse_program(DEMO_PROGRAM)
        simulator = PipelineSimulator(latencies=latencies, forwarding=args.forwarding)
        simulator.load_program(program)
    except (AssemblerError, InstructionError, ConfigurationError, OSError) as e:
        print(f"{RED}Error: {e}{RESET}", file=sys.stderr)
        return 1

    simulator.run_simulation()

    if args.gui:
        from viewer import launch
        launch(simulator)
        return 0

    print(f"{YELLOW}In-order 5-Stage Pipeline Simulator{RESET}")
    print("=" * 50)
    print_program(simulator.instructions)
    print(f"\n{YELLOW}Latencies:{RESET}")
    for instr_type, latency in simulator.latencies.items():
        print(f"{PINK}{instr_type.value:<6}{RESET} execute={CYAN}{latency.execute}{RESET} "
              f"memory={CYAN}{latency.memory}{RESET}")
    simulator.print_timing_table()
    simulator.print_stage_entry_table()
    if args.trace:
        simulator.print_trace()
    simulator.print_statistics()

    if args.charts:
        from charts import save_charts
        for path in save_charts(simulator, args.charts):
            print(f"Chart written: {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
