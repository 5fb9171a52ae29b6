import json
from enum import Enum
from collections import namedtuple
from types import MappingProxyType

from instructions import InstructionType, MEMORY_INSTRUCTIONS


class Stage(Enum):
    FETCH = "Fetch"
    DECODE = "Decode"
    EXECUTE = "Execute"
    MEMORY = "Memory"
    WRITEBACK = "Writeback"
    STALL = "Stall"

    @property
    def short_name(self):
        return STAGE_SHORT_NAMES[self]


PIPELINE_STAGES = (Stage.FETCH, Stage.DECODE, Stage.EXECUTE, Stage.MEMORY, Stage.WRITEBACK)

STAGE_SHORT_NAMES = {
    Stage.FETCH: "IF",
    Stage.DECODE: "ID",
    Stage.EXECUTE: "EX",
    Stage.MEMORY: "MEM",
    Stage.WRITEBACK: "WB",
    Stage.STALL: "--",
}

Latency = namedtuple('Latency', ['execute', 'memory'])

DEFAULT_LATENCIES = MappingProxyType({
    InstructionType.ADD: Latency(execute=1, memory=1),
    InstructionType.SUB: Latency(execute=1, memory=1),
    InstructionType.MUL: Latency(execute=3, memory=1),
    InstructionType.DIV: Latency(execute=4, memory=1),
    InstructionType.LOAD: Latency(execute=1, memory=2),
    InstructionType.STORE: Latency(execute=1, memory=2),
})

# When source operands are read from the register file
READ_STAGE = {instr_type: Stage.DECODE for instr_type in InstructionType}

# When the destination is written
WRITE_STAGE = {instr_type: Stage.WRITEBACK for instr_type in InstructionType}
WRITE_STAGE[InstructionType.STORE] = Stage.MEMORY

# When results can be forwarded
FORWARDING_RESULT_STAGE = {
    InstructionType.ADD: Stage.EXECUTE,
    InstructionType.SUB: Stage.EXECUTE,
    InstructionType.MUL: Stage.EXECUTE,
    InstructionType.DIV: Stage.EXECUTE,
    InstructionType.LOAD: Stage.MEMORY,
    InstructionType.STORE: None,
}

# Operands needed later than Execute when forwarding
FORWARDING_OPERAND_STAGE = {
    InstructionType.STORE: {'rs2': Stage.MEMORY},
}
DEFAULT_FORWARDING_OPERAND_STAGE = Stage.EXECUTE


class ConfigurationError(ValueError):
    pass


def _coerce_type(key):
    if isinstance(key, InstructionType):
        return key
    try:
        return InstructionType(str(key).upper())
    except ValueError:
        raise ConfigurationError(f"Unknown instruction type in latency table: {key}") from None


def _clamp(value):
    # Non-positive or unparsable latencies fall back to the minimum of one cycle
    try:
        return max(1, int(value))
    except (TypeError, ValueError):
        return 1


def _coerce_latency(value):
    if isinstance(value, dict):
        return Latency(execute=_clamp(value.get('execute', 1)), memory=_clamp(value.get('memory', 1)))
    if not isinstance(value, (tuple, list)) or len(value) != 2:
        raise ConfigurationError(f"Latency must be an (execute, memory) pair, got {value!r}")
    execute, memory = value
    return Latency(execute=_clamp(execute), memory=_clamp(memory))


def normalize_latencies(latencies):
    """Return a complete, clamped, read-only latency table."""
    table = {}
    for key, value in latencies.items():
        table[_coerce_type(key)] = _coerce_latency(value)
    missing = [t.value for t in InstructionType if t not in table]
    if missing:
        raise ConfigurationError(f"Latency table is missing: {', '.join(missing)}")
    return MappingProxyType({t: table[t] for t in InstructionType})


def merge_latencies(overrides=None, base=DEFAULT_LATENCIES):
    table = dict(base)
    for key, value in (overrides or {}).items():
        instr_type = _coerce_type(key)
        if isinstance(value, dict):
            current = table[instr_type]
            value = {'execute': value.get('execute', current.execute),
                     'memory': value.get('memory', current.memory)}
        table[instr_type] = _coerce_latency(value)
    return normalize_latencies(table)


def load_latencies(path):
    with open(path, 'r', encoding='utf-8') as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"{path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: expected an object keyed by instruction type")
    return merge_latencies(data)


def latencies_to_dict(latencies):
    return {t.value: {'execute': lat.execute, 'memory': lat.memory} for t, lat in latencies.items()}


class StageTiming:
    def __init__(self, latencies, write_before_read_same_cycle=True):
        self.latencies = normalize_latencies(latencies)
        self._write_before_read = write_before_read_same_cycle
        self._costs = {}
        for instr_type, latency in self.latencies.items():
            costs = {stage: 1 for stage in PIPELINE_STAGES}
            # Memory instructions pay their latency in Memory, compute in Execute
            if instr_type in MEMORY_INSTRUCTIONS:
                costs[Stage.MEMORY] = latency.memory
            else:
                costs[Stage.EXECUTE] = latency.execute
            self._costs[instr_type] = MappingProxyType(costs)

    def stage_costs(self, instr_type):
        return self._costs[instr_type]

    def stage_cost(self, instr_type, stage):
        return self._costs[instr_type][stage]

    def read_stage(self, instr_type):
        return READ_STAGE[instr_type]

    def write_stage(self, instr_type):
        return WRITE_STAGE[instr_type]

    def forwarding_stage(self, instr_type):
        return FORWARDING_RESULT_STAGE[instr_type]

    def operand_read_stage(self, instr_type, operand, forwarding_enabled):
        if not forwarding_enabled:
            return self.read_stage(instr_type)
        special = FORWARDING_OPERAND_STAGE.get(instr_type, {})
        return special.get(operand, DEFAULT_FORWARDING_OPERAND_STAGE)

    def result_available_cycle(self, instr_type, intervals, forwarding_enabled):
        """Cycle at whose end the producer's result can be consumed."""
        if forwarding_enabled:
            stage = self.forwarding_stage(instr_type)
            if stage is None:
                return None
            return intervals[stage].end
        return intervals[self.write_stage(instr_type)].end

    def read_before_write_same_cycle(self):
        return self._write_before_read
