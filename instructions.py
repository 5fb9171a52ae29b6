import re
from enum import Enum
from collections import namedtuple
from typing import Optional, Tuple

MAX_REGISTERS = 32
REGISTERS = tuple(f"R{i}" for i in range(MAX_REGISTERS))
REGISTER_PATTERN = re.compile(r"^R([0-9]+)$")


class InstructionType(Enum):
    ADD = "ADD"
    SUB = "SUB"
    MUL = "MUL"
    DIV = "DIV"
    LOAD = "LOAD"
    STORE = "STORE"


COMPUTE_INSTRUCTIONS = (InstructionType.ADD, InstructionType.SUB,
                        InstructionType.MUL, InstructionType.DIV)
MEMORY_INSTRUCTIONS = (InstructionType.LOAD, InstructionType.STORE)


class InstructionError(ValueError):
    """Base class for malformed instructions rejected before scheduling."""


class InvalidInstructionType(InstructionError):
    def __init__(self, value):
        self.value = value
        super().__init__(f"Invalid instruction type: {value}")


class MissingRequiredRegister(InstructionError):
    def __init__(self, name, instr_type=None):
        self.name = name
        if name == "rd":
            message = f"{instr_type} requires destination register (rd)"
        elif name == "rs1":
            message = "Source register 1 (rs1) is required"
        else:
            message = f"{instr_type} requires source register 2 (rs2)"
        super().__init__(message)


class RegisterOverlap(InstructionError):
    def __init__(self, register):
        self.register = register
        super().__init__(f"Register {register} cannot be both input and output")


class InvalidRegisterName(InstructionError):
    def __init__(self, value):
        self.value = value
        super().__init__(f"Invalid register format: {value}. Must be R0-R{MAX_REGISTERS - 1}.")


class IllegalWriteTarget(InstructionError):
    def __init__(self):
        super().__init__("STORE instruction cannot write to registers")


class InvalidOffset(InstructionError):
    def __init__(self, value):
        self.value = value
        super().__init__(f"Invalid memory offset: {value!r}")


class ProgramError(InstructionError):
    """An instruction of a program failed validation; carries its index."""

    def __init__(self, index, error):
        self.index = index
        self.error = error
        super().__init__(f"Instruction {index + 1}: {error}")


# One immutable record per instruction shape. Each carries only the fields
# that are valid for it.
class ArithmeticInstruction(namedtuple('ArithmeticInstruction', ['type', 'rd', 'rs1', 'rs2'])):
    __slots__ = ()
    offset = None


class LoadInstruction(namedtuple('LoadInstruction', ['rd', 'rs1', 'offset'])):
    __slots__ = ()
    type = InstructionType.LOAD
    rs2 = None


class StoreInstruction(namedtuple('StoreInstruction', ['rs2', 'rs1', 'offset'])):
    __slots__ = ()
    type = InstructionType.STORE
    rd = None


def is_valid_register(reg) -> bool:
    if not isinstance(reg, str):
        return False
    match = REGISTER_PATTERN.match(reg)
    return bool(match) and 0 <= int(match.group(1)) < MAX_REGISTERS


def register_operands(instruction) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
    """Return the (read, write) operand field names of an instruction."""
    if instruction.type in COMPUTE_INSTRUCTIONS:
        return ('rs1', 'rs2'), ('rd',)
    if instruction.type == InstructionType.LOAD:
        return ('rs1',), ('rd',)
    if instruction.type == InstructionType.STORE:
        return ('rs1', 'rs2'), ()
    return (), ()


def register_sets(instruction):
    """Return the (read_set, write_set) register names of an instruction."""
    read_operands, write_operands = register_operands(instruction)
    read_set = frozenset(getattr(instruction, op) for op in read_operands if getattr(instruction, op))
    write_set = frozenset(getattr(instruction, op) for op in write_operands if getattr(instruction, op))
    return read_set, write_set


def validate_instruction(instruction):
    if not isinstance(getattr(instruction, 'type', None), InstructionType):
        raise InvalidInstructionType(getattr(instruction, 'type', instruction))
    if isinstance(instruction, ArithmeticInstruction) and instruction.type not in COMPUTE_INSTRUCTIONS:
        raise InvalidInstructionType(instruction.type.value)

    instr_type = instruction.type.value
    if instruction.type != InstructionType.STORE and not instruction.rd:
        raise MissingRequiredRegister('rd', instr_type)
    if not instruction.rs1:
        raise MissingRequiredRegister('rs1', instr_type)
    if instruction.type != InstructionType.LOAD and not instruction.rs2:
        raise MissingRequiredRegister('rs2', instr_type)

    read_set, write_set = register_sets(instruction)
    for reg in (instruction.rd, instruction.rs1, instruction.rs2):
        if reg and not is_valid_register(reg):
            raise InvalidRegisterName(reg)

    overlap = sorted(read_set & write_set, key=lambda r: int(r[1:]))
    if overlap:
        raise RegisterOverlap(overlap[0])

    if instruction.type == InstructionType.STORE and write_set:
        raise IllegalWriteTarget()
    return instruction


def _offset(value):
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        raise InvalidOffset(value) from None


def make_instruction(instr_type, rd: Optional[str] = None, rs1: Optional[str] = None,
                     rs2: Optional[str] = None, offset=0):
    """Build and validate an instruction from loosely supplied fields."""
    if isinstance(instr_type, str):
        try:
            instr_type = InstructionType(instr_type.upper())
        except ValueError:
            raise InvalidInstructionType(instr_type) from None
    if not isinstance(instr_type, InstructionType):
        raise InvalidInstructionType(instr_type)

    if instr_type == InstructionType.STORE:
        if rd:
            raise IllegalWriteTarget()
        instruction = StoreInstruction(rs2=rs2, rs1=rs1, offset=_offset(offset))
    elif instr_type == InstructionType.LOAD:
        instruction = LoadInstruction(rd=rd, rs1=rs1, offset=_offset(offset))
    else:
        instruction = ArithmeticInstruction(type=instr_type, rd=rd, rs1=rs1, rs2=rs2)
    return validate_instruction(instruction)


def validate_program(instructions):
    """Validate every instruction up front; nothing is scheduled on failure."""
    for index, instruction in enumerate(instructions):
        try:
            validate_instruction(instruction)
        except InstructionError as error:
            raise ProgramError(index, error) from error
    return list(instructions)
