import re

from instructions import InstructionError, InstructionType, make_instruction

YELLOW = "\033[93m"
PINK = "\033[95m"
CYAN = "\033[96m"
RED = "\033[91m"
RESET = "\033[0m"

# Supported instruction formats
INSTRUCTION_FORMATS = {
    'ADD': 'R', 'SUB': 'R', 'MUL': 'R', 'DIV': 'R',
    'LOAD': 'M', 'STORE': 'M',
}

LINE_NUMBER = re.compile(r'^\d+\s*[.:]\s*')
MEMORY_OPERAND = re.compile(r'^(-?(?:0x[0-9a-fA-F]+|\d+))?\((\w+)\)$')


class AssemblerError(ValueError):
    def __init__(self, message, line_number=None):
        self.line_number = line_number
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)


def _register(token):
    # Registers are accepted in any case; validation happens when building
    return token.upper() if token else token


def _offset(token):
    if not token:
        return 0
    if token.lstrip('-').lower().startswith('0x'):
        return int(token, 16)
    return int(token)


def parse_line(text, line_number=None):
    """Parse one source line into an instruction, or None for blank/comment lines."""
    line = text.split('#')[0].strip()
    line = LINE_NUMBER.sub('', line)
    if not line:
        return None

    parts = [p for p in re.split(r'[,\s]+', line) if p]
    op = parts[0].upper()
    fmt = INSTRUCTION_FORMATS.get(op)
    if fmt is None:
        raise AssemblerError(f"Unknown instruction: {parts[0]}", line_number)

    try:
        if fmt == 'R':
            if len(parts) != 4:
                raise AssemblerError(f"{op} expects rd, rs1, rs2: {line}", line_number)
            return make_instruction(op, rd=_register(parts[1]), rs1=_register(parts[2]),
                                    rs2=_register(parts[3]))

        # LOAD rd, offset(rs1) / STORE rs2, offset(rs1)
        if len(parts) != 3:
            raise AssemblerError(f"{op} expects a register and offset(base): {line}", line_number)
        match = MEMORY_OPERAND.match(parts[2])
        if not match:
            raise AssemblerError(f"Invalid format for {op}: {parts[2]}", line_number)
        offset = _offset(match.group(1))
        base = _register(match.group(2))
        if op == InstructionType.LOAD.value:
            return make_instruction(op, rd=_register(parts[1]), rs1=base, offset=offset)
        return make_instruction(op, rs2=_register(parts[1]), rs1=base, offset=offset)
    except InstructionError as e:
        raise AssemblerError(str(e), line_number) from e


def parse_program(source):
    instructions = []
    for line_number, line in enumerate(source.splitlines(), start=1):
        instr = parse_line(line, line_number)
        if instr is not None:
            instructions.append(instr)
    return instructions


def load_program(filename):
    with open(filename, 'r', encoding='utf-8') as f:
        return parse_program(f.read())


def format_instruction(instruction):
    if instruction.type == InstructionType.LOAD:
        return f"LOAD {instruction.rd}, {instruction.offset}({instruction.rs1})"
    if instruction.type == InstructionType.STORE:
        return f"STORE {instruction.rs2}, {instruction.offset}({instruction.rs1})"
    return f"{instruction.type.value} {instruction.rd}, {instruction.rs1}, {instruction.rs2}"


def print_program(instructions):
    print(f"{YELLOW}Program:{RESET}")
    for i, instr in enumerate(instructions):
        print(f"{PINK}{i + 1:2d}{RESET}: {CYAN}{format_instruction(instr)}{RESET}")
