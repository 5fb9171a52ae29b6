import pytest

from assembler import (AssemblerError, format_instruction, load_program, parse_line, parse_program,
                       print_program)
from instructions import ArithmeticInstruction, InstructionType, LoadInstruction, StoreInstruction


def test_parse_arithmetic():
    instr = parse_line("MUL R5, R3, R6")
    assert instr == ArithmeticInstruction(InstructionType.MUL, 'R5', 'R3', 'R6')


def test_parse_memory_operands():
    load = parse_line("LOAD R1, 8(R2)")
    assert isinstance(load, LoadInstruction)
    assert (load.rd, load.rs1, load.offset) == ('R1', 'R2', 8)
    store = parse_line("STORE R8, 0x10(R2)")
    assert isinstance(store, StoreInstruction)
    assert (store.rs2, store.rs1, store.offset) == ('R8', 'R2', 16)
    assert parse_line("load r1, (r2)").offset == 0
    assert parse_line("LOAD R1, -4(R2)").offset == -4


def test_blank_comment_and_numbered_lines():
    assert parse_line("") is None
    assert parse_line("   # just a comment") is None
    assert parse_line("3. ADD R1, R2, R3  # sum") == ArithmeticInstruction(InstructionType.ADD, 'R1', 'R2', 'R3')
    assert parse_line("4: sub r4 r1 r5").type == InstructionType.SUB


def test_parse_program_skips_blank_lines():
    source = """
    # demo
    LOAD R1, 0(R2)

    ADD R3, R1, R4
    """
    program = parse_program(source)
    assert [i.type for i in program] == [InstructionType.LOAD, InstructionType.ADD]


@pytest.mark.parametrize("line, message", [
    ("JMP R1", "Unknown instruction: JMP"),
    ("ADD R1, R2", "ADD expects rd, rs1, rs2"),
    ("LOAD R1, R2", "Invalid format for LOAD"),
    ("STORE R1", "STORE expects a register"),
    ("ADD R1, R1, R2", "cannot be both input and output"),
    ("ADD R40, R1, R2", "R40"),
])
def test_errors_carry_line_number(line, message):
    with pytest.raises(AssemblerError) as excinfo:
        parse_program("ADD R1, R2, R3\n" + line)
    assert excinfo.value.line_number == 2
    assert str(excinfo.value).startswith("line 2: ")
    assert message in str(excinfo.value)


def test_instruction_errors_are_chained():
    with pytest.raises(AssemblerError) as excinfo:
        parse_line("SUB R1, R1, R2", 1)
    assert isinstance(excinfo.value.__cause__, ValueError)


def test_format_instruction():
    program = parse_program("LOAD R1, 0(R2)\nSTORE R2, 4(R1)\nADD R1, R2, R3")
    assert [format_instruction(i) for i in program] == ["LOAD R1, 0(R2)", "STORE R2, 4(R1)", "ADD R1, R2, R3"]


def test_load_program(tmp_path):
    path = tmp_path / "prog.asm"
    path.write_text("ADD R1, R2, R3\nSUB R4, R1, R5\n", encoding="utf-8")
    program = load_program(str(path))
    assert [format_instruction(i) for i in program] == ["ADD R1, R2, R3", "SUB R4, R1, R5"]


def test_print_program(capsys):
    print_program(parse_program("DIV R8, R7, R9"))
    out = capsys.readouterr().out
    assert "Program:" in out
    assert "DIV R8, R7, R9" in out
