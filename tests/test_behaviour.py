"""Translate VM code and execute it on the Hack emulator."""
import pytest

from hackemu import HackCPU
from vmcodegen import STACK_BASE, assemble_modules
from vmparse import parse_program

TRUE, FALSE = -1, 0

BASES = {"local": ("LCL", 300), "argument": ("ARG", 400), "this": ("THIS", 3000), "that": ("THAT", 3010)}


@pytest.mark.parametrize(
    "op, a, b, expected",
    [
        ("add", 17, 13, 30),
        ("sub", 17, 13, 4),
        ("sub", 13, 17, -4),
        ("and", 12, 10, 8),
        ("or", 12, 10, 14),
        ("add", 32767, 1, -32768),
    ],
)
def test_binary_ops(run_vm, op, a, b, expected):
    cpu = run_vm(f"push constant {a}\npush constant {b}\n{op}\n")
    assert cpu.stack() == [expected]
    assert cpu.peek("SP") == STACK_BASE + 1


@pytest.mark.parametrize(
    "src, expected",
    [
        ("push constant 5\nneg", -5),
        ("push constant 0\nneg", 0),
        ("push constant 0\nnot", -1),
        ("push constant 21845\nnot", -21846),
    ],
)
def test_unary_ops(run_vm, src, expected):
    cpu = run_vm(src)
    assert cpu.stack() == [expected]
    assert cpu.peek("SP") == STACK_BASE + 1


@pytest.mark.parametrize(
    "op, a, b, expected",
    [
        ("eq", 17, 17, TRUE),
        ("eq", 17, 16, FALSE),
        ("eq", -32768, -32768, TRUE),
        ("eq", 32767, -32768, FALSE),
        ("lt", 892, 891, FALSE),
        ("lt", 891, 892, TRUE),
        ("lt", 5, 5, FALSE),
        ("gt", 32767, 32766, TRUE),
        ("gt", 5, 5, FALSE),
        ("lt", -32768, 0, TRUE),
        ("gt", 32767, 0, TRUE),
        ("lt", -1, 32767, TRUE),
    ],
)
def test_comparisons(run_vm, vm_push, op, a, b, expected):
    cpu = run_vm(f"{vm_push(a)}\n{vm_push(b)}\n{op}\n")
    assert cpu.stack() == [expected]
    assert cpu.peek("SP") == STACK_BASE + 1


@pytest.mark.parametrize(
    "op, a, b, wrapped",
    [
        # second - top wraps around 16 bits, flipping the sign the jump tests
        ("lt", -32768, 1, FALSE),
        ("lt", 32767, -32768, TRUE),
        ("gt", 32767, -1, FALSE),
        ("gt", 1, -32768, FALSE),
        ("gt", -32768, 32767, TRUE),
    ],
)
def test_comparison_overflow_at_extremes(run_vm, vm_push, op, a, b, wrapped):
    cpu = run_vm(f"{vm_push(a)}\n{vm_push(b)}\n{op}\n")
    assert cpu.stack() == [wrapped]


def test_repeated_comparisons(run_vm):
    src = "\n".join(
        f"push constant {a}\npush constant {b}\n{op}"
        for op, a, b in [("eq", 1, 1), ("eq", 1, 2), ("lt", 1, 2), ("gt", 1, 2), ("eq", 3, 3)]
    )
    cpu = run_vm(src)
    assert cpu.stack() == [TRUE, FALSE, TRUE, FALSE, TRUE]


@pytest.mark.parametrize("segment", sorted(BASES))
@pytest.mark.parametrize("index", [0, 1, 6])
def test_base_segment_round_trip(run_vm, segment, index):
    cell, base = BASES[segment]
    ram = {c: b for c, b in BASES.values()}
    cpu = run_vm(f"push constant 510\npop {segment} {index}\npush {segment} {index}\n", ram=ram)
    assert cpu.stack() == [510]
    assert cpu.peek(base + index) == 510
    for c, b in BASES.values():
        assert cpu.peek(c) == b


def test_pop_reads_top_slot(run_vm):
    cpu = run_vm("push constant 10\npush constant 21\npop local 0\npop local 1\n", ram={"LCL": 300})
    assert cpu.peek(300) == 21
    assert cpu.peek(301) == 10
    assert cpu.peek("SP") == STACK_BASE


def test_pointer_and_temp(run_vm):
    cpu = run_vm(
        "push constant 3030\npop pointer 0\npush constant 3040\npop pointer 1\n"
        "push constant 32\npop this 2\npush constant 46\npop that 6\n"
        "push constant 7\npop temp 6\n"
        "push pointer 0\npush pointer 1\nadd\npush this 2\nsub\npush that 6\nadd\npush temp 6\nadd\n"
    )
    assert cpu.peek("THIS") == 3030
    assert cpu.peek("THAT") == 3040
    assert cpu.peek(3032) == 32
    assert cpu.peek(3046) == 46
    assert cpu.peek("R11") == 7
    assert cpu.stack() == [3030 + 3040 - 32 + 46 + 7]


def test_static(run_vm):
    cpu = run_vm("push constant 111\npush constant 333\npop static 8\npop static 3\npush static 3\npush static 8\nsub\n",
                 namespace="StaticTest")
    assert cpu.peek("StaticTest.3") == 111
    assert cpu.peek("StaticTest.8") == 333
    assert cpu.stack() == [111 - 333]


def test_static_namespaces_do_not_alias():
    foo = parse_program("push constant 5\npop static 0\n")
    bar = parse_program("push constant 7\npop static 0\n")
    program = assemble_modules([("Foo", foo), ("Bar", bar)])
    cpu = HackCPU(program.lines)
    cpu.run()
    assert cpu.symbols["Foo.0"] != cpu.symbols["Bar.0"]
    assert cpu.peek("Foo.0") == 5
    assert cpu.peek("Bar.0") == 7


def test_combined_comparisons_run():
    foo = parse_program("push constant 4\npush constant 4\neq\n")
    bar = parse_program("push constant 4\npush constant 9\ngt\n")
    cpu = HackCPU(assemble_modules([("Foo", foo), ("Bar", bar)]).lines)
    cpu.run()
    assert cpu.stack() == [TRUE, FALSE]


def test_stack_arithmetic_program(run_vm):
    src = """
    // mixed arithmetic and logic
    push constant 57
    push constant 31
    push constant 53
    add
    push constant 112
    sub
    neg
    and
    push constant 82
    or
    not
    """
    cpu = run_vm(src)
    inner = -((31 + 53) - 112)
    assert cpu.stack() == [~((57 & inner) | 82)]
