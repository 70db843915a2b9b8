import pytest

from hackemu import HackCPU
from vmcodegen import TranslationContext, assemble
from vmparse import parse_program


@pytest.fixture
def vm_push():
    def push(value: int) -> str:
        """VM lines that leave `value` (any 16-bit signed int) on the stack."""
        if value >= 0:
            return f"push constant {value}"
        if value == -32768:
            return "push constant 32767\nneg\npush constant 1\nsub"
        return f"push constant {-value}\nneg"

    return push


@pytest.fixture
def run_vm():
    def run(src: str, namespace: str = "Test", ram=None, max_steps: int = 100000) -> HackCPU:
        program = assemble(parse_program(src), TranslationContext(namespace))
        cpu = HackCPU(program.lines)
        for addr, value in (ram or {}).items():
            cpu.poke(addr, value)
        cpu.run(max_steps)
        assert cpu.halted
        return cpu

    return run
