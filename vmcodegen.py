# vmcodegen.py
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from vmparse import (
    Command,
    IndexOutOfRange,
    InvalidCommand,
    InvalidSegment,
    MalformedOperand,
    Op,
    Segment,
    TranslationError,
)

# =========================
# Machine layout
# =========================
STACK_BASE = 256
SP = "SP"

# segments addressed through a base cell holding their start address
BASE_CELLS = {
    Segment.LOCAL: "LCL",
    Segment.ARGUMENT: "ARG",
    Segment.THIS: "THIS",
    Segment.THAT: "THAT",
}

# segments mapped onto fixed RAM cells: (first cell, number of cells)
FIXED_SEGMENTS = {
    Segment.POINTER: (3, 2),
    Segment.TEMP: (5, 8),
}

# largest literal an @value line can load (15 bits)
MAX_CONSTANT = 32767

BINARY_COMP = {
    Op.ADD: "D+M",
    Op.SUB: "M-D",
    Op.AND: "D&M",
    Op.OR: "D|M",
}

UNARY_COMP = {
    Op.NEG: "-M",
    Op.NOT: "!M",
}

COMPARE_JUMP = {
    Op.EQ: "JEQ",
    Op.LT: "JLT",
    Op.GT: "JGT",
}

END_LABEL = "END"

BOOTSTRAP = [
    "// bootstrap: SP = 256",
    f"@{STACK_BASE}",
    "D=A",
    f"@{SP}",
    "M=D",
]

# terminal self-jump
HALT = [
    f"({END_LABEL})",
    f"@{END_LABEL}",
    "0;JMP",
]

SYMBOL_RE = re.compile(r"[A-Za-z_.$:][\w.$:]*")


# =========================
# Translation state
# =========================
@dataclass
class TranslationContext:
    """Per-module state: static namespace and comparison label counter."""

    namespace: str
    label_count: int = 0

    def __post_init__(self):
        if not SYMBOL_RE.fullmatch(self.namespace):
            raise ValueError(f"Namespace {self.namespace!r} is not a valid assembly symbol")

    def next_labels(self) -> Tuple[str, str, str]:
        n = self.label_count
        self.label_count += 1
        return f"TRUE_{n}", f"FALSE_{n}", f"OUT_{n}"

    def static_label(self, index: int) -> str:
        return f"{self.namespace}.{index}"


@dataclass
class AssemblyProgram:
    lines: List[str] = field(default_factory=list)

    def labels(self) -> List[str]:
        return [ln[1:-1] for ln in self.lines if ln.startswith("(") and ln.endswith(")")]

    def instructions(self) -> List[str]:
        return [ln for ln in self.lines if not ln.startswith("//") and not ln.startswith("(")]

    def render(self) -> str:
        return "\n".join(self.lines) + "\n"


# =========================
# Codegen
# =========================
class Codegen:
    def __init__(self, ctx: TranslationContext):
        self.ctx = ctx
        self.asm: List[str] = []

    # ---------- utilities ----------
    def emit(self, *lines: str):
        self.asm.extend(lines)

    def fail(self, exc_type, message: str, cmd: Command):
        raise exc_type(message, cmd.text if cmd.text is not None else str(cmd), cmd.lineno)

    # ---------- validation ----------
    def check(self, cmd: Command):
        if not isinstance(cmd.op, Op):
            self.fail(InvalidCommand, f"Unknown command {cmd.op!r}", cmd)

        if not cmd.op.is_memory:
            if cmd.segment is not None or cmd.index is not None:
                self.fail(MalformedOperand, f"'{cmd.op.value}' takes no operands", cmd)
            return

        if not isinstance(cmd.segment, Segment):
            self.fail(InvalidSegment, f"Unknown segment {cmd.segment!r}", cmd)
        if not isinstance(cmd.index, int) or isinstance(cmd.index, bool):
            self.fail(MalformedOperand, f"Index {cmd.index!r} is not a number", cmd)
        if cmd.index < 0:
            self.fail(IndexOutOfRange, f"Negative index {cmd.index}", cmd)

        if cmd.segment is Segment.CONSTANT:
            if cmd.op is Op.POP:
                self.fail(InvalidSegment, "Cannot pop into the constant segment", cmd)
            if cmd.index > MAX_CONSTANT:
                self.fail(IndexOutOfRange, f"Constant {cmd.index} exceeds {MAX_CONSTANT}", cmd)

        if cmd.segment in FIXED_SEGMENTS:
            _, size = FIXED_SEGMENTS[cmd.segment]
            if cmd.index >= size:
                self.fail(
                    IndexOutOfRange,
                    f"{cmd.segment.value} index {cmd.index} outside 0..{size - 1}",
                    cmd,
                )

    # ---------- addressing ----------
    def fixed_cell(self, segment: Segment, index: int) -> str:
        base, _ = FIXED_SEGMENTS[segment]
        return f"R{base + index}"

    def displace(self, base_cell: str, index: int, sign: str):
        # shift the base cell itself instead of using a scratch register
        self.emit(f"@{index}", "D=A", f"@{base_cell}", "M=D+M" if sign == "+" else "M=M-D")

    def push_d(self):
        self.emit(f"@{SP}", "A=M", "M=D", f"@{SP}", "M=M+1")

    # ---------- memory commands ----------
    def compile_push(self, segment: Segment, index: int):
        if segment is Segment.CONSTANT:
            self.emit(f"@{index}", "D=A")
            self.push_d()
        elif segment in BASE_CELLS:
            base = BASE_CELLS[segment]
            self.displace(base, index, "+")
            self.emit("A=M", "D=M", f"@{SP}", "A=M", "M=D")
            self.displace(base, index, "-")
            self.emit(f"@{SP}", "M=M+1")
        elif segment in FIXED_SEGMENTS:
            self.emit(f"@{self.fixed_cell(segment, index)}", "D=M")
            self.push_d()
        elif segment is Segment.STATIC:
            self.emit(f"@{self.ctx.static_label(index)}", "D=M")
            self.push_d()
        else:
            raise InvalidSegment(f"Unhandled segment {segment!r}")

    def compile_pop(self, segment: Segment, index: int):
        # retreat first: SP must point at the slot being read
        self.emit(f"@{SP}", "M=M-1")
        if segment in BASE_CELLS:
            base = BASE_CELLS[segment]
            self.displace(base, index, "+")
            self.emit(f"@{SP}", "A=M", "D=M", f"@{base}", "A=M", "M=D")
            self.displace(base, index, "-")
        elif segment in FIXED_SEGMENTS:
            self.emit(f"@{SP}", "A=M", "D=M", f"@{self.fixed_cell(segment, index)}", "M=D")
        elif segment is Segment.STATIC:
            self.emit(f"@{SP}", "A=M", "D=M", f"@{self.ctx.static_label(index)}", "M=D")
        else:
            raise InvalidSegment(f"Unhandled segment {segment!r}")

    # ---------- arithmetic / logic ----------
    def load_operands(self):
        # D = top, A = address of second (the result slot), SP = result slot
        self.emit(f"@{SP}", "M=M-1", "A=M", "D=M", f"@{SP}", "M=M-1", "A=M")

    def compile_binary(self, op: Op):
        self.load_operands()
        self.emit(f"M={BINARY_COMP[op]}", f"@{SP}", "M=M+1")

    def compile_unary(self, op: Op):
        self.emit(f"@{SP}", "M=M-1", "A=M", f"M={UNARY_COMP[op]}", f"@{SP}", "M=M+1")

    def compile_compare(self, op: Op):
        lbl_true, lbl_false, lbl_out = self.ctx.next_labels()
        self.load_operands()
        self.emit(
            "D=M-D",
            f"@{lbl_true}",
            f"D;{COMPARE_JUMP[op]}",
            f"@{lbl_false}",
            "0;JMP",
            f"({lbl_true})",
            f"@{SP}",
            "A=M",
            "M=-1",
            f"@{lbl_out}",
            "0;JMP",
            f"({lbl_false})",
            f"@{SP}",
            "A=M",
            "M=0",
            f"({lbl_out})",
            f"@{SP}",
            "M=M+1",
        )

    # ---------- commands ----------
    def compile_command(self, cmd: Command):
        self.check(cmd)
        self.emit(f"// {cmd.text if cmd.text is not None else cmd}")

        if cmd.op is Op.PUSH:
            self.compile_push(cmd.segment, cmd.index)
        elif cmd.op is Op.POP:
            self.compile_pop(cmd.segment, cmd.index)
        elif cmd.op in BINARY_COMP:
            self.compile_binary(cmd.op)
        elif cmd.op in UNARY_COMP:
            self.compile_unary(cmd.op)
        elif cmd.op in COMPARE_JUMP:
            self.compile_compare(cmd.op)
        else:
            self.fail(InvalidCommand, f"Unhandled command {cmd.op.value!r}", cmd)

    def compile_commands(self, commands: Iterable[Command]):
        for cmd in commands:
            self.compile_command(cmd)


# =========================
# Entry points
# =========================
def assemble(
    commands: Iterable[Command],
    ctx: Optional[TranslationContext] = None,
    namespace: str = "Main",
) -> AssemblyProgram:
    """Translate one module into a complete program (bootstrap + body + halt).

    Any error aborts the whole module; no partial program is returned.
    """
    if ctx is None:
        ctx = TranslationContext(namespace)
    cg = Codegen(ctx)
    cg.compile_commands(commands)
    return AssemblyProgram(BOOTSTRAP + cg.asm + HALT)


def assemble_modules(modules: Iterable[Tuple[str, Iterable[Command]]]) -> AssemblyProgram:
    """Translate several modules into one program.

    Each module gets its own context (own static namespace); the label
    counter carries over from one module to the next so comparison labels
    never repeat in the combined program.
    """
    body: List[str] = []
    label_count = 0
    for namespace, commands in modules:
        ctx = TranslationContext(namespace, label_count)
        cg = Codegen(ctx)
        cg.emit(f"// module {namespace}")
        try:
            cg.compile_commands(commands)
        except TranslationError as e:
            if e.module is None:
                e.module = namespace
            raise
        body.extend(cg.asm)
        label_count = ctx.label_count
    return AssemblyProgram(BOOTSTRAP + body + HALT)
