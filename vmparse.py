# vmparse.py
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

# =========================
# Errors
# =========================
class TranslationError(Exception):
    """Base error; carries the offending source line when it is known."""

    def __init__(self, message: str, line: Optional[str] = None, lineno: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.line = line
        self.lineno = lineno
        # set by whoever knows which module was being translated
        self.module: Optional[str] = None

    def __str__(self) -> str:
        if self.lineno is not None:
            return f"{self.message} (line {self.lineno}: {self.line!r})"
        if self.line is not None:
            return f"{self.message} ({self.line!r})"
        return self.message


class InvalidCommand(TranslationError):
    pass


class InvalidSegment(TranslationError):
    pass


class MalformedOperand(TranslationError):
    pass


class IndexOutOfRange(TranslationError):
    pass


class EmptyInput(TranslationError):
    pass


# =========================
# Commands
# =========================
class Op(Enum):
    PUSH = "push"
    POP = "pop"
    ADD = "add"
    SUB = "sub"
    AND = "and"
    OR = "or"
    NEG = "neg"
    NOT = "not"
    EQ = "eq"
    LT = "lt"
    GT = "gt"

    @property
    def is_memory(self) -> bool:
        return self in (Op.PUSH, Op.POP)


class Segment(Enum):
    ARGUMENT = "argument"
    LOCAL = "local"
    THIS = "this"
    THAT = "that"
    POINTER = "pointer"
    TEMP = "temp"
    STATIC = "static"
    CONSTANT = "constant"


MNEMONICS = {op.value: op for op in Op}
SEGMENTS = {seg.value: seg for seg in Segment}

INDEX_RE = re.compile(r"(?P<sign>-)?[0-9]+")


@dataclass
class Command:
    op: Op
    segment: Optional[Segment] = None
    index: Optional[int] = None
    # where the command came from, for diagnostics only
    text: Optional[str] = None
    lineno: Optional[int] = None

    def __str__(self) -> str:
        op = getattr(self.op, "value", self.op)
        if self.segment is None and self.index is None:
            return str(op)
        seg = getattr(self.segment, "value", self.segment)
        return f"{op} {seg} {self.index}"


@dataclass
class SourceLine:
    lineno: int
    text: str


# =========================
# Preprocessor
# =========================
def clean_source(text: str) -> List[SourceLine]:
    """Strip // comments and blank lines, keeping 1-based line numbers."""
    out: List[SourceLine] = []
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.split("//", 1)[0].strip()
        if line:
            out.append(SourceLine(lineno, line))
    if not out:
        raise EmptyInput("No commands left after removing comments and blank lines")
    return out


# =========================
# Decoder
# =========================
def decode(line: str, lineno: Optional[int] = None) -> Command:
    parts = line.split()
    if not parts:
        raise InvalidCommand("Empty command", line, lineno)

    op = MNEMONICS.get(parts[0])
    if op is None:
        raise InvalidCommand(f"Unknown command {parts[0]!r}", line, lineno)

    operands = parts[1:]
    if not op.is_memory:
        if operands:
            raise MalformedOperand(f"'{op.value}' takes no operands, got {len(operands)}", line, lineno)
        return Command(op, text=line, lineno=lineno)

    if not operands:
        raise MalformedOperand(f"'{op.value}' requires a segment and an index", line, lineno)

    segment = SEGMENTS.get(operands[0])
    if segment is None:
        raise InvalidSegment(f"Unknown segment {operands[0]!r}", line, lineno)

    if len(operands) != 2:
        raise MalformedOperand(f"'{op.value} {segment.value}' requires exactly one index", line, lineno)

    m = INDEX_RE.fullmatch(operands[1])
    if not m:
        raise MalformedOperand(f"Index {operands[1]!r} is not a number", line, lineno)
    index = int(operands[1])
    if m.group("sign"):
        raise IndexOutOfRange(f"Negative index {index}", line, lineno)

    return Command(op, segment, index, text=line, lineno=lineno)


def parse_program(text: str) -> List[Command]:
    return [decode(src.text, src.lineno) for src in clean_source(text)]
