# hackemu.py
import argparse
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from vmcodegen import STACK_BASE, SYMBOL_RE

RAM_SIZE = 32768
WORD = 0xFFFF
VAR_BASE = 16

PREDEFINED = {
    "SP": 0, "LCL": 1, "ARG": 2, "THIS": 3, "THAT": 4,
    "SCREEN": 16384, "KBD": 24576,
    **{f"R{i}": i for i in range(16)},
}

# comp mnemonic -> f(D, A, M); A-forms and M-forms share one table
COMP: Dict[str, Callable[[int, int, int], int]] = {
    "0": lambda d, a, m: 0,
    "1": lambda d, a, m: 1,
    "-1": lambda d, a, m: -1,
    "D": lambda d, a, m: d,
    "A": lambda d, a, m: a,
    "M": lambda d, a, m: m,
    "!D": lambda d, a, m: ~d,
    "!A": lambda d, a, m: ~a,
    "!M": lambda d, a, m: ~m,
    "-D": lambda d, a, m: -d,
    "-A": lambda d, a, m: -a,
    "-M": lambda d, a, m: -m,
    "D+1": lambda d, a, m: d + 1,
    "A+1": lambda d, a, m: a + 1,
    "M+1": lambda d, a, m: m + 1,
    "D-1": lambda d, a, m: d - 1,
    "A-1": lambda d, a, m: a - 1,
    "M-1": lambda d, a, m: m - 1,
    "D+A": lambda d, a, m: d + a,
    "D+M": lambda d, a, m: d + m,
    "D-A": lambda d, a, m: d - a,
    "D-M": lambda d, a, m: d - m,
    "A-D": lambda d, a, m: a - d,
    "M-D": lambda d, a, m: m - d,
    "D&A": lambda d, a, m: d & a,
    "D&M": lambda d, a, m: d & m,
    "D|A": lambda d, a, m: d | a,
    "D|M": lambda d, a, m: d | m,
}

JUMPS: Dict[str, Callable[[int], bool]] = {
    "": lambda v: False,
    "JGT": lambda v: v > 0,
    "JEQ": lambda v: v == 0,
    "JGE": lambda v: v >= 0,
    "JLT": lambda v: v < 0,
    "JNE": lambda v: v != 0,
    "JLE": lambda v: v <= 0,
    "JMP": lambda v: True,
}

C_RE = re.compile(r"(?:(?P<dest>[ADM]{1,3})=)?(?P<comp>[^;=]+)(?:;(?P<jump>J\w\w))?")


def to_signed(v: int) -> int:
    v &= WORD
    return v - 0x10000 if v & 0x8000 else v


@dataclass
class Instr:
    # kind: 'A' (value resolved later) or 'C'
    kind: str
    line: int
    value: Optional[str] = None
    dest: str = ""
    comp: str = ""
    jump: str = ""


# =========================
# Loader (two passes)
# =========================
def load_program(lines: List[str]):
    labels: Dict[str, int] = {}
    code: List[Instr] = []

    # ---------- first pass: labels ----------
    for line_num, raw in enumerate(lines, start=1):
        line = "".join(raw.split("//")[0].split())
        if not line:
            continue

        if line.startswith("("):
            if not line.endswith(")") or not SYMBOL_RE.fullmatch(line[1:-1]):
                raise SyntaxError(f"Invalid label declaration {line!r} (line {line_num})")
            label = line[1:-1]
            if label in labels or label in PREDEFINED:
                raise SyntaxError(f"Label {label!r} already defined (line {line_num})")
            labels[label] = len(code)
            continue

        if line.startswith("@"):
            value = line[1:]
            if value.isdigit():
                if int(value) > 32767:
                    raise SyntaxError(f"Constant {value} out of range (line {line_num})")
            elif not SYMBOL_RE.fullmatch(value):
                raise SyntaxError(f"Invalid symbol {value!r} (line {line_num})")
            code.append(Instr("A", line_num, value=value))
            continue

        m = C_RE.fullmatch(line)
        if not m or m["comp"] not in COMP or (m["jump"] or "") not in JUMPS:
            raise SyntaxError(f"Invalid instruction {line!r} (line {line_num})")
        code.append(Instr("C", line_num, dest=m["dest"] or "", comp=m["comp"], jump=m["jump"] or ""))

    # ---------- second pass: symbols ----------
    symbols = dict(PREDEFINED)
    symbols.update(labels)
    next_var = VAR_BASE
    rom: List[Instr] = []
    for ins in code:
        if ins.kind == "A" and not ins.value.isdigit():
            if ins.value not in symbols:
                symbols[ins.value] = next_var
                next_var += 1
            ins = Instr("A", ins.line, value=str(symbols[ins.value]))
        rom.append(ins)

    return rom, symbols


# =========================
# CPU
# =========================
class HackCPU:
    def __init__(self, program: List[str], trace: bool = False):
        self.rom, self.symbols = load_program(program)
        self.ram = [0] * RAM_SIZE
        self.a = 0
        self.d = 0
        self.pc = 0
        self.steps = 0
        self.halted = False
        self.trace = trace

    def peek(self, addr) -> int:
        if isinstance(addr, str):
            addr = self.symbols[addr]
        return to_signed(self.ram[addr])

    def poke(self, addr, value: int):
        if isinstance(addr, str):
            addr = self.symbols[addr]
        self.ram[addr] = value & WORD

    def stack(self) -> List[int]:
        return [to_signed(v) for v in self.ram[STACK_BASE:self.ram[0]]]

    def is_halt(self, target: int) -> bool:
        # "(END) @END 0;JMP": a jump back onto the @ that loaded it
        if target != self.pc - 1:
            return False
        prev = self.rom[target]
        return prev.kind == "A" and int(prev.value) == target

    def step(self):
        ins = self.rom[self.pc]

        if ins.kind == "A":
            self.a = int(ins.value)
            self.pc += 1
            return

        if self.a >= RAM_SIZE and "M" in ins.comp + ins.dest:
            raise RuntimeError(f"RAM access out of range: {self.a} (line {ins.line})")
        m = self.ram[self.a] if self.a < RAM_SIZE else 0
        value = COMP[ins.comp](to_signed(self.d), to_signed(self.a), to_signed(m)) & WORD

        # M is written through the A value from before this instruction
        if "M" in ins.dest:
            self.ram[self.a] = value
        if "D" in ins.dest:
            self.d = value
        target = self.a
        if "A" in ins.dest:
            self.a = value
            target = value

        if self.trace:
            print(f"[PC={self.pc:05}] {ins.dest}{'=' if ins.dest else ''}{ins.comp}"
                  f"{';' + ins.jump if ins.jump else ''}  A={self.a} D={to_signed(self.d)}")

        if JUMPS[ins.jump](to_signed(value)):
            if self.is_halt(target):
                self.halted = True
                return
            self.pc = target
        else:
            self.pc += 1

    def run(self, max_steps: int = 100000) -> int:
        while not self.halted:
            if self.pc >= len(self.rom):
                # ran off the end of ROM; treat as halt
                self.halted = True
                break
            if self.steps >= max_steps:
                raise RuntimeError(f"No halt after {max_steps} steps (pc={self.pc})")
            self.step()
            self.steps += 1
        return self.steps


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Run Hack assembly and print the operand stack.")
    ap.add_argument("file", type=Path)
    ap.add_argument("--max-steps", type=int, default=100000)
    ap.add_argument("--trace", action="store_true")
    args = ap.parse_args(argv)

    try:
        cpu = HackCPU(args.file.read_text(encoding="utf-8").splitlines(), trace=args.trace)
        steps = cpu.run(args.max_steps)
    except (OSError, SyntaxError, RuntimeError) as e:
        print(f"Run error: {e}", file=sys.stderr)
        return 1

    print(f"Steps: {steps}")
    print(f"SP: {cpu.ram[0]}")
    print(f"Stack: {cpu.stack()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
