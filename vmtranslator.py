# vmtranslator.py
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from vmcodegen import AssemblyProgram, TranslationContext, assemble, assemble_modules
from vmparse import Command, TranslationError, parse_program

SOURCE_EXT = ".vm"
TARGET_EXT = ".asm"

log = logging.getLogger(__name__)


# =========================
# File discovery
# =========================
def find_sources(path: Path) -> List[Path]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"No such file or directory: {path}")

    if path.is_dir():
        sources = sorted(p for p in path.iterdir() if p.is_file() and p.suffix == SOURCE_EXT)
        if not sources:
            raise ValueError(f"No {SOURCE_EXT} files in {path}")
        return sources

    if path.suffix != SOURCE_EXT:
        raise ValueError(f"Expected a {SOURCE_EXT} file, got {path}")
    return [path]


def target_path(source: Path) -> Path:
    return source.with_suffix(TARGET_EXT)


# =========================
# Translation
# =========================
def translate_text(src_text: str, namespace: str) -> AssemblyProgram:
    commands = parse_program(src_text)
    return assemble(commands, TranslationContext(namespace))


def read_module(source: Path) -> Tuple[str, List[Command]]:
    log.info("Reading %s", source)
    text = source.read_text(encoding="utf-8")
    try:
        return source.stem, parse_program(text)
    except TranslationError as e:
        e.module = source.name
        raise


def translate_path(path: Path, combine: Optional[Path] = None) -> List[Path]:
    """Translate a .vm file or a directory of them; returns the files written.

    Every module is translated before anything is written, so a failing
    module leaves no output behind.
    """
    sources = find_sources(path)
    modules = [read_module(src) for src in sources]

    outputs: List[Tuple[Path, AssemblyProgram]] = []
    if combine is not None:
        outputs.append((Path(combine), assemble_modules(modules)))
    else:
        for src, (namespace, commands) in zip(sources, modules):
            try:
                program = assemble(commands, TranslationContext(namespace))
            except TranslationError as e:
                e.module = src.name
                raise
            outputs.append((target_path(src), program))

    written: List[Path] = []
    try:
        for out_path, program in outputs:
            log.debug("%s: %d lines, %d labels", out_path, len(program.lines), len(program.labels()))
            out_path.write_text(program.render(), encoding="utf-8")
            log.info("Wrote %s (%d instructions)", out_path, len(program.instructions()))
            written.append(out_path)
    except OSError:
        # a failed write leaves none of this run's outputs behind
        for done in written:
            log.info("Removing %s", done)
            done.unlink()
        raise
    return written


# =========================
# CLI
# =========================
def main(argv=None) -> int:
    ap = argparse.ArgumentParser(
        description="Translate stack VM code (.vm) into Hack assembly (.asm).")
    ap.add_argument("path", type=Path, help=f"a {SOURCE_EXT} file or a directory of them")
    ap.add_argument("-o", "--output", type=Path, default=None,
                    help="write all modules into this single combined program")
    ap.add_argument("-v", "--verbose", action="store_true")
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    try:
        translate_path(args.path, combine=args.output)
    except TranslationError as e:
        where = f" in {e.module}" if e.module else ""
        print(f"Translate error{where}: {e}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
