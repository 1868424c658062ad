from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from .config import (
    CellSize,
    EofBehavior,
    GeneratorConfig,
    OverflowBehavior,
    PointerSafety,
    encode_input,
)
from .generator import BrainfuckToPython, UnsupportedConstructError
from .interpreter import BrainfuckInterpreter, CellOverflowError
from .package import FormatterError, generate_project
from .syntax import Program, dump_program_json

logger = logging.getLogger(__name__)

LOG_LEVEL_ENV = "BF2PY_LOG_LEVEL"


def _read_source(path: str) -> str:
    source_path = Path(path)
    if not source_path.exists():
        raise FileNotFoundError(f"Source file not found: {path}")
    return source_path.read_text(encoding="utf-8")


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Translate Brainfuck into a standalone Python program")
    parser.add_argument("source", help="Path to Brainfuck source file")
    parser.add_argument(
        "output",
        nargs="?",
        help="Directory to write the generated project to (default: print code to stdout)",
    )
    parser.add_argument(
        "-f",
        "--format",
        action="store_true",
        help="Pass the generated code through an external formatter (black)",
    )
    parser.add_argument("-d", "--dump-ast", help="Write the structured program as JSON to this file")
    parser.add_argument(
        "--fixed-input",
        help="Embed this ASCII string as the program input instead of reading stdin",
    )
    parser.add_argument("--memory-size", type=int, default=30_000, help="Number of tape cells")
    parser.add_argument(
        "--cell-size",
        choices=[size.value for size in CellSize],
        default=CellSize.U8.value,
    )
    parser.add_argument(
        "--pointer-safety",
        choices=[mode.value for mode in PointerSafety],
        default=PointerSafety.NONE.value,
    )
    parser.add_argument(
        "--overflow",
        choices=[mode.value for mode in OverflowBehavior],
        default=OverflowBehavior.NONE.value,
        help="Cell overflow handling",
    )
    parser.add_argument(
        "--eof",
        choices=[mode.value for mode in EofBehavior],
        default=EofBehavior.NO_CHANGE.value,
        help="What a read does once input is exhausted",
    )
    parser.add_argument("--eof-value", type=int, default=0, help="Byte stored on EOF with --eof fixed")
    parser.add_argument(
        "--no-compress",
        action="store_true",
        help="Emit one statement per instruction instead of folding repeated operations",
    )
    parser.add_argument(
        "--allow-unbalanced",
        action="store_true",
        help="Do not reject unmatched brackets (dangling loops are structured permissively)",
    )
    parser.add_argument(
        "--run",
        action="store_true",
        help="Execute the source with the interpreter and print its output",
    )
    parser.add_argument(
        "--input",
        default="",
        help="Input string supplied to the interpreter when running",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get(LOG_LEVEL_ENV, "WARNING").upper(),
        help=f"Logging level (default: ${LOG_LEVEL_ENV} or WARNING)",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    _configure_logging(args.log_level)

    try:
        source_text = _read_source(args.source)
    except FileNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    logger.debug("read %d characters from %s", len(source_text), args.source)

    try:
        config = GeneratorConfig(
            memory_size=args.memory_size,
            cell_size=CellSize(args.cell_size),
            pointer_safety=PointerSafety(args.pointer_safety),
            overflow_behavior=OverflowBehavior(args.overflow),
            eof_behavior=EofBehavior(args.eof),
            eof_value=args.eof_value,
            fixed_input=args.fixed_input,
        )
        program = Program.parse(
            source_text,
            repeated=not args.no_compress,
            strict=not args.allow_unbalanced,
        )
        generated = BrainfuckToPython(config).generate(program)
    except (UnsupportedConstructError, ValueError) as exc:
        print(f"Generation error: {exc}", file=sys.stderr)
        return 1

    if args.dump_ast:
        Path(args.dump_ast).write_text(dump_program_json(program), encoding="utf-8")

    if args.output:
        try:
            generate_project(
                Path(args.output),
                Path(args.source),
                source_text,
                generated,
                format_output=args.format,
            )
        except (FormatterError, OSError) as exc:
            print(f"Failed to write project: {exc}", file=sys.stderr)
            return 1
    elif not args.run:
        sys.stdout.write(generated)

    if args.run:
        interpreter = BrainfuckInterpreter(config=config)
        try:
            output = interpreter.run(source_text, input_data=encode_input(args.input))
        except (ValueError, CellOverflowError, IndexError) as exc:
            print(f"Runtime error: {exc}", file=sys.stderr)
            return 1
        sys.stdout.write(output)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
