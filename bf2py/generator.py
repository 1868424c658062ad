from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional

from .config import EofBehavior, GeneratorConfig, OverflowBehavior, PointerSafety
from .syntax import Executable, Instruction, Loop, Program, Segment, Token, walk_tokens

logger = logging.getLogger(__name__)

INDENT = "    "

# CPython refuses more than 20 statically nested blocks in one code object,
# deeper loops are moved into helper functions.
MAX_INLINE_DEPTH = 16


class UnsupportedConstructError(Exception):
    pass


@dataclass
class CodeGenState:
    has_input: bool
    helpers: List[List[str]] = field(default_factory=list)

    @property
    def helper_params(self) -> str:
        if self.has_input:
            return "tape, out, input_data, pointer, input_pos"
        return "tape, out, pointer"

    @property
    def helper_results(self) -> str:
        return "pointer, input_pos" if self.has_input else "pointer"


@dataclass
class _Block:
    """A statement block being filled: a loop body, a helper body or ``main``."""

    items: Iterator[Segment]
    lines: List[str]
    indent: int
    depth: int
    start: int
    epilogue: Optional[str] = None


class BrainfuckToPython:
    """Lower a structured :class:`Program` into a standalone Python script.

    The generated script keeps the tape in an ``array.array`` sized by the
    configured cell width and applies the pointer, cell and EOF policies of
    the :class:`GeneratorConfig` at every operation.
    """

    def __init__(self, config: Optional[GeneratorConfig] = None) -> None:
        self.config = config or GeneratorConfig()

    def generate(self, program: Program) -> str:
        reads_input = self._check_tokens(walk_tokens(program.segments))
        has_input = self.config.fixed_input is not None or program.needs_input or reads_input
        state = CodeGenState(has_input=has_input)
        body: List[str] = []
        self._emit_segments(program.segments, body, indent=1, state=state)
        code = self._template(body, state)
        logger.debug(
            "generated %d lines (%d hoisted loop helpers)",
            code.count("\n"),
            len(state.helpers),
        )
        return code

    # --- Helpers ---

    def _check_tokens(self, tokens: Iterable[Token]) -> bool:
        reads_input = False
        for token in tokens:
            if token.instruction is Instruction.READ:
                if token.count > 1:
                    raise UnsupportedConstructError(
                        f"Repeated read (count={token.count}) is not supported"
                    )
                reads_input = True
        return reads_input

    def _emit_segments(
        self,
        segments: Iterable[Segment],
        lines: List[str],
        *,
        indent: int,
        state: CodeGenState,
    ) -> None:
        """Emit ``segments`` into ``lines``, walking the tree with an explicit stack."""
        blocks = [_Block(iter(segments), lines, indent, 0, len(lines))]
        while blocks:
            block = blocks[-1]
            item = next(block.items, None)
            if item is None:
                blocks.pop()
                if len(block.lines) == block.start:
                    block.lines.append(INDENT * block.indent + "pass")
                if block.epilogue is not None:
                    block.lines.append(block.epilogue)
            elif isinstance(item, Executable):
                for token in item.tokens:
                    block.lines.extend(INDENT * block.indent + line for line in self._lower(token))
            elif block.depth >= MAX_INLINE_DEPTH:
                blocks.append(self._open_helper(item, block, state))
            else:
                block.lines.append(INDENT * block.indent + "while tape[pointer] != 0:")
                blocks.append(
                    _Block(
                        iter(item.body),
                        block.lines,
                        block.indent + 1,
                        block.depth + 1,
                        len(block.lines),
                    )
                )

    def _open_helper(self, loop: Loop, caller: _Block, state: CodeGenState) -> _Block:
        name = f"_loop_{len(state.helpers) + 1}"
        caller.lines.append(
            INDENT * caller.indent + f"{state.helper_results} = {name}({state.helper_params})"
        )
        lines = [f"def {name}({state.helper_params}):", INDENT + "while tape[pointer] != 0:"]
        # Reserve the slot so nested helpers get later numbers.
        state.helpers.append(lines)
        return _Block(
            iter(loop.body),
            lines,
            2,
            1,
            len(lines),
            epilogue=INDENT + f"return {state.helper_results}",
        )

    def _lower(self, token: Token) -> List[str]:
        instruction = token.instruction
        n = token.count
        if instruction is Instruction.POINTER_ADD:
            return self._pointer_add(n)
        if instruction is Instruction.POINTER_SUB:
            return self._pointer_sub(n)
        if instruction is Instruction.VALUE_ADD:
            return self._value_add(n)
        if instruction is Instruction.VALUE_SUB:
            return self._value_sub(n)
        if instruction is Instruction.READ:
            return self._read(n)
        if instruction is Instruction.WRITE:
            if n == 1:
                return ["out.write(chr(tape[pointer]))"]
            return [f"out.write(chr(tape[pointer]) * {n})"]
        raise UnsupportedConstructError(
            f"Loop marker {instruction.value!r} cannot appear in a straight-line block"
        )

    def _pointer_add(self, n: int) -> List[str]:
        safety = self.config.pointer_safety
        if safety is PointerSafety.WRAP:
            return [f"pointer = (pointer + {n}) % MEM_SIZE"]
        if safety is PointerSafety.CLAMP:
            return [f"pointer = min(pointer + {n}, MEM_SIZE - 1)"]
        return [
            f"pointer += {n}",
            "if pointer >= MEM_SIZE:",
            INDENT + 'raise IndexError("pointer moved beyond the tape length")',
        ]

    def _pointer_sub(self, n: int) -> List[str]:
        safety = self.config.pointer_safety
        if safety is PointerSafety.WRAP:
            return [f"pointer = (pointer - {n}) % MEM_SIZE"]
        if safety is PointerSafety.CLAMP:
            return [f"pointer = max(pointer, {n}) - {n}"]
        # a negative index would silently address the end of the tape
        return [
            f"pointer -= {n}",
            "if pointer < 0:",
            INDENT + 'raise IndexError("pointer moved before start of tape")',
        ]

    def _value_add(self, n: int) -> List[str]:
        behavior = self.config.overflow_behavior
        if behavior is OverflowBehavior.WRAP:
            return [f"tape[pointer] = (tape[pointer] + {n}) & CELL_MAX"]
        if behavior is OverflowBehavior.ABORT:
            return [
                f"if tape[pointer] > CELL_MAX - {n}:",
                INDENT + 'sys.exit(f"cell overflow at {pointer}")',
                f"tape[pointer] += {n}",
            ]
        return [f"tape[pointer] += {n}"]

    def _value_sub(self, n: int) -> List[str]:
        behavior = self.config.overflow_behavior
        if behavior is OverflowBehavior.WRAP:
            return [f"tape[pointer] = (tape[pointer] - {n}) & CELL_MAX"]
        if behavior is OverflowBehavior.ABORT:
            return [
                f"if tape[pointer] < {n}:",
                INDENT + 'sys.exit(f"cell underflow at {pointer}")',
                f"tape[pointer] -= {n}",
            ]
        return [f"tape[pointer] -= {n}"]

    def _read(self, n: int) -> List[str]:
        if n > 1:
            raise UnsupportedConstructError(f"Repeated read (count={n}) is not supported")
        lines = [
            "if input_pos < len(input_data):",
            INDENT + "tape[pointer] = input_data[input_pos]",
            INDENT + "input_pos += 1",
        ]
        if self.config.eof_behavior is EofBehavior.FIXED:
            lines.append("else:")
            lines.append(INDENT + f"tape[pointer] = {self.config.eof_value}")
        return lines

    def _input_preamble(self, state: CodeGenState) -> List[str]:
        fixed = self.config.fixed_input_bytes()
        if fixed is not None:
            return [f"input_data = {fixed!r}", "input_pos = 0"]
        if not state.has_input:
            return []
        return [
            "text = sys.stdin.read()",
            "if not text.isascii():",
            INDENT + 'sys.exit("input is not ASCII")',
            'input_data = text.encode("ascii")',
            "input_pos = 0",
        ]

    def _template(self, body: List[str], state: CodeGenState) -> str:
        config = self.config
        lines = [
            "# Generated by bf2py.",
            "import sys",
            "from array import array",
            "",
            f"MEM_SIZE = {config.memory_size}",
            f"CELL_MAX = {config.cell_max}",
            "",
        ]
        for helper in state.helpers:
            lines.append("")
            lines.extend(helper)
            lines.append("")
        lines.extend(
            [
                "",
                "def main():",
                INDENT + f'tape = array("{config.cell_size.typecode}", [0]) * MEM_SIZE',
                INDENT + "pointer = 0",
                INDENT + "out = sys.stdout",
            ]
        )
        lines.extend(INDENT + line for line in self._input_preamble(state))
        lines.extend(body)
        lines.extend(
            [
                "",
                "",
                'if __name__ == "__main__":',
                INDENT + "main()",
                "",
            ]
        )
        return "\n".join(lines)


def generate(program: Program, config: Optional[GeneratorConfig] = None) -> str:
    return BrainfuckToPython(config).generate(program)


__all__ = [
    "BrainfuckToPython",
    "CodeGenState",
    "MAX_INLINE_DEPTH",
    "UnsupportedConstructError",
    "generate",
]
