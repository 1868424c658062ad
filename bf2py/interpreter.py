from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional

from .config import EofBehavior, GeneratorConfig, OverflowBehavior, PointerSafety
from .syntax import match_brackets

logger = logging.getLogger(__name__)

# Largest value chr() accepts; wider u32 cells cannot be written.
MAX_CODE_POINT = 0x10FFFF


class StepLimitExceeded(RuntimeError):
    """Raised when Brainfuck execution exceeds the configured step budget."""


class CellOverflowError(RuntimeError):
    """Raised when a checked cell operation leaves the cell range."""


@dataclass
class ExecutionState:
    step: int
    pc: int
    command: Optional[str]
    pointer: int
    tape_start: int
    tape: List[int]
    output: str
    code_length: int
    input_pos: int = 0


@dataclass
class BrainfuckInterpreter:
    """Direct interpreter used as the reference for generated programs.

    Pointer and cell arithmetic follow the policies of ``config``; the
    unchecked policies raise instead of producing platform-dependent values.
    """

    config: GeneratorConfig = field(default_factory=GeneratorConfig)

    tape: List[int] = field(init=False, repr=False)
    pointer: int = field(init=False, repr=False)
    input_pos: int = field(init=False, repr=False)
    output_buffer: List[str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.reset()

    @property
    def tape_length(self) -> int:
        return self.config.memory_size

    @property
    def cell_max(self) -> int:
        return self.config.cell_max

    def reset(self) -> None:
        self.tape = [0] * self.tape_length
        self.pointer = 0
        self.input_pos = 0
        self.output_buffer = []

    def run(
        self,
        code: str,
        input_data: Optional[Iterable[int]] = None,
        max_steps: Optional[int] = None,
    ) -> str:
        for _ in self.step(code, input_data=input_data, max_steps=max_steps):
            pass
        return "".join(self.output_buffer)

    def step(
        self,
        code: str,
        input_data: Optional[Iterable[int]] = None,
        max_steps: Optional[int] = None,
        tape_window: int = 10,
    ) -> Iterator[ExecutionState]:
        self.reset()
        code_chars = list(code)
        fixed = self.config.fixed_input_bytes()
        input_values = list(fixed) if fixed is not None else list(input_data or [])
        jump_map = match_brackets(code)
        pc = 0
        steps = 0
        code_length = len(code_chars)

        while pc < code_length:
            if max_steps is not None and steps >= max_steps:
                raise StepLimitExceeded("Brainfuck program exceeded allowed step count")

            command = code_chars[pc]
            pc = self._execute_instruction(command, pc, jump_map, input_values)
            steps += 1
            yield self.snapshot(pc, command, steps, code_length, tape_window)

        logger.debug("program finished after %d steps", steps)
        # Emit final snapshot indicating completion
        yield self.snapshot(pc, None, steps, code_length, tape_window)

    def _execute_instruction(
        self,
        command: str,
        pc: int,
        jump_map: Dict[int, int],
        input_values: List[int],
    ) -> int:
        new_pc = pc + 1
        if command == ">":
            self.pointer = self._move_pointer(self.pointer + 1)
        elif command == "<":
            self.pointer = self._move_pointer(self.pointer - 1)
        elif command == "+":
            self.tape[self.pointer] = self._adjust_cell(self.tape[self.pointer] + 1)
        elif command == "-":
            self.tape[self.pointer] = self._adjust_cell(self.tape[self.pointer] - 1)
        elif command == ".":
            value = self.tape[self.pointer]
            if value > MAX_CODE_POINT:
                raise ValueError(f"Cell value {value} at pointer {self.pointer} is not a Unicode code point")
            self.output_buffer.append(chr(value))
        elif command == ",":
            if self.input_pos < len(input_values):
                self.tape[self.pointer] = input_values[self.input_pos]
                self.input_pos += 1
            elif self.config.eof_behavior is EofBehavior.FIXED:
                self.tape[self.pointer] = self.config.eof_value
        elif command == "[":
            if self.tape[self.pointer] == 0:
                new_pc = jump_map[pc] + 1
        elif command == "]":
            if self.tape[self.pointer] != 0:
                new_pc = jump_map[pc] + 1
        return new_pc

    def _move_pointer(self, target: int) -> int:
        safety = self.config.pointer_safety
        if safety is PointerSafety.WRAP:
            return target % self.tape_length
        if safety is PointerSafety.CLAMP:
            return min(max(target, 0), self.tape_length - 1)
        if target >= self.tape_length:
            raise IndexError("Pointer moved beyond the tape length.")
        if target < 0:
            raise IndexError("Pointer moved before start of tape.")
        return target

    def _adjust_cell(self, value: int) -> int:
        if self.config.overflow_behavior is OverflowBehavior.WRAP:
            return value & self.cell_max
        if value > self.cell_max:
            raise CellOverflowError(f"Cell overflow at pointer {self.pointer}")
        if value < 0:
            raise CellOverflowError(f"Cell underflow at pointer {self.pointer}")
        return value

    def snapshot(
        self,
        pc: int,
        command: Optional[str],
        step: int,
        code_length: int,
        tape_window: int,
    ) -> ExecutionState:
        start = max(0, self.pointer - tape_window)
        end = min(self.tape_length, self.pointer + tape_window + 1)
        tape_view = self.tape[start:end].copy()
        return ExecutionState(
            step=step,
            pc=pc,
            command=command,
            pointer=self.pointer,
            tape_start=start,
            tape=tape_view,
            output="".join(self.output_buffer),
            code_length=code_length,
            input_pos=self.input_pos,
        )


__all__ = [
    "BrainfuckInterpreter",
    "CellOverflowError",
    "ExecutionState",
    "StepLimitExceeded",
]
