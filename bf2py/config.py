from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional


class InputEncodingError(ValueError):
    """Raised when program input contains characters outside ASCII."""


class CellSize(str, Enum):
    U8 = "u8"
    U16 = "u16"
    U32 = "u32"

    @property
    def bits(self) -> int:
        return {"u8": 8, "u16": 16, "u32": 32}[self.value]

    @property
    def max_value(self) -> int:
        return (1 << self.bits) - 1

    @property
    def typecode(self) -> str:
        # array.array typecodes of the matching unsigned C types
        return {"u8": "B", "u16": "H", "u32": "I"}[self.value]


class PointerSafety(str, Enum):
    WRAP = "wrap"
    CLAMP = "clamp"
    NONE = "none"


class OverflowBehavior(str, Enum):
    WRAP = "wrap"
    ABORT = "abort"
    NONE = "none"


class EofBehavior(str, Enum):
    NO_CHANGE = "no-change"
    FIXED = "fixed"


def encode_input(data: str) -> List[int]:
    for index, char in enumerate(data):
        if ord(char) > 127:
            raise InputEncodingError(f"Input is not ASCII: {char!r} at position {index}")
    return [ord(char) for char in data]


@dataclass(frozen=True)
class GeneratorConfig:
    memory_size: int = 30_000
    cell_size: CellSize = CellSize.U8
    pointer_safety: PointerSafety = PointerSafety.NONE
    overflow_behavior: OverflowBehavior = OverflowBehavior.NONE
    eof_behavior: EofBehavior = EofBehavior.NO_CHANGE
    eof_value: int = 0
    fixed_input: Optional[str] = None

    def __post_init__(self) -> None:
        # Accept plain strings for the policy fields (CLI and JSON callers).
        object.__setattr__(self, "cell_size", CellSize(self.cell_size))
        object.__setattr__(self, "pointer_safety", PointerSafety(self.pointer_safety))
        object.__setattr__(self, "overflow_behavior", OverflowBehavior(self.overflow_behavior))
        object.__setattr__(self, "eof_behavior", EofBehavior(self.eof_behavior))
        if self.memory_size < 1:
            raise ValueError(f"Memory size must be positive, got {self.memory_size}")
        if not 0 <= self.eof_value <= 255:
            raise ValueError(f"EOF value must be a byte (0-255), got {self.eof_value}")
        if self.fixed_input is not None:
            encode_input(self.fixed_input)

    @property
    def cell_max(self) -> int:
        return self.cell_size.max_value

    def fixed_input_bytes(self) -> Optional[bytes]:
        if self.fixed_input is None:
            return None
        return bytes(encode_input(self.fixed_input))


__all__ = [
    "CellSize",
    "EofBehavior",
    "GeneratorConfig",
    "InputEncodingError",
    "OverflowBehavior",
    "PointerSafety",
    "encode_input",
]
