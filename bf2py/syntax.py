from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

logger = logging.getLogger(__name__)


class UnbalancedBracketError(ValueError):
    pass


class Instruction(Enum):
    POINTER_ADD = ">"
    POINTER_SUB = "<"
    VALUE_ADD = "+"
    VALUE_SUB = "-"
    READ = ","
    WRITE = "."
    LOOP_START = "["
    LOOP_END = "]"

    @property
    def instruction(self) -> "Instruction":
        return self

    @property
    def count(self) -> int:
        return 1

    @classmethod
    def from_char(cls, char: str) -> Optional["Instruction"]:
        return _CHAR_TO_INSTRUCTION.get(char)


_CHAR_TO_INSTRUCTION: Dict[str, Instruction] = {member.value: member for member in Instruction}

# Instructions that always stay singleton tokens in the run-length form.
UNMERGED = frozenset({Instruction.LOOP_START, Instruction.LOOP_END, Instruction.READ})


@dataclass(frozen=True)
class Repeated:
    instruction: Instruction
    count: int = 1

    def __post_init__(self) -> None:
        if self.count < 1:
            raise ValueError(f"Repeat count must be at least 1, got {self.count}")


Token = Union[Instruction, Repeated]


# === Tokenizers ===


def tokenize(code: str) -> List[Instruction]:
    tokens = [_CHAR_TO_INSTRUCTION[char] for char in code if char in _CHAR_TO_INSTRUCTION]
    logger.debug("tokenizer found %d tokens", len(tokens))
    return tokens


def tokenize_repeated(code: str) -> List[Repeated]:
    instructions = [char for char in code if char in _CHAR_TO_INSTRUCTION]
    tokens: List[Repeated] = []
    length = len(instructions)
    index = 0
    while index < length:
        instruction = _CHAR_TO_INSTRUCTION[instructions[index]]
        index += 1
        count = 1
        if instruction not in UNMERGED:
            while index < length and instructions[index] == instruction.value:
                count += 1
                index += 1
        tokens.append(Repeated(instruction, count))
    logger.debug("tokenizer compressed %d instructions to %d tokens", length, len(tokens))
    return tokens


def expand(tokens: Iterable[Token]) -> List[Instruction]:
    expanded: List[Instruction] = []
    for token in tokens:
        expanded.extend([token.instruction] * token.count)
    return expanded


def match_brackets(code: str) -> Dict[int, int]:
    """Map every bracket offset in ``code`` to the offset of its partner.

    Raises :class:`UnbalancedBracketError` on the first unmatched bracket.
    """
    mapping: Dict[int, int] = {}
    stack: List[int] = []
    for index, char in enumerate(code):
        if char == "[":
            stack.append(index)
        elif char == "]":
            if not stack:
                raise UnbalancedBracketError(f"Unmatched ']' at position {index}")
            start = stack.pop()
            mapping[start] = index
            mapping[index] = start
    if stack:
        raise UnbalancedBracketError(f"Unmatched '[' at position {stack.pop()}")
    return mapping


# === Segment tree ===


@dataclass(frozen=True)
class Executable:
    tokens: Tuple[Token, ...]


@dataclass(frozen=True)
class Loop:
    body: Tuple["Segment", ...]


Segment = Union[Executable, Loop]


def segment(tokens: Sequence[Token]) -> List[Segment]:
    segments, _ = _segment_from(tokens, 0)
    return segments


@dataclass
class _Level:
    """One open nesting level of the structurer."""

    segments: List[Segment] = field(default_factory=list)
    code: List[Token] = field(default_factory=list)

    def flush(self) -> None:
        if self.code:
            self.segments.append(Executable(tuple(self.code)))
            self.code = []

    def close(self) -> Loop:
        self.flush()
        return Loop(tuple(self.segments))


def _segment_from(tokens: Sequence[Token], start: int) -> Tuple[List[Segment], int]:
    """Structure ``tokens[start:]`` up to the first unmatched loop end.

    Returns the segments together with the number of tokens consumed, not
    counting the terminating loop end. Open loops are kept on an explicit
    stack, so nesting depth is bounded only by memory. A loop left open at
    the end of the input swallows the rest of it.
    """
    levels = [_Level()]
    index = start
    length = len(tokens)
    while index < length:
        token = tokens[index]
        instruction = token.instruction
        if instruction is Instruction.LOOP_START:
            levels[-1].flush()
            levels.append(_Level())
        elif instruction is Instruction.LOOP_END:
            if len(levels) == 1:
                break
            loop = levels.pop().close()
            levels[-1].segments.append(loop)
        else:
            levels[-1].code.append(token)
        index += 1
    while len(levels) > 1:
        loop = levels.pop().close()
        levels[-1].segments.append(loop)
    levels[0].flush()
    return levels[0].segments, index - start


def walk_tokens(segments: Iterable[Segment]) -> Iterable[Token]:
    """Yield every straight-line token of the tree in pre-order."""
    pending = [iter(segments)]
    while pending:
        item = next(pending[-1], None)
        if item is None:
            pending.pop()
        elif isinstance(item, Executable):
            yield from item.tokens
        else:
            pending.append(iter(item.body))


@dataclass(frozen=True)
class Program:
    segments: Tuple[Segment, ...]
    needs_input: bool

    @classmethod
    def parse(cls, code: str, *, repeated: bool = True, strict: bool = False) -> "Program":
        if strict:
            match_brackets(code)
        tokens: Sequence[Token] = tokenize_repeated(code) if repeated else tokenize(code)
        needs_input = any(token.instruction is Instruction.READ for token in tokens)
        segments = segment(tokens)
        logger.debug(
            "structured %d tokens into %d top-level segments (needs_input=%s)",
            len(tokens),
            len(segments),
            needs_input,
        )
        return cls(segments=tuple(segments), needs_input=needs_input)


def parse_program(code: str, *, repeated: bool = True, strict: bool = False) -> Program:
    return Program.parse(code, repeated=repeated, strict=strict)


# === Interchange ===


def _token_to_data(token: Token) -> Any:
    if isinstance(token, Repeated):
        return {"instruction": token.instruction.value, "count": token.count}
    return token.value


def _token_from_data(data: Any) -> Token:
    if isinstance(data, str):
        instruction = Instruction.from_char(data)
        if instruction is None:
            raise ValueError(f"Unknown instruction {data!r}")
        return instruction
    if isinstance(data, dict):
        instruction = Instruction.from_char(data.get("instruction", ""))
        if instruction is None:
            raise ValueError(f"Unknown instruction {data.get('instruction')!r}")
        count = data.get("count", 1)
        if not isinstance(count, int) or isinstance(count, bool):
            raise ValueError(f"Repeat count must be an integer, got {count!r}")
        return Repeated(instruction, count)
    raise ValueError(f"Malformed token {data!r}")


def segment_to_data(item: Segment) -> Dict[str, Any]:
    root: List[Dict[str, Any]] = []
    pending = [(iter((item,)), root)]
    while pending:
        children, target = pending[-1]
        child = next(children, None)
        if child is None:
            pending.pop()
        elif isinstance(child, Executable):
            target.append(
                {"kind": "executable", "tokens": [_token_to_data(token) for token in child.tokens]}
            )
        else:
            body: List[Dict[str, Any]] = []
            target.append({"kind": "loop", "body": body})
            pending.append((iter(child.body), body))
    return root[0]


def _list_field(data: Dict[str, Any], key: str) -> List[Any]:
    value = data.get(key, [])
    if not isinstance(value, list):
        raise ValueError(f"Segment field {key!r} must be a list, got {value!r}")
    return value


_DONE = object()


def segment_from_data(data: Any) -> Segment:
    root: List[Segment] = []
    pending = [(iter((data,)), root)]
    while pending:
        children, built = pending[-1]
        child = next(children, _DONE)
        if child is _DONE:
            pending.pop()
            if pending:
                pending[-1][1].append(Loop(tuple(built)))
            continue
        if not isinstance(child, dict):
            raise ValueError(f"Malformed segment {child!r}")
        kind = child.get("kind")
        if kind == "executable":
            tokens = _list_field(child, "tokens")
            built.append(Executable(tuple(_token_from_data(token) for token in tokens)))
        elif kind == "loop":
            pending.append((iter(_list_field(child, "body")), []))
        else:
            raise ValueError(f"Unknown segment kind {kind!r}")
    return root[0]


def program_to_dict(program: Program) -> Dict[str, Any]:
    return {
        "needs_input": program.needs_input,
        "segments": [segment_to_data(item) for item in program.segments],
    }


def program_from_dict(data: Dict[str, Any]) -> Program:
    if not isinstance(data, dict) or "segments" not in data:
        raise ValueError("Program document must be an object with a 'segments' list")
    segments = tuple(segment_from_data(item) for item in data["segments"])
    return Program(segments=segments, needs_input=bool(data.get("needs_input", False)))


def dump_program_json(program: Program) -> str:
    return json.dumps(program_to_dict(program), indent=2)


def load_program_json(text: str) -> Program:
    return program_from_dict(json.loads(text))


__all__ = [
    "Executable",
    "Instruction",
    "Loop",
    "Program",
    "Repeated",
    "Segment",
    "Token",
    "UnbalancedBracketError",
    "dump_program_json",
    "expand",
    "load_program_json",
    "match_brackets",
    "parse_program",
    "program_from_dict",
    "program_to_dict",
    "segment",
    "tokenize",
    "tokenize_repeated",
    "walk_tokens",
]
