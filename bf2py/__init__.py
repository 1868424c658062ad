from .config import (
    CellSize,
    EofBehavior,
    GeneratorConfig,
    InputEncodingError,
    OverflowBehavior,
    PointerSafety,
)
from .generator import BrainfuckToPython, UnsupportedConstructError
from .interpreter import BrainfuckInterpreter, CellOverflowError, ExecutionState, StepLimitExceeded
from .syntax import Instruction, Program, Repeated, UnbalancedBracketError, parse_program
from .visualizer import VisualizerSession

__all__ = [
    "BrainfuckInterpreter",
    "BrainfuckToPython",
    "CellOverflowError",
    "CellSize",
    "EofBehavior",
    "ExecutionState",
    "GeneratorConfig",
    "InputEncodingError",
    "Instruction",
    "OverflowBehavior",
    "PointerSafety",
    "Program",
    "Repeated",
    "StepLimitExceeded",
    "UnbalancedBracketError",
    "UnsupportedConstructError",
    "VisualizerSession",
    "parse_program",
]
