from __future__ import annotations

import argparse
import shlex
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .config import GeneratorConfig, InputEncodingError, encode_input
from .interpreter import BrainfuckInterpreter, CellOverflowError, ExecutionState, StepLimitExceeded
from .syntax import UnbalancedBracketError, match_brackets

PROMPT = "(bf) "
BANNER = "bf2py debugger (type 'help' for commands)"


@dataclass
class VisualizerSession:
    """Interactive stepping over one program with breakpoints and bounded history."""

    code: str
    input_template: List[int]
    config: GeneratorConfig = field(default_factory=GeneratorConfig)
    tape_window: int = 10
    max_steps: Optional[int] = None
    history_limit: int = 200

    def __post_init__(self) -> None:
        # the stepper is lazy, so bracket errors have to be surfaced here
        match_brackets(self.code)
        self.breakpoints: set[int] = set()
        self.history: List[ExecutionState] = []
        self.hit_breakpoint: Optional[int] = None
        self.restart()

    def restart(self) -> None:
        self.history.clear()
        self.hit_breakpoint = None
        self.error: Optional[str] = None
        self.finished = False
        self.interpreter = BrainfuckInterpreter(config=self.config)
        self._states = self.interpreter.step(
            self.code,
            input_data=list(self.input_template),
            max_steps=self.max_steps,
            tape_window=self.tape_window,
        )
        self._record_state(
            self.interpreter.snapshot(0, None, 0, len(self.code), self.tape_window)
        )

    def _record_state(self, state: ExecutionState) -> None:
        self.history.append(state)
        del self.history[: -self.history_limit]
        self.last_state = state

    def _advance(self) -> Optional[ExecutionState]:
        try:
            return next(self._states)
        except StopIteration:
            return None
        except StepLimitExceeded:
            self.finished = True
            raise
        except (IndexError, ValueError, CellOverflowError) as exc:
            self.error = str(exc)
            return None

    def step_forward(self, count: int = 1) -> Sequence[ExecutionState]:
        """Advance up to ``count`` instructions, stopping early at a breakpoint.

        Runtime faults of the program (pointer leaving the tape, checked cell
        overflow, writing a cell that is not a code point) finish the session
        and are kept in :attr:`error`.
        """
        states: List[ExecutionState] = []
        if count <= 0:
            return states
        self.hit_breakpoint = None
        while len(states) < count and not self.finished:
            state = self._advance()
            if state is None:
                self.finished = True
                break
            self._record_state(state)
            states.append(state)
            if state.command is None:
                self.finished = True
            elif state.pc in self.breakpoints:
                self.hit_breakpoint = state.pc
                break
        return states

    def run_until_break(self, limit: Optional[int] = None) -> Sequence[ExecutionState]:
        states: List[ExecutionState] = []
        while limit is None or len(states) < limit:
            advanced = self.step_forward(1)
            if not advanced:
                break
            states.extend(advanced)
            if self.hit_breakpoint is not None:
                break
        return states

    def current_state(self) -> ExecutionState:
        return self.last_state

    def add_breakpoint(self, pc: int) -> None:
        self.breakpoints.add(pc)

    def remove_breakpoint(self, pc: int) -> bool:
        try:
            self.breakpoints.remove(pc)
        except KeyError:
            return False
        return True

    def clear_breakpoints(self) -> None:
        self.breakpoints.clear()

    def list_breakpoints(self) -> List[int]:
        return sorted(self.breakpoints)

    def is_finished(self) -> bool:
        return self.finished


def format_state(state: ExecutionState, code: str, cell_width: int = 3) -> str:
    command = "(init)" if state.command is None else state.command
    lines = [
        f"step={state.step} pc={state.pc}/{state.code_length} command={command!r} "
        f"pointer={state.pointer} input_pos={state.input_pos}"
    ]
    if state.output:
        lines.append(f"output={state.output!r}")
    cells = []
    for offset, value in enumerate(state.tape):
        index = state.tape_start + offset
        cell = f"{index}:{value:0{cell_width}}"
        cells.append(f"[{cell}]" if index == state.pointer else f" {cell} ")
    lines.append("tape=" + " ".join(cells))
    lines.append(f"code={_format_code_window(code, state.pc)}")
    return "\n".join(lines)


def _format_code_window(code: str, pc: int, window: int = 16) -> str:
    if not code:
        return "(empty)"
    start = max(0, pc - window)
    end = min(len(code), pc + window + 1)
    text = "".join(
        f"[{code[index]}]" if index == pc else code[index] for index in range(start, end)
    )
    return text + "[END]" if pc >= len(code) else text


# REPL commands return False to leave the loop.
ReplCommand = Callable[[VisualizerSession, List[str]], bool]


def _print_state(state: ExecutionState, session: VisualizerSession) -> None:
    print("-" * 40)
    width = len(str(session.config.cell_max))
    print(format_state(state, session.code, cell_width=width))


def _report(session: VisualizerSession, states: Sequence[ExecutionState], done_message: str) -> None:
    if states:
        _print_state(states[-1], session)
    elif session.is_finished() and session.error is None:
        print(done_message)
    if session.hit_breakpoint is not None:
        print(f"ブレークポイント {session.hit_breakpoint} に到達しました。")
    if session.error is not None:
        print(f"実行時エラー: {session.error}", file=sys.stderr)


def _cmd_next(session: VisualizerSession, args: List[str]) -> bool:
    count = max(1, int(args[0])) if args else 1
    _report(session, session.step_forward(count), "プログラムは終了しています。")
    return True


def _cmd_run(session: VisualizerSession, args: List[str]) -> bool:
    limit = int(args[0]) if args else None
    _report(session, session.run_until_break(limit), "プログラムは終了しました。")
    return True


def _cmd_state(session: VisualizerSession, args: List[str]) -> bool:
    _print_state(session.current_state(), session)
    return True


def _cmd_history(session: VisualizerSession, args: List[str]) -> bool:
    count = int(args[0]) if args else 10
    for state in session.history[-count:]:
        _print_state(state, session)
    return True


def _cmd_break(session: VisualizerSession, args: List[str]) -> bool:
    if not args:
        print("ブレークポイントを指定してください。")
        return True
    pc = int(args[0])
    session.add_breakpoint(pc)
    print(f"ブレークポイント {pc} を設定しました。")
    return True


def _cmd_breaks(session: VisualizerSession, args: List[str]) -> bool:
    points = session.list_breakpoints()
    if points:
        print("ブレークポイント:", ", ".join(map(str, points)))
    else:
        print("ブレークポイントはありません。")
    return True


def _cmd_clear(session: VisualizerSession, args: List[str]) -> bool:
    if not args:
        session.clear_breakpoints()
        print("ブレークポイントを全て削除しました。")
    elif session.remove_breakpoint(int(args[0])):
        print(f"ブレークポイント {args[0]} を削除しました。")
    else:
        print(f"ブレークポイント {args[0]} は存在しません。")
    return True


def _cmd_restart(session: VisualizerSession, args: List[str]) -> bool:
    session.restart()
    print("セッションを再開しました。")
    _print_state(session.current_state(), session)
    return True


def _cmd_quit(session: VisualizerSession, args: List[str]) -> bool:
    return False


HELP: Tuple[Tuple[str, str], ...] = (
    ("next [N]", "N ステップ進める (省略時 1)"),
    ("run [N]", "ブレークポイントまたは N ステップ到達まで実行"),
    ("state", "現在の状態を表示"),
    ("history [N]", "直近 N ステップの履歴を表示"),
    ("break PC", "指定 PC にブレークポイントを設定"),
    ("breaks", "ブレークポイント一覧"),
    ("clear [PC]", "ブレークポイントを削除 (PC 省略で全削除)"),
    ("restart", "セッションをリセット"),
    ("quit/exit", "終了"),
)


def _cmd_help(session: VisualizerSession, args: List[str]) -> bool:
    print("利用可能なコマンド:")
    for usage, description in HELP:
        print(f"  {usage:<12}: {description}")
    return True


COMMANDS: Dict[str, ReplCommand] = {
    "n": _cmd_next,
    "next": _cmd_next,
    "r": _cmd_run,
    "run": _cmd_run,
    "state": _cmd_state,
    "history": _cmd_history,
    "break": _cmd_break,
    "breaks": _cmd_breaks,
    "clear": _cmd_clear,
    "restart": _cmd_restart,
    "help": _cmd_help,
    "quit": _cmd_quit,
    "exit": _cmd_quit,
}


def run_repl(session: VisualizerSession) -> None:
    print(BANNER)
    _print_state(session.current_state(), session)
    while True:
        try:
            line = input(PROMPT).strip()
        except EOFError:
            print()
            return
        if not line:
            continue
        try:
            name, *args = shlex.split(line)
            handler = COMMANDS.get(name.lower())
            if handler is None:
                print("不明なコマンドです。'help' を参照してください。")
            elif not handler(session, args):
                return
        except StepLimitExceeded:
            print("ステップ上限に達しました。", file=sys.stderr)
        except ValueError:
            print("数値が正しくありません。", file=sys.stderr)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="bf2py stepping debugger")
    parser.add_argument("source", help="Path to Brainfuck source file")
    parser.add_argument("--input", default="", help="入力として渡す文字列 (ASCII)")
    parser.add_argument(
        "--max-steps",
        type=int,
        default=5_000_000,
        help="ステップ上限 (デフォルト: 5,000,000)",
    )
    parser.add_argument("--tape-window", type=int, default=10, help="テープ表示の幅")
    parser.add_argument("--history-limit", type=int, default=200, help="履歴に保持するステップ数")
    args = parser.parse_args(argv)

    try:
        source_text = Path(args.source).read_text(encoding="utf-8")
    except OSError as exc:
        print(f"ファイルを開けません: {exc}", file=sys.stderr)
        return 1

    try:
        session = VisualizerSession(
            source_text,
            input_template=encode_input(args.input),
            tape_window=args.tape_window,
            max_steps=args.max_steps,
            history_limit=args.history_limit,
        )
    except (InputEncodingError, UnbalancedBracketError) as exc:
        print(str(exc), file=sys.stderr)
        return 1

    run_repl(session)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
