from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Response, status
from pydantic import BaseModel, Field

from bf2py.config import (
    CellSize,
    EofBehavior,
    GeneratorConfig,
    OverflowBehavior,
    PointerSafety,
    encode_input,
)
from bf2py.generator import BrainfuckToPython, UnsupportedConstructError
from bf2py.interpreter import ExecutionState, StepLimitExceeded
from bf2py.syntax import Program, program_to_dict

from .session import SessionRecord, SessionStore


def _state_to_dict(state: ExecutionState) -> dict:
    return {
        "step": state.step,
        "pc": state.pc,
        "command": state.command,
        "pointer": state.pointer,
        "tape_start": state.tape_start,
        "tape": list(state.tape),
        "output": state.output,
        "code_length": state.code_length,
        "input_pos": state.input_pos,
    }


class ConfigModel(BaseModel):
    memory_size: int = Field(default=30_000, ge=1)
    cell_size: CellSize = CellSize.U8
    pointer_safety: PointerSafety = PointerSafety.NONE
    overflow_behavior: OverflowBehavior = OverflowBehavior.NONE
    eof_behavior: EofBehavior = EofBehavior.NO_CHANGE
    eof_value: int = Field(default=0, ge=0, le=255)
    fixed_input: Optional[str] = None

    def to_config(self) -> GeneratorConfig:
        return GeneratorConfig(
            memory_size=self.memory_size,
            cell_size=self.cell_size,
            pointer_safety=self.pointer_safety,
            overflow_behavior=self.overflow_behavior,
            eof_behavior=self.eof_behavior,
            eof_value=self.eof_value,
            fixed_input=self.fixed_input,
        )


class ParseRequest(BaseModel):
    code: str
    compress: bool = True
    allow_unbalanced: bool = False


class GenerateRequest(ParseRequest):
    config: ConfigModel = Field(default_factory=ConfigModel)


class GenerateResponse(BaseModel):
    code: str
    needs_input: bool


class SessionConfiguration(BaseModel):
    code: str = ""
    input: str = ""
    config: ConfigModel = Field(default_factory=ConfigModel)
    tape_window: int = Field(default=10, ge=0)
    max_steps: Optional[int] = Field(default=None, ge=1)
    history_limit: int = Field(default=200, ge=1)


class SessionState(BaseModel):
    step: int
    pc: int
    command: Optional[str]
    pointer: int
    tape_start: int
    tape: List[int]
    output: str
    code_length: int
    input_pos: int


class SessionPayload(BaseModel):
    session_id: str
    code: str
    state: SessionState
    history: List[SessionState]
    finished: bool
    history_size: int
    breakpoints: List[int]
    hit_breakpoint: Optional[int]
    error: Optional[str]


class StepResponse(SessionPayload):
    states: List[SessionState]


class StepRequest(BaseModel):
    count: int = Field(default=1, ge=1)


class RunRequest(BaseModel):
    limit: Optional[int] = Field(default=None, ge=1)
    ignore_breakpoints: bool = False


class BreakpointRequest(BaseModel):
    pc: int = Field(ge=0)


def _unprocessable(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))


def _parse(payload: ParseRequest) -> Program:
    try:
        return Program.parse(
            payload.code,
            repeated=payload.compress,
            strict=not payload.allow_unbalanced,
        )
    except ValueError as exc:
        raise _unprocessable(exc) from exc


def create_app(store: Optional[SessionStore] = None) -> FastAPI:
    session_store = store or SessionStore()
    app = FastAPI(title="bf2py API", version="0.1.0")

    def _states(states: List[ExecutionState]) -> List[SessionState]:
        return [SessionState(**_state_to_dict(state)) for state in states]

    def _payload_fields(record: SessionRecord) -> Dict[str, Any]:
        session = record.session
        return {
            "session_id": record.session_id,
            "code": session.code,
            "state": SessionState(**_state_to_dict(session.current_state())),
            "history": _states(session.history),
            "finished": session.is_finished(),
            "history_size": len(session.history),
            "breakpoints": session.list_breakpoints(),
            "hit_breakpoint": session.hit_breakpoint,
            "error": session.error,
        }

    def _get_record(session_id: str) -> SessionRecord:
        try:
            return session_store.get(session_id)
        except KeyError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    @app.post("/api/generate", response_model=GenerateResponse)
    def generate(payload: GenerateRequest) -> GenerateResponse:
        program = _parse(payload)
        try:
            config = payload.config.to_config()
            code = BrainfuckToPython(config).generate(program)
        except (UnsupportedConstructError, ValueError) as exc:
            raise _unprocessable(exc) from exc
        return GenerateResponse(code=code, needs_input=program.needs_input)

    @app.post("/api/ast")
    def dump_ast(payload: ParseRequest) -> Dict[str, Any]:
        return program_to_dict(_parse(payload))

    @app.post("/api/session", response_model=SessionPayload, status_code=status.HTTP_201_CREATED)
    def create_session(payload: SessionConfiguration) -> SessionPayload:
        try:
            record = session_store.create_session(
                code=payload.code,
                input_template=encode_input(payload.input),
                config=payload.config.to_config(),
                tape_window=payload.tape_window,
                max_steps=payload.max_steps,
                history_limit=payload.history_limit,
            )
        except ValueError as exc:
            raise _unprocessable(exc) from exc
        return SessionPayload(**_payload_fields(record))

    @app.get("/api/session/{session_id}", response_model=SessionPayload)
    def get_session(session_id: str) -> SessionPayload:
        return SessionPayload(**_payload_fields(_get_record(session_id)))

    @app.post("/api/session/{session_id}/reset", response_model=SessionPayload)
    def reset_session(session_id: str) -> SessionPayload:
        _get_record(session_id)
        return SessionPayload(**_payload_fields(session_store.reset(session_id)))

    @app.post("/api/session/{session_id}/step", response_model=StepResponse)
    def step_session(session_id: str, payload: StepRequest) -> StepResponse:
        record = _get_record(session_id)
        try:
            states = list(record.session.step_forward(payload.count))
        except StepLimitExceeded as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        return StepResponse(states=_states(states), **_payload_fields(record))

    @app.post("/api/session/{session_id}/run", response_model=StepResponse)
    def run_session(session_id: str, payload: RunRequest) -> StepResponse:
        record = _get_record(session_id)
        session = record.session
        saved_breakpoints = set(session.breakpoints)
        if payload.ignore_breakpoints:
            session.clear_breakpoints()
        try:
            states = list(session.run_until_break(payload.limit))
        except StepLimitExceeded as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        finally:
            if payload.ignore_breakpoints:
                session.breakpoints = saved_breakpoints
        return StepResponse(states=_states(states), **_payload_fields(record))

    @app.post("/api/session/{session_id}/breakpoints", response_model=SessionPayload)
    def add_breakpoint(session_id: str, payload: BreakpointRequest) -> SessionPayload:
        record = _get_record(session_id)
        record.session.add_breakpoint(payload.pc)
        return SessionPayload(**_payload_fields(record))

    @app.delete("/api/session/{session_id}/breakpoints/{pc}", response_model=SessionPayload)
    def remove_breakpoint(session_id: str, pc: int) -> SessionPayload:
        record = _get_record(session_id)
        if not record.session.remove_breakpoint(pc):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Breakpoint not found at pc={pc}",
            )
        return SessionPayload(**_payload_fields(record))

    @app.delete("/api/session/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_session(session_id: str) -> Response:
        if not session_store.remove(session_id):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Unknown session id: {session_id}",
            )
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return app


__all__ = ["create_app"]
