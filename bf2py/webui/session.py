from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional

from bf2py.config import GeneratorConfig
from bf2py.visualizer import VisualizerSession

logger = logging.getLogger(__name__)


@dataclass
class SessionRecord:
    session_id: str
    session: VisualizerSession


class SessionStore:
    """In-memory debugger sessions keyed by random hex ids, guarded by a lock."""

    def __init__(self) -> None:
        self._records: Dict[str, SessionRecord] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def create_session(
        self,
        *,
        code: str,
        input_template: List[int],
        config: Optional[GeneratorConfig] = None,
        tape_window: int = 10,
        max_steps: Optional[int] = None,
        history_limit: int = 200,
    ) -> SessionRecord:
        record = SessionRecord(
            session_id=uuid.uuid4().hex,
            session=VisualizerSession(
                code=code,
                input_template=input_template,
                config=config or GeneratorConfig(),
                tape_window=tape_window,
                max_steps=max_steps,
                history_limit=history_limit,
            ),
        )
        with self._lock:
            self._records[record.session_id] = record
        logger.debug("created session %s (%d bytes of code)", record.session_id, len(code))
        return record

    def get(self, session_id: str) -> SessionRecord:
        with self._lock:
            record = self._records.get(session_id)
        if record is None:
            raise KeyError(f"Unknown session id: {session_id}")
        return record

    def reset(self, session_id: str) -> SessionRecord:
        """Restart the session from its initial state and drop its breakpoints."""
        record = self.get(session_id)
        record.session.clear_breakpoints()
        record.session.restart()
        return record

    def remove(self, session_id: str) -> bool:
        with self._lock:
            removed = self._records.pop(session_id, None)
        if removed is not None:
            logger.debug("removed session %s", session_id)
        return removed is not None


__all__ = ["SessionRecord", "SessionStore"]
