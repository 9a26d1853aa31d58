# attendance/events.py
from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    MODEL_STATUS = "model_status"
    ROSTER_LOADED = "roster_loaded"
    ROSTER_SKIPPED = "roster_skipped"
    SESSION_STARTED = "session_started"
    SESSION_STOPPED = "session_stopped"
    NO_FRAME = "no_frame"
    NO_FACES = "no_faces"
    UNKNOWN_FACE = "unknown_face"
    MATCHED = "matched"
    CHECKED_IN = "checked_in"
    LEDGER_SIZE = "ledger_size"
    CYCLE_ERROR = "cycle_error"
    PERSISTENCE_FAILED = "persistence_failed"
    SETUP_ERROR = "setup_error"


_WARNING_KINDS = {
    EventKind.ROSTER_SKIPPED,
    EventKind.CYCLE_ERROR,
    EventKind.PERSISTENCE_FAILED,
    EventKind.SETUP_ERROR,
}
_DEBUG_KINDS = {EventKind.NO_FRAME, EventKind.NO_FACES}


@dataclass(frozen=True)
class ScanEvent:
    kind: EventKind
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "data": dict(self.data),
            "at": self.at.isoformat(),
        }


class Reporter(Protocol):
    def emit(self, event: ScanEvent) -> None:
        ...


def _level_for(kind: EventKind) -> int:
    if kind in _WARNING_KINDS:
        return logging.WARNING
    if kind in _DEBUG_KINDS:
        return logging.DEBUG
    return logging.INFO


class LoggingReporter:
    """Observational sink that only writes events to the log."""

    def emit(self, event: ScanEvent) -> None:
        logger.log(_level_for(event.kind), "[%s] %s", event.kind.value, event.message)


class EventLog(LoggingReporter):
    """Logs every event and keeps the most recent ones for display."""

    def __init__(self, maxlen: int = 200) -> None:
        self._lock = threading.Lock()
        self._events: Deque[ScanEvent] = deque(maxlen=maxlen)

    def emit(self, event: ScanEvent) -> None:
        super().emit(event)
        with self._lock:
            self._events.append(event)

    def recent(self, limit: Optional[int] = None, kind: Optional[EventKind] = None) -> List[ScanEvent]:
        with self._lock:
            events = list(self._events)
        if kind is not None:
            events = [e for e in events if e.kind == kind]
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return events

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
