# attendance/persistence.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Protocol

from attendance.supabase_client import get_data

logger = logging.getLogger(__name__)


class AttendanceSink(Protocol):
    def write_attendance(self, identity_id: str, display_name: str, checkin_time: datetime) -> None:
        ...


class SupabaseAttendanceSink:
    """
    Inserts one row per new check-in into the attendance table.
    supabase-py raises on failure; callers treat that as best-effort.
    """

    def __init__(self, client: Any, table: str = "attendance") -> None:
        self._client = client
        self._table = table

    def write_attendance(self, identity_id: str, display_name: str, checkin_time: datetime) -> None:
        payload: Dict[str, Any] = {
            "student_id": identity_id,
            "full_name": display_name,
            "checkin_time": checkin_time.isoformat(),
        }
        resp = self._client.table(self._table).insert([payload]).execute()
        err = getattr(resp, "error", None)
        if err:
            raise RuntimeError(f"Failed to insert attendance row: {err}")
        logger.debug("Persisted check-in %s (%d row(s))", identity_id, len(get_data(resp)))


class NullAttendanceSink:
    """Used when no backend is configured. Check-ins stay in memory only."""

    def write_attendance(self, identity_id: str, display_name: str, checkin_time: datetime) -> None:
        logger.debug("No attendance backend configured; %s not persisted", identity_id)
