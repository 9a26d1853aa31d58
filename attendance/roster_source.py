# attendance/roster_source.py
from __future__ import annotations

import logging
from typing import Any, Iterable, List, Protocol

from attendance.errors import RosterSourceError
from attendance.roster import RosterRecord
from attendance.supabase_client import get_data

logger = logging.getLogger(__name__)


class RosterSource(Protocol):
    def fetch(self) -> List[RosterRecord]:
        ...


class StaticRosterSource:
    def __init__(self, records: Iterable[RosterRecord]) -> None:
        self._records = list(records)

    def fetch(self) -> List[RosterRecord]:
        return list(self._records)


class SupabaseRosterSource:
    """
    Reads the students table: student_id, full_name, image_url.
    Rows without a student_id are dropped here. Rows with a missing image or
    no detectable face are skipped later by load_roster.
    """

    def __init__(self, client: Any, table: str = "students") -> None:
        self._client = client
        self._table = table

    def fetch(self) -> List[RosterRecord]:
        try:
            resp = self._client.table(self._table).select("student_id, full_name, image_url").execute()
        except Exception as e:
            raise RosterSourceError(f"Failed to read {self._table}: {e}") from e

        err = getattr(resp, "error", None)
        if err:
            raise RosterSourceError(f"Failed to read {self._table}: {err}")

        records: List[RosterRecord] = []
        for row in get_data(resp):
            sid = row.get("student_id")
            if sid is None:
                logger.warning("Skipping %s row without student_id: %r", self._table, row)
                continue
            records.append(
                RosterRecord(
                    identity_id=str(sid),
                    display_name=str(row.get("full_name") or ""),
                    image_reference=str(row.get("image_url") or "").strip(),
                )
            )
        return records
