# attendance/ledger.py
from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional


@dataclass(frozen=True)
class AttendanceRecord:
    identity_id: str
    display_name: str
    checkin_time: datetime

    def to_row(self) -> Dict[str, str]:
        return {
            "student_id": self.identity_id,
            "full_name": self.display_name,
            "checkin_time": self.checkin_time.isoformat(),
        }


@dataclass(frozen=True)
class RecordResult:
    inserted: bool
    record: AttendanceRecord


class AttendanceLedger:
    """
    Session record of who has checked in and when.

    First write wins: an identity is recorded exactly once and never updated
    or removed. There is no clear(); a new session gets a new ledger.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: Dict[str, AttendanceRecord] = {}

    def record_if_absent(self, identity_id: str, display_name: str, now: datetime) -> RecordResult:
        with self._lock:
            existing = self._records.get(identity_id)
            if existing is not None:
                return RecordResult(inserted=False, record=existing)
            record = AttendanceRecord(identity_id=identity_id, display_name=display_name, checkin_time=now)
            self._records[identity_id] = record
            return RecordResult(inserted=True, record=record)

    def list(self) -> List[AttendanceRecord]:
        """Records in first-seen order."""
        with self._lock:
            return list(self._records.values())

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def get(self, identity_id: str) -> Optional[AttendanceRecord]:
        with self._lock:
            return self._records.get(identity_id)

    def __contains__(self, identity_id: object) -> bool:
        with self._lock:
            return identity_id in self._records

    def __len__(self) -> int:
        return self.count()
