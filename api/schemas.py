# api/schemas.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# -----------------------------
# roster
# -----------------------------
class RosterEntryResponse(BaseModel):
    identity_id: str
    display_name: str


class SkippedRecordResponse(BaseModel):
    identity_id: str
    display_name: str
    reason: str


class RosterLoadResponse(BaseModel):
    roster_size: int
    loaded: int
    skipped: List[SkippedRecordResponse] = []


# -----------------------------
# session
# -----------------------------
class SessionStartRequest(BaseModel):
    threshold: Optional[float] = Field(default=None, ge=0)


class ThresholdUpdateRequest(BaseModel):
    threshold: float = Field(ge=0)


class SessionStatusResponse(BaseModel):
    state: str
    threshold: float
    scan_interval_ms: int
    roster_size: int
    present_count: int
    last_match: str = ""
    model_status: str
    setup_error: Optional[str] = None
    loading: bool = False


# -----------------------------
# attendance
# -----------------------------
class AttendanceRecordResponse(BaseModel):
    identity_id: str
    display_name: str
    checkin_time: str


class ScanEventResponse(BaseModel):
    kind: str
    message: str
    data: Dict[str, Any] = {}
    at: str
