# api/routes/events.py
from __future__ import annotations

from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from api.common import get_engine
from api.schemas import ScanEventResponse
from attendance.engine import AttendanceEngine
from attendance.events import EventKind

router = APIRouter(prefix="/events", tags=["events"])


@router.get("", response_model=List[ScanEventResponse])
def list_events(
    limit: int = Query(default=50, ge=1, le=200),
    kind: Optional[str] = Query(default=None),
    engine: AttendanceEngine = Depends(get_engine),
) -> Any:
    recent = getattr(engine.reporter, "recent", None)
    if recent is None:
        return []

    kind_filter = None
    if kind is not None:
        try:
            kind_filter = EventKind(kind)
        except ValueError:
            raise HTTPException(status_code=422, detail=f"Unknown event kind: {kind}")

    return [e.to_dict() for e in recent(limit=limit, kind=kind_filter)]
