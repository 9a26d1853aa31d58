# api/routes/session.py
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends

from api.common import get_engine, run_or_http
from api.schemas import SessionStartRequest, SessionStatusResponse, ThresholdUpdateRequest
from attendance.engine import AttendanceEngine

router = APIRouter(prefix="/session", tags=["session"])


@router.get("", response_model=SessionStatusResponse)
def get_session(engine: AttendanceEngine = Depends(get_engine)) -> Any:
    return engine.status()


# start/stop must run on the event loop that owns the scan task
@router.post("/start", response_model=SessionStatusResponse)
async def start_session(
    payload: Optional[SessionStartRequest] = None,
    engine: AttendanceEngine = Depends(get_engine),
) -> Any:
    threshold = payload.threshold if payload is not None else None
    run_or_http(lambda: engine.start(threshold))
    return engine.status()


@router.post("/stop", response_model=SessionStatusResponse)
async def stop_session(engine: AttendanceEngine = Depends(get_engine)) -> Any:
    engine.stop()
    return engine.status()


@router.patch("/threshold", response_model=SessionStatusResponse)
def update_threshold(payload: ThresholdUpdateRequest, engine: AttendanceEngine = Depends(get_engine)) -> Any:
    run_or_http(lambda: engine.set_threshold(payload.threshold))
    return engine.status()
