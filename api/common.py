# api/common.py
from __future__ import annotations

from typing import Any, Awaitable, Callable, TypeVar

from fastapi import HTTPException, Request

from attendance.engine import AttendanceEngine
from attendance.errors import (
    AttendanceError,
    InvalidThresholdError,
    RosterSourceError,
    SetupError,
    UsageError,
)

T = TypeVar("T")


def get_engine(request: Request) -> AttendanceEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Attendance engine is not initialized")
    return engine


def to_http_error(exc: AttendanceError) -> HTTPException:
    if isinstance(exc, InvalidThresholdError):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, UsageError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, SetupError):
        return HTTPException(status_code=503, detail=str(exc))
    if isinstance(exc, RosterSourceError):
        return HTTPException(status_code=502, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def run_or_http(fn: Callable[[], T]) -> T:
    """
    Engine operations signal rejected/failed requests with AttendanceError.
    Map those to HTTP status codes; anything else goes to the app handler.
    """
    try:
        return fn()
    except AttendanceError as e:
        raise to_http_error(e)


async def await_or_http(fn: Callable[[], Awaitable[Any]]) -> Any:
    try:
        return await fn()
    except AttendanceError as e:
        raise to_http_error(e)
