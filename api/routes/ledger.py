# api/routes/ledger.py
from __future__ import annotations

from typing import Any, List

from fastapi import APIRouter, Depends, Response

from api.common import get_engine
from api.schemas import AttendanceRecordResponse
from attendance.engine import AttendanceEngine
from attendance.export import EXPORT_FILENAME

router = APIRouter(prefix="/attendance", tags=["attendance"])


@router.get("", response_model=List[AttendanceRecordResponse])
def list_attendance(engine: AttendanceEngine = Depends(get_engine)) -> Any:
    return [
        {
            "identity_id": r.identity_id,
            "display_name": r.display_name,
            "checkin_time": r.checkin_time.isoformat(),
        }
        for r in engine.records()
    ]


@router.get("/export")
def export_attendance(engine: AttendanceEngine = Depends(get_engine)) -> Response:
    return Response(
        content=engine.export_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'},
    )
