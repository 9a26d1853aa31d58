# api/routes/roster.py
from __future__ import annotations

from typing import Any, List

from fastapi import APIRouter, Depends

from api.common import await_or_http, get_engine
from api.schemas import RosterEntryResponse, RosterLoadResponse
from attendance.engine import AttendanceEngine

router = APIRouter(prefix="/roster", tags=["roster"])


@router.post("/load", response_model=RosterLoadResponse)
async def load_roster(engine: AttendanceEngine = Depends(get_engine)) -> Any:
    result = await await_or_http(engine.load_roster)
    return {
        "roster_size": len(result.roster),
        "loaded": result.loaded,
        "skipped": [
            {"identity_id": s.identity_id, "display_name": s.display_name, "reason": s.reason}
            for s in result.skipped
        ],
    }


@router.get("", response_model=List[RosterEntryResponse])
def list_roster(engine: AttendanceEngine = Depends(get_engine)) -> Any:
    return [{"identity_id": e.identity_id, "display_name": e.display_name} for e in engine.roster]
