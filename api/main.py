# api/main.py
from __future__ import annotations

import logging
import os
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import events, ledger, roster, session
from attendance.config import Settings, configure_logging
from attendance.engine import AttendanceEngine
from attendance.events import EventLog

logger = logging.getLogger(__name__)


def create_app(engine: Optional[AttendanceEngine] = None) -> FastAPI:
    app = FastAPI(title="Face Attendance API")
    app.state.engine = engine

    # ---- CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---- Routers
    app.include_router(roster.router)
    app.include_router(session.router)
    app.include_router(ledger.router)
    app.include_router(events.router)

    # ---- Debug flag
    debug_errors = os.getenv("DEBUG_ERRORS", "0").strip() == "1"

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s", request.url.path)
        # trace only when DEBUG_ERRORS=1
        if debug_errors:
            return JSONResponse(
                status_code=500,
                content={
                    "msg": "unhandled exception",
                    "error": repr(exc),
                    "path": str(request.url),
                    "trace": traceback.format_exc()[-2500:],
                },
            )
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})

    @app.get("/")
    def root() -> Dict[str, Any]:
        return {"ok": True, "service": "face-attendance-api"}

    @app.get("/health")
    def health() -> Dict[str, Any]:
        eng = app.state.engine
        return {
            "ok": True,
            "ts": datetime.now(timezone.utc).isoformat(),
            "model_status": eng.model_status if eng is not None else "not loaded",
        }

    @app.on_event("startup")
    async def _startup():
        if app.state.engine is None:
            settings = Settings.from_env()
            configure_logging(settings.log_level)
            app.state.engine = AttendanceEngine.from_settings(settings, reporter=EventLog())
        # models + camera; a failure is kept on the engine and blocks start()
        await app.state.engine.prepare()

    @app.on_event("shutdown")
    async def _shutdown():
        if app.state.engine is not None:
            await app.state.engine.shutdown()

    return app


def run() -> None:
    import uvicorn

    uvicorn.run(
        "api.main:create_app",
        factory=True,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )


if __name__ == "__main__":
    run()
