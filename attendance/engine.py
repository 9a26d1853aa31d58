# attendance/engine.py
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from attendance.config import Settings
from attendance.detector import DetectorOptions, FaceDetector, OnnxFaceDetector
from attendance.errors import SetupError, UsageError
from attendance.events import EventKind, EventLog, Reporter, ScanEvent
from attendance.export import export_csv
from attendance.ledger import AttendanceLedger, AttendanceRecord
from attendance.matcher import validate_threshold
from attendance.persistence import AttendanceSink, NullAttendanceSink, SupabaseAttendanceSink
from attendance.roster import Roster, RosterLoadResult, load_roster
from attendance.roster_source import RosterSource, SupabaseRosterSource
from attendance.scan_loop import ScanLoop, ScanState
from attendance.supabase_client import create_supabase
from attendance.video import OpenCVVideoSource, VideoSource

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AttendanceEngine:
    """
    Owns the roster, the session ledger, the match threshold and the scan
    loop. One engine per process; the HTTP layer keeps it on app.state.
    """

    def __init__(
        self,
        *,
        detector: FaceDetector,
        video: VideoSource,
        sink: Optional[AttendanceSink] = None,
        roster_source: Optional[RosterSource] = None,
        reporter: Optional[Reporter] = None,
        threshold: float = 0.6,
        scan_interval: float = 0.9,
        options: Optional[DetectorOptions] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.detector = detector
        self.video = video
        self.sink = sink or NullAttendanceSink()
        self.roster_source = roster_source
        self.reporter: Reporter = reporter or EventLog()

        self.roster = Roster()
        self.ledger = AttendanceLedger()
        self.last_match = ""
        self.model_status = "not loaded"
        self.setup_error: Optional[str] = None

        self._threshold = validate_threshold(threshold)
        self._clock = clock or utc_now
        self._loading = False
        self.loop = ScanLoop(self, video, detector, self.sink, period=scan_interval, options=options)

    @classmethod
    def from_settings(cls, settings: Settings, reporter: Optional[Reporter] = None) -> "AttendanceEngine":
        roster_source: Optional[RosterSource] = None
        sink: AttendanceSink = NullAttendanceSink()
        if settings.supabase_configured:
            client = create_supabase(settings)
            roster_source = SupabaseRosterSource(client, table=settings.students_table)
            sink = SupabaseAttendanceSink(client, table=settings.attendance_table)
        else:
            logger.warning("Supabase config missing (SUPABASE_URL/SUPABASE_KEY). Roster load disabled.")

        return cls(
            detector=OnnxFaceDetector(settings),
            video=OpenCVVideoSource(settings.camera_index, settings.frame_width, settings.frame_height),
            sink=sink,
            roster_source=roster_source,
            reporter=reporter,
            threshold=settings.match_threshold,
            scan_interval=settings.scan_interval,
            options=DetectorOptions(min_score=settings.detect_min_score, input_size=settings.detect_input_size),
        )

    # -----------------------------
    # Helpers
    # -----------------------------
    def _emit(self, kind: EventKind, message: str, **data: Any) -> None:
        self.reporter.emit(ScanEvent(kind=kind, message=message, data=data))

    def now(self) -> datetime:
        return self._clock()

    @property
    def threshold(self) -> float:
        return self._threshold

    def set_threshold(self, value: float) -> float:
        self._threshold = validate_threshold(value)
        logger.info("Match threshold set to %.3f", self._threshold)
        return self._threshold

    @property
    def state(self) -> ScanState:
        return self.loop.state

    @property
    def is_scanning(self) -> bool:
        return self.loop.is_scanning

    @property
    def is_loading(self) -> bool:
        return self._loading

    # -----------------------------
    # Setup
    # -----------------------------
    def _prepare_sync(self) -> None:
        load = getattr(self.detector, "load", None)
        if callable(load):
            load()
        self.model_status = "loaded"
        open_video = getattr(self.video, "open", None)
        if callable(open_video):
            open_video()

    async def prepare(self) -> bool:
        """
        Load models and open the camera. A failure is recorded and reported
        once; every later start() is rejected with the same reason.
        """
        self.model_status = "loading..."
        self._emit(EventKind.MODEL_STATUS, "loading...", status=self.model_status)
        try:
            await asyncio.to_thread(self._prepare_sync)
        except Exception as e:
            if not isinstance(e, SetupError):
                logger.exception("Unexpected setup failure")
            if self.model_status != "loaded":
                self.model_status = "failed"
            self.setup_error = str(e)
            logger.error("Initialization error: %s", e)
            self._emit(EventKind.SETUP_ERROR, f"Initialization error: {e}", error=str(e))
            return False
        self._emit(EventKind.MODEL_STATUS, "loaded", status=self.model_status)
        return True

    # -----------------------------
    # Roster
    # -----------------------------
    async def load_roster(self, source: Optional[RosterSource] = None) -> RosterLoadResult:
        """Fetch and embed the roster, then replace the active one wholesale."""
        if self.loop.is_scanning or self.loop.in_flight:
            raise UsageError("Cannot reload the roster while scanning. Stop scanning first.")
        if self._loading:
            raise UsageError("A roster load is already in progress.")

        source = source or self.roster_source
        if source is None:
            raise SetupError("No roster source configured (Supabase not configured).")

        self._loading = True
        try:
            records = await asyncio.to_thread(source.fetch)
            result = await load_roster(records, self.detector)
        finally:
            self._loading = False

        self.roster = result.roster
        for skip in result.skipped:
            self._emit(
                EventKind.ROSTER_SKIPPED,
                f"Skipped {skip.identity_id} ({skip.display_name}): {skip.reason}",
                identity_id=skip.identity_id,
                reason=skip.reason,
            )
        self._emit(
            EventKind.ROSTER_LOADED,
            f"Loaded {len(result.roster)} student face encodings.",
            roster_size=len(result.roster),
            skipped=len(result.skipped),
        )
        return result

    # -----------------------------
    # Session
    # -----------------------------
    def start(self, threshold: Optional[float] = None) -> bool:
        new_threshold = validate_threshold(threshold) if threshold is not None else None
        if self.setup_error:
            raise SetupError(self.setup_error)
        if self._loading:
            raise UsageError("Cannot start scanning while the roster is loading.")
        if len(self.roster) == 0:
            raise UsageError("Cannot start scanning: the roster is empty. Load students first.")

        if new_threshold is not None:
            self.set_threshold(new_threshold)
        return self.loop.start()

    def stop(self) -> bool:
        return self.loop.stop()

    async def shutdown(self) -> None:
        self.loop.stop()
        await self.loop.wait_stopped()
        await self.loop.drain()
        close = getattr(self.video, "close", None)
        if callable(close):
            close()

    # -----------------------------
    # Reporting
    # -----------------------------
    def records(self) -> List[AttendanceRecord]:
        return self.ledger.list()

    def export_csv(self) -> bytes:
        return export_csv(self.ledger.list())

    def status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "threshold": self.threshold,
            "scan_interval_ms": round(self.loop.period * 1000),
            "roster_size": len(self.roster),
            "present_count": self.ledger.count(),
            "last_match": self.last_match,
            "model_status": self.model_status,
            "setup_error": self.setup_error,
            "loading": self._loading,
        }
