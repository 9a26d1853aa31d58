# attendance/scan_loop.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import TYPE_CHECKING, List, Optional, Set

from attendance.detector import DetectorOptions, FaceDetector
from attendance.errors import UsageError
from attendance.events import EventKind, ScanEvent
from attendance.ledger import AttendanceRecord
from attendance.matcher import Match, match
from attendance.persistence import AttendanceSink
from attendance.video import VideoSource

if TYPE_CHECKING:
    from attendance.engine import AttendanceEngine

logger = logging.getLogger(__name__)


class ScanState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"


class CycleStatus(str, Enum):
    CANCELLED = "cancelled"
    SKIPPED = "skipped"
    NO_FRAME = "no_frame"
    NO_FACES = "no_faces"
    ERROR = "error"
    COMPLETED = "completed"


@dataclass
class CycleReport:
    status: CycleStatus
    faces: int = 0
    unknown: int = 0
    matches: List[Match] = field(default_factory=list)
    checked_in: List[AttendanceRecord] = field(default_factory=list)
    error: Optional[str] = None


class ScanLoop:
    """
    Idle/Scanning state machine around one periodic detect -> match -> record
    cycle.

    Iterations never overlap. stop() is cooperative: it does not abort an
    outstanding detection call, but every iteration re-checks its session
    after detection and before each ledger write, so a late result from a
    stopped session writes nothing.
    """

    def __init__(
        self,
        engine: "AttendanceEngine",
        video: VideoSource,
        detector: FaceDetector,
        sink: AttendanceSink,
        period: float = 0.9,
        options: Optional[DetectorOptions] = None,
    ) -> None:
        if period <= 0:
            raise ValueError("Scan period must be > 0")
        self._engine = engine
        self._video = video
        self._detector = detector
        self._sink = sink
        self.period = float(period)
        self.options = options or DetectorOptions()

        self._state = ScanState.IDLE
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._wake: Optional[asyncio.Event] = None
        self._cycle_lock = asyncio.Lock()
        self._pending: Set[asyncio.Task] = set()

    # -----------------------------
    # State
    # -----------------------------
    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def is_scanning(self) -> bool:
        return self._state is ScanState.SCANNING

    @property
    def in_flight(self) -> bool:
        return self._cycle_lock.locked()

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    def _is_current(self, generation: int) -> bool:
        return self._state is ScanState.SCANNING and generation == self._generation

    def _emit(self, kind: EventKind, message: str, **data) -> None:
        self._engine.reporter.emit(ScanEvent(kind=kind, message=message, data=data))

    # -----------------------------
    # Transitions
    # -----------------------------
    def start(self) -> bool:
        """Idle -> Scanning. Returns False if already scanning."""
        if self.is_scanning:
            logger.info("Scan loop already running; start ignored")
            return False
        if len(self._engine.roster) == 0:
            raise UsageError("Cannot start scanning: the roster is empty. Load students first.")

        loop = asyncio.get_running_loop()
        self._generation += 1
        self._state = ScanState.SCANNING
        self._wake = asyncio.Event()
        self._task = loop.create_task(
            self._run(self._generation, self._wake), name=f"scan-loop-{self._generation}"
        )
        self._emit(
            EventKind.SESSION_STARTED,
            f"Scanning every {self.period * 1000:.0f} ms",
            period_ms=round(self.period * 1000),
            roster_size=len(self._engine.roster),
        )
        return True

    def stop(self) -> bool:
        """Scanning -> Idle. Returns False if already idle."""
        if not self.is_scanning:
            return False
        self._state = ScanState.IDLE
        if self._wake is not None:
            self._wake.set()
        self._emit(EventKind.SESSION_STOPPED, "Scanning stopped", present_count=self._engine.ledger.count())
        return True

    async def wait_stopped(self) -> None:
        task = self._task
        if task is not None and not task.done():
            await task

    async def drain(self) -> None:
        """Wait for outstanding persistence writes (shutdown/tests only)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _run(self, generation: int, wake: asyncio.Event) -> None:
        loop = asyncio.get_running_loop()
        delay = self.period
        while self._is_current(generation):
            try:
                await asyncio.wait_for(wake.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
            if not self._is_current(generation):
                break

            tick = loop.time()
            try:
                await self.scan_once(generation)
            except Exception as e:
                logger.exception("Scan iteration crashed")
                self._emit(EventKind.CYCLE_ERROR, f"Scan iteration crashed: {e!r}", error=repr(e))
            delay = max(0.0, self.period - (loop.time() - tick))
        logger.debug("Scan loop %d exited", generation)

    # -----------------------------
    # One iteration
    # -----------------------------
    async def scan_once(self, generation: Optional[int] = None) -> CycleReport:
        gen = self._generation if generation is None else generation
        if not self._is_current(gen):
            return CycleReport(status=CycleStatus.CANCELLED)
        if self._cycle_lock.locked():
            logger.debug("Previous scan still in flight; tick skipped")
            return CycleReport(status=CycleStatus.SKIPPED)
        async with self._cycle_lock:
            return await self._cycle(gen)

    async def _cycle(self, gen: int) -> CycleReport:
        engine = self._engine

        frame = self._video.current_frame()
        if frame is None:
            self._emit(EventKind.NO_FRAME, "No frame available")
            return CycleReport(status=CycleStatus.NO_FRAME)

        try:
            faces = list(await self._detector.detect_faces(frame, self.options) or [])
        except Exception as e:
            if not self._is_current(gen):
                return CycleReport(status=CycleStatus.CANCELLED)
            logger.warning("Face detection failed: %r", e)
            self._emit(EventKind.CYCLE_ERROR, f"Detection failed: {e}", error=repr(e))
            return CycleReport(status=CycleStatus.ERROR, error=repr(e))

        if not self._is_current(gen):
            return CycleReport(status=CycleStatus.CANCELLED)

        if not faces:
            engine.last_match = "No faces"
            self._emit(EventKind.NO_FACES, "No faces")
            return CycleReport(status=CycleStatus.NO_FACES)

        report = CycleReport(status=CycleStatus.COMPLETED, faces=len(faces))
        roster = engine.roster
        threshold = engine.threshold

        for face in faces:
            try:
                m = match(face.embedding, roster, threshold)
            except Exception as e:
                # reported and skipped; the rest of the frame still runs
                logger.warning("Matching failed: %r", e)
                self._emit(EventKind.CYCLE_ERROR, f"Matching failed: {e}", error=repr(e))
                report.unknown += 1
                report.error = repr(e)
                continue

            if m is None:
                report.unknown += 1
                engine.last_match = f"Unknown ({len(faces)})"
                self._emit(EventKind.UNKNOWN_FACE, f"Unknown ({len(faces)})", faces=len(faces))
                continue

            if not self._is_current(gen):
                report.status = CycleStatus.CANCELLED
                return report

            entry = m.entry
            result = engine.ledger.record_if_absent(entry.identity_id, entry.display_name, engine.now())
            if result.inserted:
                report.checked_in.append(result.record)
                self._persist(result.record)
                self._emit(
                    EventKind.CHECKED_IN,
                    f"Checked in {entry.display_name} ({entry.identity_id})",
                    identity_id=entry.identity_id,
                    display_name=entry.display_name,
                    checkin_time=result.record.checkin_time.isoformat(),
                )
                self._emit(EventKind.LEDGER_SIZE, f"Present: {engine.ledger.count()}", count=engine.ledger.count())

            report.matches.append(m)
            engine.last_match = f"{entry.display_name} ({entry.identity_id}) - dist {m.distance:.3f}"
            self._emit(
                EventKind.MATCHED,
                f"Matched {entry.display_name}, distance {m.distance:.3f}",
                identity_id=entry.identity_id,
                display_name=entry.display_name,
                distance=m.distance,
                new=result.inserted,
            )

        return report

    # -----------------------------
    # Persistence (fire-and-forget)
    # -----------------------------
    def _persist(self, record: AttendanceRecord) -> None:
        task = asyncio.get_running_loop().create_task(
            asyncio.to_thread(
                self._sink.write_attendance, record.identity_id, record.display_name, record.checkin_time
            )
        )
        self._pending.add(task)
        task.add_done_callback(partial(self._persist_done, record))

    def _persist_done(self, record: AttendanceRecord, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Failed to persist check-in for %s: %r", record.identity_id, exc)
            self._emit(
                EventKind.PERSISTENCE_FAILED,
                f"Could not save check-in for {record.display_name}: {exc}",
                identity_id=record.identity_id,
                error=repr(exc),
            )
