"""Pytest configuration and fixtures."""

import asyncio
import threading
from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from attendance.detector import DetectedFace, FaceBox
from attendance.engine import AttendanceEngine
from attendance.events import EventLog
from attendance.roster import RosterRecord, as_embedding
from attendance.roster_source import StaticRosterSource
from attendance.video import StaticVideoSource

T0 = datetime(2024, 3, 4, 9, 0, 0, tzinfo=timezone.utc)


class FakeDetector:
    """
    Scripted detector.

    `frames` is a queue consumed by detect_faces(): each item is a list of
    embeddings (one per face) or an exception to raise. `photos` maps an
    image reference to an embedding, None (no face) or an exception.
    Set `gate` to an asyncio.Event to hold detect_faces() until it is set;
    `entered` is set as soon as a detection call starts.
    """

    def __init__(self, frames=None, photos=None):
        self.frames = list(frames or [])
        self.photos = dict(photos or {})
        self.detect_calls = 0
        self.gate = None
        self.entered = None

    async def detect_faces(self, frame, options):
        self.detect_calls += 1
        if self.entered is not None:
            self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        item = self.frames.pop(0) if self.frames else []
        if isinstance(item, Exception):
            raise item
        # ndarrays are passed through as-is (no validation)
        return [
            DetectedFace(box=FaceBox(0, 0, 10, 10), embedding=e if isinstance(e, np.ndarray) else as_embedding(e))
            for e in item
        ]

    async def embed_single_face(self, image_reference):
        value = self.photos.get(image_reference)
        if isinstance(value, Exception):
            raise value
        return None if value is None else as_embedding(value)


class RecordingSink:
    def __init__(self):
        self.calls = []
        self._lock = threading.Lock()

    def write_attendance(self, identity_id, display_name, checkin_time):
        with self._lock:
            self.calls.append((identity_id, display_name, checkin_time))


class FailingSink:
    def __init__(self):
        self.attempts = 0

    def write_attendance(self, identity_id, display_name, checkin_time):
        self.attempts += 1
        raise RuntimeError("database unavailable")


class FakeResponse:
    def __init__(self, data=None, error=None):
        self.data = data
        self.error = error


class FakeQuery:
    """Chainable stand-in for a supabase-py table query."""

    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.selected = None
        self.inserted = []

    def select(self, columns):
        self.selected = columns
        return self

    def insert(self, rows):
        self.inserted.append(rows)
        return self

    def execute(self):
        if self.exc is not None:
            raise self.exc
        return self.response


class FakeClient:
    def __init__(self, query):
        self.query = query
        self.tables = []

    def table(self, name):
        self.tables.append(name)
        return self.query


class StepClock:
    """Returns T0, T0+1s, T0+2s, ... on successive calls."""

    def __init__(self, start=T0, step=timedelta(seconds=1)):
        self.next = start
        self.step = step
        self.calls = 0

    def __call__(self):
        now = self.next
        self.next = now + self.step
        self.calls += 1
        return now


def offset(base, distance):
    """A vector at exactly `distance` from `base` along the first axis."""
    v = np.array(base, dtype=np.float64)
    v[0] += distance
    return v.tolist()


E1 = [0.0, 0.0, 0.0, 0.0]
E2 = [1.0, 1.0, 1.0, 1.0]


@pytest.fixture
def frame():
    return np.zeros((48, 64, 3), dtype=np.uint8)


@pytest.fixture
def detector():
    return FakeDetector(photos={"alice.jpg": E1, "bob.jpg": E2})


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def roster_records():
    return [
        RosterRecord("S1", "Alice", "alice.jpg"),
        RosterRecord("S2", "Bob", "bob.jpg"),
    ]


@pytest.fixture
def make_engine(detector, sink, clock, roster_records, frame):
    """
    Engine factory wired to fakes. The scan period is long so tests drive
    iterations with loop.scan_once() instead of waiting on the timer.
    """

    def _make(**overrides):
        kwargs = dict(
            detector=detector,
            video=StaticVideoSource(frame),
            sink=sink,
            roster_source=StaticRosterSource(roster_records),
            reporter=EventLog(),
            threshold=0.6,
            scan_interval=3600.0,
            clock=clock,
        )
        kwargs.update(overrides)
        return AttendanceEngine(**kwargs)

    return _make


def run(coro):
    return asyncio.run(coro)
