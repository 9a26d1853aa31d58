# attendance/video.py
from __future__ import annotations

import logging
import threading
import time
from typing import Optional, Protocol

import cv2
import numpy as np

from attendance.errors import SetupError

logger = logging.getLogger(__name__)


class VideoSource(Protocol):
    def current_frame(self) -> Optional[np.ndarray]:
        ...


class OpenCVVideoSource:
    """
    Keeps the latest camera frame. A reader thread drains cv2.VideoCapture so
    current_frame() never blocks and never returns a stale buffered frame.
    """

    def __init__(self, camera_index: int = 0, width: int = 640, height: int = 480) -> None:
        self.camera_index = camera_index
        self.width = width
        self.height = height
        self._cap: Optional[cv2.VideoCapture] = None
        self._lock = threading.Lock()
        self._latest: Optional[np.ndarray] = None
        self._running = False
        self._thread: Optional[threading.Thread] = None

    def open(self) -> None:
        cap = cv2.VideoCapture(self.camera_index)
        if not cap.isOpened():
            cap.release()
            raise SetupError(f"Cannot open camera (index={self.camera_index})")
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)

        self._cap = cap
        self._running = True
        self._thread = threading.Thread(target=self._reader, name="video-reader", daemon=True)
        self._thread.start()
        logger.info("Camera %d opened (%dx%d requested)", self.camera_index, self.width, self.height)

    def _reader(self) -> None:
        while self._running and self._cap is not None:
            ok, frame = self._cap.read()
            if not ok or frame is None:
                time.sleep(0.05)
                continue
            with self._lock:
                self._latest = frame

    def current_frame(self) -> Optional[np.ndarray]:
        with self._lock:
            return None if self._latest is None else self._latest.copy()

    def close(self) -> None:
        self._running = False
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None
        if self._cap is not None:
            self._cap.release()
            self._cap = None
        with self._lock:
            self._latest = None


class StaticVideoSource:
    """Serves one fixed frame (or nothing). Handy for still images."""

    def __init__(self, frame: Optional[np.ndarray] = None) -> None:
        self.frame = frame

    def current_frame(self) -> Optional[np.ndarray]:
        return self.frame
