# attendance/detector.py
from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

import cv2
import numpy as np
import onnxruntime as ort
import requests

from attendance.config import Settings
from attendance.errors import SetupError
from attendance.model_assets import ensure_models
from attendance.roster import Embedding, as_embedding

logger = logging.getLogger(__name__)

# ------------------------------------------------------------
# Types
# ------------------------------------------------------------
@dataclass(frozen=True)
class DetectorOptions:
    min_score: float = 0.5
    input_size: int = 256


@dataclass(frozen=True)
class FaceBox:
    x: int
    y: int
    width: int
    height: int


@dataclass(frozen=True, eq=False)
class DetectedFace:
    box: FaceBox
    embedding: Embedding
    score: float = 1.0


class FaceDetector(Protocol):
    async def detect_faces(self, frame: np.ndarray, options: DetectorOptions) -> Sequence[DetectedFace]:
        ...

    async def embed_single_face(self, image_reference: str) -> Optional[Embedding]:
        ...


# ------------------------------------------------------------
# Image helpers
# ------------------------------------------------------------
def fetch_image_bytes(reference: str, timeout: float = 30) -> bytes:
    ref = (reference or "").strip()
    if not ref:
        raise ValueError("Empty image reference.")
    if ref.startswith(("http://", "https://")):
        r = requests.get(ref, timeout=timeout)
        r.raise_for_status()
        return r.content
    return Path(ref).read_bytes()


def decode_image(image_bytes: bytes) -> np.ndarray:
    arr = np.frombuffer(image_bytes, dtype=np.uint8)
    img = cv2.imdecode(arr, cv2.IMREAD_COLOR)
    if img is None:
        raise ValueError("Failed to decode image bytes.")
    return img


def safe_crop(img: np.ndarray, box: FaceBox) -> Optional[np.ndarray]:
    h, w = img.shape[:2]
    x1 = max(0, min(box.x, w - 1))
    y1 = max(0, min(box.y, h - 1))
    x2 = max(0, min(box.x + box.width, w))
    y2 = max(0, min(box.y + box.height, h))
    if x2 <= x1 or y2 <= y1:
        return None
    return img[y1:y2, x1:x2]


# ------------------------------------------------------------
# OpenCV DNN detector + ArcFace (onnxruntime) embedder
# ------------------------------------------------------------
class OnnxFaceDetector:
    """
    Detects faces with the OpenCV res10 SSD and embeds each crop with an
    ArcFace ONNX model. Inference is blocking, so the async methods run it
    in a worker thread; a lock keeps the shared sessions single-use.
    """

    def __init__(self, settings: Settings, providers: Optional[List[str]] = None) -> None:
        self._settings = settings
        self._providers = providers or ["CPUExecutionProvider"]
        self._lock = threading.Lock()
        self._net = None
        self._arc_sess: Optional[ort.InferenceSession] = None
        self._arc_input: Optional[str] = None

    @property
    def loaded(self) -> bool:
        return self._net is not None and self._arc_sess is not None

    def load(self) -> None:
        paths = ensure_models(self._settings)
        try:
            self._net = cv2.dnn.readNetFromCaffe(str(paths.detector_proto), str(paths.detector_model))
            self._arc_sess = ort.InferenceSession(str(paths.arcface), providers=self._providers)
        except Exception as e:
            self._net = None
            self._arc_sess = None
            raise SetupError(f"Failed to load face models: {e}") from e
        self._arc_input = self._arc_sess.get_inputs()[0].name
        logger.info("Face models loaded (providers=%s)", self._providers)

    def _require_loaded(self) -> None:
        if not self.loaded:
            raise SetupError("Face models are not loaded.")

    def _detect_boxes(self, frame_bgr: np.ndarray, options: DetectorOptions) -> List[tuple]:
        h, w = frame_bgr.shape[:2]
        size = int(options.input_size)
        blob = cv2.dnn.blobFromImage(
            cv2.resize(frame_bgr, (size, size)), 1.0, (size, size), (104.0, 177.0, 123.0), False, False
        )
        self._net.setInput(blob)
        detections = self._net.forward()

        boxes = []
        for i in range(detections.shape[2]):
            score = float(detections[0, 0, i, 2])
            if score < options.min_score:
                continue
            x1, y1, x2, y2 = detections[0, 0, i, 3:7]
            x1, x2 = int(x1 * w), int(x2 * w)
            y1, y2 = int(y1 * h), int(y2 * h)
            if x2 > x1 and y2 > y1:
                boxes.append((FaceBox(x1, y1, x2 - x1, y2 - y1), score))
        return boxes

    def _embed_crop(self, face_bgr: np.ndarray) -> Embedding:
        rgb = cv2.cvtColor(face_bgr, cv2.COLOR_BGR2RGB)
        face = cv2.resize(rgb, (112, 112)).astype(np.float32)
        face = (face - 127.5) / 128.0
        face = np.expand_dims(np.transpose(face, (2, 0, 1)), axis=0)

        emb = self._arc_sess.run(None, {self._arc_input: face})[0][0]
        emb = np.asarray(emb, dtype=np.float64).reshape(-1)
        emb = emb / (np.linalg.norm(emb) + 1e-9)
        return as_embedding(emb)

    def detect_faces_sync(self, frame_bgr: np.ndarray, options: DetectorOptions) -> List[DetectedFace]:
        self._require_loaded()
        with self._lock:
            faces = []
            for box, score in self._detect_boxes(frame_bgr, options):
                crop = safe_crop(frame_bgr, box)
                if crop is None or crop.size == 0:
                    continue
                faces.append(DetectedFace(box=box, embedding=self._embed_crop(crop), score=score))
            return faces

    def embed_image_sync(self, img_bgr: np.ndarray) -> Optional[Embedding]:
        """Embedding of the most confident face, or None when no face is found."""
        self._require_loaded()
        with self._lock:
            boxes = self._detect_boxes(img_bgr, DetectorOptions())
            if not boxes:
                return None
            box, _ = max(boxes, key=lambda b: b[1])
            crop = safe_crop(img_bgr, box)
            if crop is None or crop.size == 0:
                return None
            return self._embed_crop(crop)

    async def detect_faces(self, frame: np.ndarray, options: DetectorOptions) -> List[DetectedFace]:
        return await asyncio.to_thread(self.detect_faces_sync, frame, options)

    def embed_reference_sync(self, image_reference: str) -> Optional[Embedding]:
        """Fetch, decode and embed one roster photo (blocking)."""
        return self.embed_image_sync(decode_image(fetch_image_bytes(image_reference)))

    async def embed_single_face(self, image_reference: str) -> Optional[Embedding]:
        return await asyncio.to_thread(self.embed_reference_sync, image_reference)
