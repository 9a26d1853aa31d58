# attendance/config.py
from __future__ import annotations

import logging
import math
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, TypeVar

from dotenv import load_dotenv

from attendance.errors import SetupError

T = TypeVar("T")

DEFAULT_MATCH_THRESHOLD = 0.6
DEFAULT_SCAN_INTERVAL_MS = 900
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def _env_str(name: str, default: str = "") -> str:
    return (os.getenv(name, default) or default).strip()


def _env_parsed(name: str, default: T, parse: Callable[[str], T]) -> T:
    raw = _env_str(name)
    if not raw:
        return default
    try:
        return parse(raw)
    except ValueError:
        raise SetupError(f"Invalid value for {name}: {raw!r}")


def _default_models_dir() -> Path:
    return Path(tempfile.gettempdir()) / "face_attendance_models"


@dataclass
class Settings:
    supabase_url: str = ""
    supabase_key: str = ""
    students_table: str = "students"
    attendance_table: str = "attendance"

    match_threshold: float = DEFAULT_MATCH_THRESHOLD
    scan_interval_ms: int = DEFAULT_SCAN_INTERVAL_MS
    detect_min_score: float = 0.5
    detect_input_size: int = 256

    models_dir: Path = _default_models_dir()
    arc_model_url: str = ""
    detector_proto_url: str = ""
    detector_model_url: str = ""

    camera_index: int = 0
    frame_width: int = 640
    frame_height: int = 480

    log_level: str = "INFO"
    debug_errors: bool = False

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @property
    def scan_interval(self) -> float:
        return self.scan_interval_ms / 1000.0

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "Settings":
        load_dotenv(dotenv_path=dotenv_path)

        settings = cls(
            supabase_url=_env_str("SUPABASE_URL"),
            supabase_key=_env_str("SUPABASE_KEY"),
            students_table=_env_str("STUDENTS_TABLE", "students"),
            attendance_table=_env_str("ATTENDANCE_TABLE", "attendance"),
            match_threshold=_env_parsed("MATCH_THRESHOLD", DEFAULT_MATCH_THRESHOLD, float),
            scan_interval_ms=_env_parsed("SCAN_INTERVAL_MS", DEFAULT_SCAN_INTERVAL_MS, int),
            detect_min_score=_env_parsed("DETECT_MIN_SCORE", 0.5, float),
            detect_input_size=_env_parsed("DETECT_INPUT_SIZE", 256, int),
            models_dir=Path(_env_str("MODELS_DIR") or str(_default_models_dir())).resolve(),
            arc_model_url=_env_str("ARC_MODEL_URL"),
            detector_proto_url=_env_str("DETECTOR_PROTO_URL"),
            detector_model_url=_env_str("DETECTOR_MODEL_URL"),
            camera_index=_env_parsed("CAMERA_INDEX", 0, int),
            frame_width=_env_parsed("FRAME_WIDTH", 640, int),
            frame_height=_env_parsed("FRAME_HEIGHT", 480, int),
            log_level=_env_str("LOG_LEVEL", "INFO").upper(),
            debug_errors=_env_str("DEBUG_ERRORS", "0") == "1",
        )

        if not math.isfinite(settings.match_threshold) or settings.match_threshold < 0:
            raise SetupError("MATCH_THRESHOLD must be >= 0")
        if settings.scan_interval_ms <= 0:
            raise SetupError("SCAN_INTERVAL_MS must be > 0")
        return settings


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
