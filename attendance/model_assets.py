# attendance/model_assets.py
from __future__ import annotations

import logging
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Dict

from attendance.config import Settings
from attendance.errors import SetupError

logger = logging.getLogger(__name__)

ARC_FILENAME = "arcface.onnx"
DETECTOR_PROTO_FILENAME = "deploy.prototxt"
DETECTOR_MODEL_FILENAME = "res10_300x300_ssd_iter_140000.caffemodel"


@dataclass(frozen=True)
class ModelPaths:
    arcface: Path
    detector_proto: Path
    detector_model: Path


def _download(url: str, out_path: Path) -> None:
    tmp = out_path.with_suffix(out_path.suffix + ".download")
    logger.info("Downloading model: %s", url)
    try:
        urllib.request.urlretrieve(url, tmp)
    except Exception as e:
        tmp.unlink(missing_ok=True)
        raise SetupError(f"Failed to download {out_path.name} from {url}: {e}") from e
    try:
        tmp.replace(out_path)
    except OSError as e:
        raise SetupError(f"Cannot save {out_path}: {e}") from e
    logger.info("Saved %s (%.2f MB)", out_path, out_path.stat().st_size / 1024 / 1024)


def ensure_models(settings: Settings) -> ModelPaths:
    """
    Make sure every model file exists in MODELS_DIR, downloading the missing
    ones from their configured URL. A missing file without a URL is fatal.
    """
    models_dir = settings.models_dir
    try:
        models_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise SetupError(f"Cannot create MODELS_DIR {models_dir}: {e}") from e

    wanted: Dict[str, str] = {
        ARC_FILENAME: settings.arc_model_url,
        DETECTOR_PROTO_FILENAME: settings.detector_proto_url,
        DETECTOR_MODEL_FILENAME: settings.detector_model_url,
    }

    logger.info("MODELS_DIR = %s", models_dir)
    for filename, url in wanted.items():
        path = models_dir / filename
        if path.exists():
            continue
        if not url:
            raise SetupError(f"Missing model file {path} and no download URL configured")
        _download(url, path)

    return ModelPaths(
        arcface=models_dir / ARC_FILENAME,
        detector_proto=models_dir / DETECTOR_PROTO_FILENAME,
        detector_model=models_dir / DETECTOR_MODEL_FILENAME,
    )
