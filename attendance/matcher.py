# attendance/matcher.py
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from attendance.errors import InvalidThresholdError
from attendance.roster import Embedding, Roster, RosterEntry, as_embedding

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Match:
    entry: RosterEntry
    distance: float


def distances(probe: Embedding, matrix: np.ndarray) -> np.ndarray:
    """Euclidean distance from `probe` to every row of `matrix`."""
    diff = matrix - probe
    return np.sqrt(np.einsum("ij,ij->i", diff, diff))


def euclidean_distance(a: Embedding, b: Embedding) -> float:
    a = np.asarray(a, dtype=np.float64).reshape(-1)
    b = np.asarray(b, dtype=np.float64).reshape(-1)
    if a.shape != b.shape:
        raise ValueError(f"Embedding dimensions differ: {a.shape[0]} vs {b.shape[0]}")
    return float(distances(a, b.reshape(1, -1))[0])


def validate_threshold(threshold: float) -> float:
    try:
        value = float(threshold)
    except (TypeError, ValueError):
        raise InvalidThresholdError(f"Threshold must be a number, got {threshold!r}")
    if not math.isfinite(value) or value < 0:
        raise InvalidThresholdError(f"Threshold must be a finite number >= 0, got {threshold!r}")
    return value


def nearest(probe: Embedding, roster: Roster) -> Optional[Match]:
    """Closest roster entry regardless of threshold. First entry wins ties."""
    if len(roster) == 0:
        return None

    probe = as_embedding(probe)
    if probe.shape[0] != roster.dimension:
        logger.warning(
            "Probe dimension %d does not match roster dimension %s", probe.shape[0], roster.dimension
        )
        return None

    dist = distances(probe, roster.matrix)
    # argmin returns the first index among equal minima
    idx = int(np.argmin(dist))
    return Match(entry=roster[idx], distance=float(dist[idx]))


def match(probe: Embedding, roster: Roster, threshold: float) -> Optional[Match]:
    """
    Nearest-neighbour match with an inclusive acceptance threshold.

    Returns None for an empty roster, or when the nearest entry is farther
    than `threshold` (a face is present but not recognized).
    """
    best = nearest(probe, roster)
    if best is None:
        return None
    if best.distance > threshold:
        return None
    return best
