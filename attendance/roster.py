# attendance/roster.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Protocol, Sequence

import numpy as np

logger = logging.getLogger(__name__)

Embedding = np.ndarray


def as_embedding(values: Any) -> Embedding:
    """
    Coerce a vector-like value into a read-only 1-D float64 embedding.
    Accepts lists, numpy arrays and pgvector strings like "[0.1,0.2,...]".
    """
    if isinstance(values, str):
        s = values.strip()
        if s.startswith("[") and s.endswith("]"):
            s = s[1:-1]
        values = [float(x) for x in s.split(",") if x.strip()]

    arr = np.array(values, dtype=np.float64).reshape(-1)
    if arr.size == 0:
        raise ValueError("Embedding is empty.")
    if not np.all(np.isfinite(arr)):
        raise ValueError("Embedding contains non-finite values.")
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True, eq=False)
class RosterEntry:
    identity_id: str
    display_name: str
    embedding: Embedding


@dataclass(frozen=True)
class RosterRecord:
    """One row of the roster data source (before embedding)."""

    identity_id: str
    display_name: str
    image_reference: str


@dataclass(frozen=True)
class SkippedRecord:
    identity_id: str
    display_name: str
    reason: str


class Roster(Sequence[RosterEntry]):
    """Immutable, ordered set of known identities. Ids are unique, dims are equal."""

    def __init__(self, entries: Iterable[RosterEntry] = ()) -> None:
        self._entries: List[RosterEntry] = list(entries)
        self._by_id: Dict[str, RosterEntry] = {}

        dims = set()
        for e in self._entries:
            if e.identity_id in self._by_id:
                raise ValueError(f"Duplicate identity_id in roster: {e.identity_id!r}")
            self._by_id[e.identity_id] = e
            dims.add(int(e.embedding.shape[0]))

        if len(dims) > 1:
            raise ValueError(f"Roster embeddings have mixed dimensions: {sorted(dims)}")

        self._dimension: Optional[int] = dims.pop() if dims else None
        if self._entries:
            matrix = np.vstack([e.embedding for e in self._entries])
        else:
            matrix = np.empty((0, 0), dtype=np.float64)
        matrix.flags.writeable = False
        self._matrix = matrix

    def __getitem__(self, index):  # type: ignore[override]
        return self._entries[index]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[RosterEntry]:
        return iter(self._entries)

    def __contains__(self, identity_id: object) -> bool:
        return identity_id in self._by_id

    def __repr__(self) -> str:
        return f"Roster(size={len(self)}, dimension={self._dimension})"

    def get(self, identity_id: str) -> Optional[RosterEntry]:
        return self._by_id.get(identity_id)

    @property
    def identity_ids(self) -> List[str]:
        return [e.identity_id for e in self._entries]

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    @property
    def matrix(self) -> np.ndarray:
        """Stacked embeddings, one row per entry in roster order."""
        return self._matrix


class FaceEmbedder(Protocol):
    async def embed_single_face(self, image_reference: str) -> Optional[Embedding]:
        ...


@dataclass
class RosterLoadResult:
    roster: Roster
    skipped: List[SkippedRecord] = field(default_factory=list)

    @property
    def loaded(self) -> int:
        return len(self.roster)


async def load_roster(records: Iterable[RosterRecord], embedder: FaceEmbedder) -> RosterLoadResult:
    """
    Derive one embedding per record and build a fresh Roster.

    Records whose image yields no face (or fails to fetch/decode) are skipped
    and reported in the result; they never abort the load. When an id repeats,
    the last successful embedding wins but keeps the id's first position.
    """
    entries: Dict[str, RosterEntry] = {}
    skipped: List[SkippedRecord] = []

    for rec in records:
        try:
            emb = await embedder.embed_single_face(rec.image_reference)
        except Exception as e:
            logger.warning("Failed to load roster image for %s (%s): %r", rec.identity_id, rec.display_name, e)
            skipped.append(SkippedRecord(rec.identity_id, rec.display_name, f"image failed: {e}"))
            continue

        if emb is None:
            logger.warning("No face for %s (%s)", rec.identity_id, rec.display_name)
            skipped.append(SkippedRecord(rec.identity_id, rec.display_name, "no face detected"))
            continue

        try:
            emb = as_embedding(emb)
        except ValueError as e:
            logger.warning("Bad embedding for %s: %s", rec.identity_id, e)
            skipped.append(SkippedRecord(rec.identity_id, rec.display_name, str(e)))
            continue

        entries[rec.identity_id] = RosterEntry(rec.identity_id, rec.display_name, emb)

    try:
        roster = Roster(entries.values())
    except ValueError:
        # mixed dimensions: keep the dimension of the first entry
        first_dim = next(iter(entries.values())).embedding.shape[0]
        kept = []
        for e in entries.values():
            if e.embedding.shape[0] == first_dim:
                kept.append(e)
            else:
                skipped.append(SkippedRecord(e.identity_id, e.display_name, "embedding dimension mismatch"))
        roster = Roster(kept)

    logger.info("Loaded %d roster embeddings (%d skipped)", len(roster), len(skipped))
    return RosterLoadResult(roster=roster, skipped=skipped)
