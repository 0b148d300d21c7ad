"""Vector store — dense float32 vectors keyed by chunk id, with cosine search.

On-disk format (two files, written atomically):

* ``embeddings.bin`` — 8-byte header ``<II`` (dimension, count) followed by
  ``count * dimension`` little-endian float32 values in insertion order.
* ``ids.json`` — ``{"digest": ..., "ids": [...]}``: the ordered id list
  matching the vector rows, plus a blake2b digest of ``embeddings.bin``.

A file whose length disagrees with its header, an id list that disagrees
with the count, or a digest that does not match the vector file (the two
were written by different saves) is rejected as corrupt; nothing is
partially loaded.
"""

from __future__ import annotations

import hashlib
import json
import logging
import struct
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from uilint_duplicates.errors import CorruptIndexError, DimensionMismatchError
from uilint_duplicates.index.storage import atomic_write_bytes, atomic_write_json

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable, Iterator, Sequence
    from pathlib import Path

logger = logging.getLogger(__name__)

EMBEDDINGS_FILE = "embeddings.bin"
IDS_FILE = "ids.json"

_HEADER = struct.Struct("<II")
_FLOAT = np.dtype("<f4")


@dataclass(frozen=True, slots=True)
class SimilarityResult:
    """A stored vector's similarity to a query."""

    id: str
    score: float

    @property
    def distance(self) -> float:
        return 1.0 - self.score


def _normalize_rows(matrix: np.ndarray) -> np.ndarray:
    """Unit-normalize rows in float64; zero rows stay zero (similarity 0)."""
    work = matrix.astype(np.float64)
    norms = np.linalg.norm(work, axis=1, keepdims=True)
    np.divide(work, norms, out=work, where=norms > 0)
    work[(norms == 0).ravel()] = 0.0
    return work


def payload_digest(data: bytes) -> str:
    """Hex blake2b digest tying an ``ids.json`` to the ``embeddings.bin`` it was saved with."""
    return hashlib.blake2b(data, digest_size=16).hexdigest()


def cosine_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Cosine similarity of two equal-length vectors; 0.0 if either is all zeros."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise DimensionMismatchError(va.shape[-1], vb.shape[-1])
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0
    return float(np.dot(va, vb) / norm)


class VectorStore:
    """Insertion-ordered vectors with a fixed dimension.

    The first ``add`` fixes the dimension; later vectors of another length
    raise ``DimensionMismatchError`` and leave the store unchanged. Removal
    compacts the arrays so no stale slots survive.
    """

    def __init__(self, dimension: int | None = None) -> None:
        self._dimension = dimension
        self._ids: list[str] = []
        self._rows: list[np.ndarray] = []
        self._positions: dict[str, int] = {}
        self._normalized: np.ndarray | None = None

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def _coerce(self, vector: Sequence[float] | np.ndarray, expected: int | None) -> np.ndarray:
        row = np.array(vector, dtype=np.float32)
        if row.ndim != 1 or row.size == 0:
            raise ValueError("Vectors must be non-empty and one-dimensional")
        if expected is not None and row.size != expected:
            raise DimensionMismatchError(expected, row.size)
        return row

    def _put(self, chunk_id: str, row: np.ndarray) -> None:
        if self._dimension is None:
            self._dimension = row.size
        pos = self._positions.get(chunk_id)
        if pos is None:
            self._positions[chunk_id] = len(self._ids)
            self._ids.append(chunk_id)
            self._rows.append(row)
        else:
            self._rows[pos] = row
        self._normalized = None

    def add(self, chunk_id: str, vector: Sequence[float] | np.ndarray) -> None:
        """Add or overwrite a vector. Overwrites keep the original slot."""
        self._put(chunk_id, self._coerce(vector, self._dimension))

    def add_batch(self, items: Iterable[tuple[str, Sequence[float] | np.ndarray]]) -> None:
        """Add several vectors; if any has the wrong length none are stored."""
        expected = self._dimension
        prepared: list[tuple[str, np.ndarray]] = []
        for chunk_id, vector in items:
            row = self._coerce(vector, expected)
            expected = row.size
            prepared.append((chunk_id, row))
        for chunk_id, row in prepared:
            self._put(chunk_id, row)

    def remove(self, chunk_id: str) -> bool:
        """Remove a vector. Returns False if the id was not stored."""
        pos = self._positions.pop(chunk_id, None)
        if pos is None:
            return False
        del self._ids[pos]
        del self._rows[pos]
        for moved in self._ids[pos:]:
            self._positions[moved] -= 1
        self._normalized = None
        return True

    def clear(self) -> None:
        """Drop every vector and forget the dimension."""
        self._ids.clear()
        self._rows.clear()
        self._positions.clear()
        self._dimension = None
        self._normalized = None

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    @property
    def dimension(self) -> int | None:
        return self._dimension

    def get(self, chunk_id: str) -> np.ndarray | None:
        """Copy of the stored float32 vector, or None."""
        pos = self._positions.get(chunk_id)
        return None if pos is None else self._rows[pos].copy()

    def has(self, chunk_id: str) -> bool:
        return chunk_id in self._positions

    def position(self, chunk_id: str) -> int | None:
        """Insertion rank of *chunk_id* (0 = oldest)."""
        return self._positions.get(chunk_id)

    def ids(self) -> list[str]:
        return list(self._ids)

    def entries(self) -> Iterator[tuple[str, np.ndarray]]:
        for chunk_id, row in zip(self._ids, self._rows, strict=True):
            yield chunk_id, row.copy()

    def size(self) -> int:
        return len(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, chunk_id: object) -> bool:
        return chunk_id in self._positions

    # ------------------------------------------------------------------
    # Similarity
    # ------------------------------------------------------------------

    def _normalized_matrix(self) -> np.ndarray:
        if self._normalized is None:
            if self._rows:
                self._normalized = _normalize_rows(np.vstack(self._rows))
            else:
                self._normalized = np.zeros((0, self._dimension or 0))
        return self._normalized

    def normalized(self, chunk_ids: Sequence[str]) -> np.ndarray:
        """Unit-normalized float64 rows for *chunk_ids*, in the given order."""
        matrix = self._normalized_matrix()
        return matrix[[self._positions[c] for c in chunk_ids]]

    def similarity(self, a: str, b: str) -> float:
        """Cosine similarity between two stored vectors."""
        rows = self.normalized([a, b])
        return float(rows[0] @ rows[1])

    def find_similar(
        self,
        query: Sequence[float] | np.ndarray,
        k: int = 10,
        threshold: float = 0.0,
        exclude: Collection[str] = (),
    ) -> list[SimilarityResult]:
        """Top-*k* stored vectors by cosine similarity to *query*.

        Results are sorted by score descending; exactly equal scores keep
        insertion order. Scores below *threshold* and ids in *exclude* are
        dropped.
        """
        if not self._ids or k <= 0:
            return []
        q = np.asarray(query, dtype=np.float64)
        if self._dimension is not None and q.shape != (self._dimension,):
            raise DimensionMismatchError(self._dimension, q.size)
        norm = float(np.linalg.norm(q))
        if norm == 0.0:
            scores = np.zeros(len(self._ids))
        else:
            scores = self._normalized_matrix() @ (q / norm)

        results: list[SimilarityResult] = []
        for pos in np.argsort(-scores, kind="stable"):
            score = float(scores[pos])
            if score < threshold:
                break
            chunk_id = self._ids[pos]
            if chunk_id in exclude:
                continue
            results.append(SimilarityResult(id=chunk_id, score=score))
            if len(results) >= k:
                break
        return results

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_bytes(self) -> bytes:
        """Serialize vectors as header + little-endian float32 payload."""
        dimension = self._dimension or 0
        header = _HEADER.pack(dimension, len(self._rows))
        if not self._rows:
            return header
        return header + np.vstack(self._rows).astype(_FLOAT, copy=False).tobytes()

    def save(self, dir_path: Path) -> None:
        """Write ``embeddings.bin`` and ``ids.json`` into *dir_path*."""
        data = self.to_bytes()
        atomic_write_bytes(dir_path / EMBEDDINGS_FILE, data)
        atomic_write_json(dir_path / IDS_FILE, {"digest": payload_digest(data), "ids": self._ids}, indent=None)
        logger.debug("Saved %d vectors (dim %s) to %s", len(self._ids), self._dimension, dir_path)

    def load(self, dir_path: Path) -> None:
        """Replace the store's contents with the snapshot in *dir_path*.

        Raises:
            CorruptIndexError: If either file is missing or truncated, or the
                two files come from different saves. The store is left
                untouched in that case.
        """
        bin_path = dir_path / EMBEDDINGS_FILE
        ids_path = dir_path / IDS_FILE
        try:
            data = bin_path.read_bytes()
        except OSError as e:
            raise CorruptIndexError(bin_path, f"unreadable: {e}") from e
        try:
            raw = json.loads(ids_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise CorruptIndexError(ids_path, f"unreadable: {e}") from e

        if not isinstance(raw, dict) or not isinstance(raw.get("digest"), str):
            raise CorruptIndexError(ids_path, "missing vector file digest")
        ids = raw.get("ids")
        if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
            raise CorruptIndexError(ids_path, "id list is not a list of strings")

        if len(data) < _HEADER.size:
            raise CorruptIndexError(bin_path, "truncated header")
        dimension, count = _HEADER.unpack_from(data)
        expected = _HEADER.size + count * dimension * _FLOAT.itemsize
        if len(data) != expected:
            raise CorruptIndexError(bin_path, f"expected {expected} bytes, found {len(data)}")
        if count and not dimension:
            raise CorruptIndexError(bin_path, "vectors with zero dimension")
        if payload_digest(data) != raw["digest"]:
            raise CorruptIndexError(ids_path, f"digest does not match {EMBEDDINGS_FILE}")
        if len(ids) != count or len(set(ids)) != count:
            raise CorruptIndexError(ids_path, f"{len(ids)} ids for {count} vectors")

        matrix = np.frombuffer(data, dtype=_FLOAT, offset=_HEADER.size).reshape(count, dimension)

        self._ids = list(ids)
        self._rows = [matrix[i].astype(np.float32) for i in range(count)]
        self._positions = {chunk_id: i for i, chunk_id in enumerate(self._ids)}
        self._dimension = dimension or None
        self._normalized = None
        logger.debug("Loaded %d vectors (dim %s) from %s", count, self._dimension, dir_path)

    def stats(self) -> dict[str, int | None]:
        """Size, dimension, and approximate memory footprint in bytes."""
        dimension = self._dimension or 0
        return {
            "size": len(self._ids),
            "dimension": self._dimension,
            "memory_bytes": len(self._ids) * dimension * _FLOAT.itemsize,
        }
