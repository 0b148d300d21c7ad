"""Semantic duplicate detection — groups chunks whose embeddings are near-identical.

Grouping is transitive: two chunks of the same kind are *linked* when their
cosine similarity reaches the threshold, and every connected component of
the link graph with at least ``min_group_size`` members becomes a group.

Within a group:

* the **reference** member is the one inserted into the index first; it
  scores 1.0 and every other member is scored against it
* the **average similarity** is the mean over all member pairs

The finder only reads the stores; it never mutates a loaded snapshot.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from collections.abc import Sequence

    from uilint_duplicates.chunking.models import ChunkKind
    from uilint_duplicates.index.metadata_store import MetadataStore
    from uilint_duplicates.index.models import StoredChunkMetadata
    from uilint_duplicates.index.vector_store import SimilarityResult, VectorStore

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.85
DEFAULT_MIN_GROUP_SIZE = 2
DEFAULT_MIN_LINES = 3
DEFAULT_SEARCH_TOP = 10
DEFAULT_SEARCH_THRESHOLD = 0.5

# Rows of the similarity matrix computed per step; bounds peak memory.
_BLOCK_ROWS = 256


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DuplicateMember:
    """One chunk in a duplicate group."""

    id: str
    metadata: StoredChunkMetadata
    score: float


@dataclass(frozen=True, slots=True)
class DuplicateGroup:
    """Two or more chunks of the same kind that are transitively similar."""

    members: tuple[DuplicateMember, ...]
    avg_similarity: float
    kind: ChunkKind

    @property
    def reference(self) -> DuplicateMember:
        return self.members[0]

    @property
    def size(self) -> int:
        return len(self.members)


# ---------------------------------------------------------------------------
# Union-find
# ---------------------------------------------------------------------------


class _DisjointSet:
    def __init__(self, n: int) -> None:
        self._parent = list(range(n))

    def find(self, i: int) -> int:
        parent = self._parent
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    def union(self, a: int, b: int) -> None:
        ra, rb = self.find(a), self.find(b)
        if ra != rb:
            # Lower index becomes the root so roots track the earliest member.
            if rb < ra:
                ra, rb = rb, ra
            self._parent[rb] = ra


# ---------------------------------------------------------------------------
# Finder
# ---------------------------------------------------------------------------


class DuplicateFinder:
    """Read-only duplicate and similarity queries over a loaded index."""

    def __init__(self, vector_store: VectorStore, metadata_store: MetadataStore) -> None:
        self._vectors = vector_store
        self._metadata = metadata_store

    def _candidates(
        self,
        kind: ChunkKind | None,
        min_lines: int,
        exclude_paths: Sequence[str],
    ) -> dict[ChunkKind, list[str]]:
        """Eligible chunk ids per kind, in vector-store insertion order."""
        by_kind: dict[ChunkKind, list[str]] = {}
        for chunk_id in self._vectors.ids():
            meta = self._metadata.get(chunk_id)
            if meta is None:
                continue
            if kind is not None and meta.kind != kind:
                continue
            if meta.line_count < min_lines:
                continue
            if any(p in meta.file_path for p in exclude_paths):
                continue
            by_kind.setdefault(meta.kind, []).append(chunk_id)
        return by_kind

    @staticmethod
    def _components(matrix: np.ndarray, threshold: float) -> list[list[int]]:
        """Connected components of the ``similarity >= threshold`` graph.

        Each component lists row indices in ascending order.
        """
        n = matrix.shape[0]
        ds = _DisjointSet(n)
        for start in range(0, n, _BLOCK_ROWS):
            block = matrix[start : start + _BLOCK_ROWS] @ matrix.T
            rows, cols = np.nonzero(block >= threshold)
            for r, c in zip(rows.tolist(), cols.tolist(), strict=True):
                i = start + r
                # Upper triangle only; the diagonal is self-similarity.
                if c > i:
                    ds.union(i, c)

        components: dict[int, list[int]] = {}
        for i in range(n):
            components.setdefault(ds.find(i), []).append(i)
        return list(components.values())

    def find_duplicate_groups(
        self,
        threshold: float = DEFAULT_THRESHOLD,
        min_group_size: int = DEFAULT_MIN_GROUP_SIZE,
        kind: ChunkKind | None = None,
        min_lines: int = DEFAULT_MIN_LINES,
        exclude_paths: Sequence[str] = (),
    ) -> list[DuplicateGroup]:
        """Find groups of semantically similar chunks.

        Args:
            threshold: Minimum cosine similarity for two chunks to be linked.
            min_group_size: Smallest group reported (never less than 2).
            kind: Restrict to one chunk kind; otherwise every kind is grouped
                separately.
            min_lines: Chunks spanning fewer lines are ignored entirely.
            exclude_paths: Chunks whose file path contains any of these
                substrings are ignored.

        Returns:
            Groups sorted by size (desc), average similarity (desc), then
            the reference member's insertion position.
        """
        min_group_size = max(min_group_size, 2)
        groups: list[tuple[DuplicateGroup, int]] = []

        for group_kind, ids in self._candidates(kind, min_lines, exclude_paths).items():
            if len(ids) < min_group_size:
                continue
            matrix = self._vectors.normalized(ids)

            for component in self._components(matrix, threshold):
                if len(component) < min_group_size:
                    continue
                sub = matrix[component]
                sims = sub @ sub.T
                upper = np.triu_indices(len(component), k=1)
                avg = float(sims[upper].mean())

                members = tuple(
                    DuplicateMember(
                        id=ids[idx],
                        metadata=self._metadata.get(ids[idx]),  # type: ignore[arg-type]
                        score=1.0 if pos == 0 else float(sims[0, pos]),
                    )
                    for pos, idx in enumerate(component)
                )
                group = DuplicateGroup(members=members, avg_similarity=avg, kind=group_kind)
                groups.append((group, self._vectors.position(ids[component[0]]) or 0))

        groups.sort(key=lambda g: (-g[0].size, -g[0].avg_similarity, g[1]))
        logger.debug("Found %d duplicate groups at threshold %.2f", len(groups), threshold)
        return [g for g, _ in groups]

    def find_similar_to_query(
        self,
        vector: Sequence[float] | np.ndarray,
        top: int = DEFAULT_SEARCH_TOP,
        threshold: float = DEFAULT_SEARCH_THRESHOLD,
    ) -> list[SimilarityResult]:
        """Nearest chunks to an already-embedded query."""
        return self._vectors.find_similar(vector, k=top, threshold=threshold)

    def find_similar_to_location(
        self,
        file_path: str,
        line: int,
        top: int = DEFAULT_SEARCH_TOP,
        threshold: float = DEFAULT_SEARCH_THRESHOLD,
    ) -> list[SimilarityResult]:
        """Nearest chunks to the narrowest chunk containing ``file_path:line``.

        The source chunk itself is never part of the result. Returns an empty
        list if no chunk covers the location.
        """
        located = self._metadata.get_at_location(file_path, line)
        if located is None:
            logger.debug("No chunk at %s:%d", file_path, line)
            return []
        chunk_id, _ = located
        vector = self._vectors.get(chunk_id)
        if vector is None:
            return []
        return self._vectors.find_similar(vector, k=top, threshold=threshold, exclude={chunk_id})
