"""Query API — index a project and ask it for duplicates and similar code.

A ``ProjectIndex`` is an explicit, caller-owned handle on one project's
index. Queries run against the snapshot loaded when the handle first needs
it (or at ``reload()``); writes made by other handles afterwards are not
seen until the next reload.

Usage::

    with open_project("path/to/app") as project:
        project.index_directory()
        for group in project.find_duplicates(threshold=0.9):
            ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from uilint_duplicates.chunking import ChunkingOptions, TreeSitterChunker
from uilint_duplicates.config import Settings, load_settings
from uilint_duplicates.detection import DuplicateFinder
from uilint_duplicates.embeddings import Embedder
from uilint_duplicates.errors import DuplicateIndexError, IndexRebuildRequiredError, NoIndexError
from uilint_duplicates.index import IncrementalIndexer

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import TracebackType

    from uilint_duplicates.chunking import ChunkExtractor, ChunkKind
    from uilint_duplicates.detection import DuplicateGroup
    from uilint_duplicates.embeddings import EmbeddingProvider
    from uilint_duplicates.index import IndexStats, IndexUpdateResult, StoredChunkMetadata
    from uilint_duplicates.index.indexer import ProgressCallback
    from uilint_duplicates.index.vector_store import SimilarityResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SearchResult:
    """A chunk returned by a similarity search."""

    id: str
    file_path: str
    start_line: int
    end_line: int
    name: str | None
    kind: ChunkKind
    score: float

    @classmethod
    def from_metadata(cls, chunk_id: str, meta: StoredChunkMetadata, score: float) -> SearchResult:
        return cls(
            id=chunk_id,
            file_path=meta.file_path,
            start_line=meta.start_line,
            end_line=meta.end_line,
            name=meta.name,
            kind=meta.kind,
            score=score,
        )


class ProjectIndex:
    """Handle on the duplicate-detection index of one project root.

    Owns one ``IncrementalIndexer``. Use as a context manager or call
    ``close()`` when done.
    """

    def __init__(
        self,
        root: Path | str,
        settings: Settings | None = None,
        *,
        embedder: EmbeddingProvider | None = None,
        chunker: ChunkExtractor | None = None,
        progress: ProgressCallback | None = None,
    ) -> None:
        self._root = Path(root).resolve()
        self._settings = settings or load_settings()
        self._embedder = embedder or Embedder(
            self._settings.embedding, api_key=self._settings.embedding_api_key
        )
        chunking = ChunkingOptions(**self._settings.chunking.model_dump())
        self._indexer = IncrementalIndexer(
            self._root,
            self._embedder,
            chunker or TreeSitterChunker(self._settings.embedding.max_input_chars),
            config=self._settings.index,
            chunking=chunking,
            progress=progress,
        )
        self._loaded = False
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def root(self) -> Path:
        return self._root

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def indexer(self) -> IncrementalIndexer:
        return self._indexer

    def close(self) -> None:
        """Release the in-memory snapshot. Further calls raise."""
        if not self._closed:
            self._indexer.close()
            self._closed = True

    def __enter__(self) -> ProjectIndex:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _check_open(self) -> None:
        if self._closed:
            raise DuplicateIndexError(f"Index handle for {self._root} is closed")

    def _ensure_loaded(self) -> None:
        self._check_open()
        if self._loaded:
            return
        if not self._indexer.has_index():
            raise NoIndexError(self._root)
        if not self._indexer.load():
            raise IndexRebuildRequiredError(self._root)
        self._loaded = True

    def reload(self) -> None:
        """Re-read the on-disk index, picking up writes made since loading."""
        self._loaded = False
        self._ensure_loaded()

    def _finder(self) -> DuplicateFinder:
        self._ensure_loaded()
        return DuplicateFinder(self._indexer.vector_store, self._indexer.metadata_store)

    def _to_results(self, hits: list[SimilarityResult]) -> list[SearchResult]:
        metadata = self._indexer.metadata_store
        results: list[SearchResult] = []
        for hit in hits:
            meta = metadata.get(hit.id)
            if meta is not None:
                results.append(SearchResult.from_metadata(hit.id, meta, hit.score))
        return results

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    def index_directory(self, force: bool = False) -> IndexUpdateResult:
        """Create or incrementally update the project's index.

        Raises:
            EmbeddingUnavailableError: The embedding provider is unreachable;
                nothing is written.
        """
        self._check_open()
        if force:
            result = self._indexer.index_all(force=True)
        elif self._indexer.has_index():
            result = self._indexer.update()
        else:
            result = self._indexer.index_all()
        self._loaded = True
        logger.info(
            "Indexed %s: +%d ~%d -%d (%d chunks, %.2fs)",
            self._root,
            result.added,
            result.modified,
            result.deleted,
            result.total_chunks,
            result.duration,
        )
        return result

    def has_index(self) -> bool:
        return self._indexer.has_index()

    def get_index_stats(self) -> IndexStats:
        self._check_open()
        if not self._loaded and self._indexer.has_index():
            self._ensure_loaded()
        return self._indexer.get_stats()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_duplicates(
        self,
        threshold: float | None = None,
        min_group_size: int | None = None,
        kind: ChunkKind | None = None,
        min_lines: int | None = None,
        exclude_paths: Sequence[str] = (),
    ) -> list[DuplicateGroup]:
        """Groups of semantically duplicated chunks; unset options use config defaults."""
        detection = self._settings.detection
        return self._finder().find_duplicate_groups(
            threshold=detection.threshold if threshold is None else threshold,
            min_group_size=detection.min_group_size if min_group_size is None else min_group_size,
            kind=kind,
            min_lines=detection.min_lines if min_lines is None else min_lines,
            exclude_paths=exclude_paths,
        )

    def search_similar(
        self,
        query: str,
        top: int | None = None,
        threshold: float | None = None,
    ) -> list[SearchResult]:
        """Chunks semantically closest to a natural-language or code query."""
        finder = self._finder()
        detection = self._settings.detection
        vector = self._embedder.embed(query).vector
        hits = finder.find_similar_to_query(
            vector,
            top=detection.top if top is None else top,
            threshold=detection.search_threshold if threshold is None else threshold,
        )
        return self._to_results(hits)

    def find_similar_at_location(
        self,
        file_path: Path | str,
        line: int,
        top: int | None = None,
        threshold: float | None = None,
    ) -> list[SearchResult]:
        """Chunks similar to the code at ``file_path:line`` (path absolute or project-relative)."""
        finder = self._finder()
        detection = self._settings.detection
        key = self._indexer.file_tracker.relative(file_path)
        hits = finder.find_similar_to_location(
            key,
            line,
            top=detection.top if top is None else top,
            threshold=detection.search_threshold if threshold is None else threshold,
        )
        return self._to_results(hits)


def open_project(
    path: Path | str = ".",
    settings: Settings | None = None,
    **kwargs: object,
) -> ProjectIndex:
    """Open a ``ProjectIndex`` for *path*. Keyword arguments go to ``ProjectIndex``."""
    return ProjectIndex(path, settings, **kwargs)  # type: ignore[arg-type]
