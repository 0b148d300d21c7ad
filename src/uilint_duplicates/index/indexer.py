"""Incremental indexer — keeps the on-disk index in sync with a project tree.

Each run: check the embedding provider, discover candidate files, diff them
against the content tracker, then apply deletions followed by additions and
modifications one file at a time. A file's chunks are stored as one unit
(all vectors and metadata, or nothing), so a failure in one file never
leaves half of it indexed and never affects other files. Stores are written
first and ``manifest.json`` last.
"""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from fnmatch import fnmatchcase
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from uilint_duplicates.chunking import TreeSitterChunker
from uilint_duplicates.config import IndexConfig
from uilint_duplicates.errors import CorruptIndexError, EmbeddingError, EmbeddingUnavailableError
from uilint_duplicates.index.file_tracker import FileTracker, content_hash
from uilint_duplicates.index.metadata_store import MetadataStore
from uilint_duplicates.index.models import (
    MANIFEST_VERSION,
    ChangeType,
    FileChange,
    IndexManifest,
    StoredChunkMetadata,
)
from uilint_duplicates.index.storage import atomic_write_json
from uilint_duplicates.index.vector_store import VectorStore

if TYPE_CHECKING:
    from collections.abc import Callable

    from uilint_duplicates.chunking import ChunkExtractor, ChunkingOptions
    from uilint_duplicates.embeddings import EmbeddingProvider

logger = logging.getLogger(__name__)

MANIFEST_FILE = "manifest.json"

type ProgressCallback = Callable[[str, int, int], None]


class IndexerState(StrEnum):
    """Phase of the current indexing run."""

    IDLE = "idle"
    DISCOVERING = "discovering"
    DIFFING = "diffing"
    EXTRACTING = "extracting"
    EMBEDDING = "embedding"
    STORING = "storing"
    PERSISTING = "persisting"


@dataclass(frozen=True, slots=True)
class IndexUpdateResult:
    """Outcome of one indexing run."""

    added: int
    modified: int
    deleted: int
    total_chunks: int
    duration: float
    failed: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class IndexStats:
    """Snapshot of index size and provenance."""

    total_files: int
    total_chunks: int
    index_size_bytes: int
    dimension: int | None
    embedding_model: str | None
    created_at: datetime | None
    updated_at: datetime | None


@dataclass(slots=True)
class _RunCounts:
    added: int = 0
    modified: int = 0
    deleted: int = 0
    failed: list[str] = field(default_factory=list)


def _matches(rel_path: str, pattern: str) -> bool:
    # Leading "**/" must also match paths at the project root. Directories are
    # tested with a trailing slash.
    return fnmatchcase(rel_path, pattern) or fnmatchcase(f"/{rel_path}", pattern)


class IncrementalIndexer:
    """Builds and incrementally updates the duplicate-detection index for one project.

    The indexer exclusively owns its stores during a run. Callers read them
    through ``vector_store`` / ``metadata_store`` between runs.
    """

    def __init__(
        self,
        root: Path,
        embedder: EmbeddingProvider,
        chunker: ChunkExtractor | None = None,
        *,
        config: IndexConfig | None = None,
        chunking: ChunkingOptions | None = None,
        progress: ProgressCallback | None = None,
    ) -> None:
        self._root = root.resolve()
        self._config = config or IndexConfig()
        index_dir = self._config.index_dir
        self._index_dir = index_dir if index_dir.is_absolute() else self._root / index_dir
        self._embedder = embedder
        self._chunker: ChunkExtractor = chunker or TreeSitterChunker()
        self._chunking = chunking
        self._progress = progress

        self._vectors = VectorStore()
        self._metadata = MetadataStore()
        self._tracker = FileTracker(self._root)
        self._manifest: IndexManifest | None = None
        self._state = IndexerState.IDLE

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def root(self) -> Path:
        return self._root

    @property
    def index_dir(self) -> Path:
        return self._index_dir

    @property
    def state(self) -> IndexerState:
        return self._state

    @property
    def manifest(self) -> IndexManifest | None:
        return self._manifest

    @property
    def vector_store(self) -> VectorStore:
        return self._vectors

    @property
    def metadata_store(self) -> MetadataStore:
        return self._metadata

    @property
    def file_tracker(self) -> FileTracker:
        return self._tracker

    # ------------------------------------------------------------------
    # Load / save
    # ------------------------------------------------------------------

    def _read_manifest(self) -> IndexManifest | None:
        path = self._index_dir / MANIFEST_FILE
        if not path.exists():
            return None
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            manifest = IndexManifest.model_validate(raw)
        except (OSError, ValueError, ValidationError) as e:
            logger.warning("Ignoring unreadable manifest %s: %s", path, e)
            return None
        if manifest.version != MANIFEST_VERSION:
            logger.info(
                "Index at %s has version %d (expected %d); it will be rebuilt",
                self._index_dir,
                manifest.version,
                MANIFEST_VERSION,
            )
            return None
        return manifest

    def has_index(self) -> bool:
        """Whether a readable manifest of the current version exists."""
        return self._read_manifest() is not None

    def _reset(self) -> None:
        self._vectors.clear()
        self._metadata.clear()
        self._tracker.clear()
        self._manifest = None

    def load(self) -> bool:
        """Load the persisted index into memory.

        A missing, corrupt, or inconsistent index resets to empty so the next
        run rebuilds it. Returns True if a usable index was loaded.
        """
        manifest = self._read_manifest()
        if manifest is None:
            self._reset()
            return False

        try:
            self._vectors.load(self._index_dir)
            self._metadata.load(self._index_dir)
        except CorruptIndexError as e:
            logger.warning("%s; starting from an empty index", e)
            self._reset()
            return False
        self._tracker.load(self._index_dir)

        chunk_ids = set(self._metadata.ids())
        if set(self._vectors.ids()) != chunk_ids or self._tracker.all_chunk_ids() != chunk_ids:
            logger.warning(
                "Index at %s is inconsistent; starting from an empty index", self._index_dir
            )
            self._reset()
            return False

        self._manifest = manifest
        logger.debug(
            "Loaded index: %d files, %d chunks", len(self._tracker), len(self._metadata)
        )
        return True

    def save(self) -> None:
        """Persist all stores, then the manifest."""
        self._state = IndexerState.PERSISTING
        now = datetime.now(UTC)
        manifest = IndexManifest(
            created_at=self._manifest.created_at if self._manifest else now,
            updated_at=now,
            embedding_model=self._embedder.model,
            dimension=self._vectors.dimension or 0,
            file_count=len(self._tracker),
            chunk_count=len(self._metadata),
        )
        self._index_dir.mkdir(parents=True, exist_ok=True)
        self._vectors.save(self._index_dir)
        self._metadata.save(self._index_dir)
        self._tracker.save(self._index_dir)
        atomic_write_json(
            self._index_dir / MANIFEST_FILE, manifest.model_dump(by_alias=True, mode="json")
        )
        self._manifest = manifest
        logger.info(
            "Saved index: %d files, %d chunks", manifest.file_count, manifest.chunk_count
        )

    def close(self) -> None:
        """Release in-memory state. The on-disk index is untouched."""
        self._reset()
        self._state = IndexerState.IDLE

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def discover_files(self) -> list[Path]:
        """Files matching the include globs and none of the exclude globs, sorted.

        Excluded directories and the index directory are pruned during the
        walk, so trees such as ``node_modules`` are never descended into.
        """
        includes = self._config.include
        excludes = self._config.exclude_patterns
        found: list[Path] = []
        for dirpath, dirnames, filenames in os.walk(self._root):
            current = Path(dirpath)
            rel_dir = current.relative_to(self._root).as_posix()
            prefix = "" if rel_dir == "." else f"{rel_dir}/"
            dirnames[:] = sorted(
                name
                for name in dirnames
                if current / name != self._index_dir
                and not any(_matches(f"{prefix}{name}/", ex) for ex in excludes)
            )
            for name in filenames:
                rel = f"{prefix}{name}"
                if not any(_matches(rel, inc) for inc in includes):
                    continue
                if any(_matches(rel, ex) for ex in excludes):
                    continue
                found.append(current / name)
        return sorted(found)

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    def _report(self, message: str, current: int = 0, total: int = 0) -> None:
        if self._progress is not None:
            self._progress(message, current, total)

    def _check_available(self) -> None:
        if not self._embedder.is_available():
            provider = getattr(self._embedder, "provider_name", None) or self._embedder.model
            base_url = getattr(self._embedder, "base_url", None)
            raise EmbeddingUnavailableError(provider, base_url)

    def index_all(self, force: bool = False) -> IndexUpdateResult:
        """Index every discovered file.

        With ``force`` the existing index is discarded and rebuilt from
        scratch; otherwise only changes since the last run are processed.
        """
        return self._run(force=force)

    def update(self) -> IndexUpdateResult:
        """Process only files added, modified, or deleted since the last run."""
        return self._run(force=False)

    def _run(self, force: bool) -> IndexUpdateResult:
        start = time.monotonic()
        self._check_available()

        try:
            if not force and self.load() and self._manifest is not None:
                if self._manifest.embedding_model != self._embedder.model:
                    logger.info(
                        "Embedding model changed (%s -> %s); rebuilding index",
                        self._manifest.embedding_model,
                        self._embedder.model,
                    )
                    force = True
            if force:
                self._reset()

            self._state = IndexerState.DISCOVERING
            self._report("Finding files...")
            files = self.discover_files()
            self._report(f"Found {len(files)} files", len(files), len(files))

            self._state = IndexerState.DIFFING
            changes = self._tracker.detect_changes(files)
            if not changes and self._manifest is not None:
                self._report("No changes detected")
                return IndexUpdateResult(
                    added=0,
                    modified=0,
                    deleted=0,
                    total_chunks=len(self._metadata),
                    duration=time.monotonic() - start,
                )

            result = self._process_changes(changes)
            self._report("Saving index...")
            self.save()
        finally:
            self._state = IndexerState.IDLE

        return IndexUpdateResult(
            added=result.added,
            modified=result.modified,
            deleted=result.deleted,
            total_chunks=len(self._metadata),
            duration=time.monotonic() - start,
            failed=tuple(result.failed),
        )

    def _purge(self, key: str) -> int:
        """Drop every chunk owned by *key* from all three stores."""
        removed = set(self._metadata.remove_by_file_path(key))
        entry = self._tracker.remove_entry(key)
        if entry is not None:
            removed.update(entry.chunk_ids)
        for chunk_id in removed:
            self._metadata.remove(chunk_id)
            self._vectors.remove(chunk_id)
        return len(removed)

    def _process_changes(self, changes: list[FileChange]) -> _RunCounts:
        counts = _RunCounts()

        for change in changes:
            if change.change_type is ChangeType.DELETED:
                removed = self._purge(change.path)
                logger.debug("Removed %s (%d chunks)", change.path, removed)
                counts.deleted += 1

        pending = [c for c in changes if c.change_type is not ChangeType.DELETED]
        for i, change in enumerate(pending, start=1):
            self._report(f"Processing {change.path}", i, len(pending))
            if change.change_type is ChangeType.MODIFIED:
                self._purge(change.path)
            try:
                self._index_file(change.path)
            except Exception:
                logger.exception("Failed to index %s", change.path)
                counts.failed.append(change.path)
                continue
            if change.change_type is ChangeType.ADDED:
                counts.added += 1
            else:
                counts.modified += 1

        if counts.failed:
            logger.warning("%d file(s) failed and will be retried next run", len(counts.failed))
        return counts

    def _index_file(self, key: str) -> None:
        """Extract, embed, and store one file's chunks as a single unit."""
        content = self._tracker.absolute(key).read_bytes().decode("utf-8")

        self._state = IndexerState.EXTRACTING
        chunks = self._chunker.chunk_file(key, content, self._chunking)
        if not chunks:
            self._tracker.update_file(key, content, [])
            return

        self._state = IndexerState.EMBEDDING
        inputs = [self._chunker.prepare_embedding_input(chunk) for chunk in chunks]
        results = self._embedder.embed_batch(inputs)
        if len(results) != len(chunks):
            raise EmbeddingError(
                f"Expected {len(chunks)} embeddings, got {len(results)}",
                provider=self._embedder.model,
            )

        self._state = IndexerState.STORING
        self._vectors.add_batch(
            (chunk.id, result.vector) for chunk, result in zip(chunks, results, strict=True)
        )
        for chunk in chunks:
            self._metadata.set(
                chunk.id,
                StoredChunkMetadata(
                    file_path=key,
                    start_line=chunk.start_line,
                    end_line=chunk.end_line,
                    start_column=chunk.start_column,
                    end_column=chunk.end_column,
                    kind=chunk.kind,
                    name=chunk.name,
                    content_hash=content_hash(chunk.content),
                    metadata=chunk.metadata,
                    parent_id=chunk.parent_id,
                    section_index=chunk.section_index,
                    section_label=chunk.section_label,
                ),
            )
        chunk_ids = list(dict.fromkeys(chunk.id for chunk in chunks))
        self._tracker.update_file(key, content, chunk_ids)
        logger.debug("Indexed %s (%d chunks)", key, len(chunk_ids))

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def get_stats(self) -> IndexStats:
        manifest = self._manifest
        return IndexStats(
            total_files=len(self._tracker),
            total_chunks=len(self._metadata),
            index_size_bytes=self._vectors.stats()["memory_bytes"] or 0,
            dimension=self._vectors.dimension,
            embedding_model=manifest.embedding_model if manifest else None,
            created_at=manifest.created_at if manifest else None,
            updated_at=manifest.updated_at if manifest else None,
        )
