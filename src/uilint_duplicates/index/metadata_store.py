"""Metadata store — chunk id → ``StoredChunkMetadata``, persisted as ``metadata.json``."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError

from uilint_duplicates.errors import CorruptIndexError
from uilint_duplicates.index.models import MANIFEST_VERSION, StoredChunkMetadata
from uilint_duplicates.index.storage import atomic_write_json

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from uilint_duplicates.chunking.models import ChunkKind

logger = logging.getLogger(__name__)

METADATA_FILE = "metadata.json"


class MetadataStore:
    """Insertion-ordered mapping of chunk id to chunk metadata.

    Iteration order is insertion order, so lookups that break ties
    ("first stored wins") are deterministic across save/load.
    """

    def __init__(self) -> None:
        self._chunks: dict[str, StoredChunkMetadata] = {}

    # ------------------------------------------------------------------
    # Basic mapping operations
    # ------------------------------------------------------------------

    def set(self, chunk_id: str, metadata: StoredChunkMetadata) -> None:
        self._chunks[chunk_id] = metadata

    def get(self, chunk_id: str) -> StoredChunkMetadata | None:
        return self._chunks.get(chunk_id)

    def has(self, chunk_id: str) -> bool:
        return chunk_id in self._chunks

    def remove(self, chunk_id: str) -> bool:
        return self._chunks.pop(chunk_id, None) is not None

    def clear(self) -> None:
        self._chunks.clear()

    def ids(self) -> list[str]:
        return list(self._chunks)

    def entries(self) -> Iterator[tuple[str, StoredChunkMetadata]]:
        yield from self._chunks.items()

    def size(self) -> int:
        return len(self._chunks)

    def __len__(self) -> int:
        return len(self._chunks)

    def __contains__(self, chunk_id: object) -> bool:
        return chunk_id in self._chunks

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_by_file_path(self, file_path: str) -> list[tuple[str, StoredChunkMetadata]]:
        return [(cid, m) for cid, m in self._chunks.items() if m.file_path == file_path]

    def remove_by_file_path(self, file_path: str) -> list[str]:
        """Remove every chunk from *file_path*; returns the removed ids."""
        removed = [cid for cid, m in self._chunks.items() if m.file_path == file_path]
        for cid in removed:
            del self._chunks[cid]
        return removed

    def get_at_location(self, file_path: str, line: int) -> tuple[str, StoredChunkMetadata] | None:
        """The narrowest chunk in *file_path* whose line span contains *line*.

        Equal spans resolve to the chunk stored first.
        """
        best: tuple[str, StoredChunkMetadata] | None = None
        for cid, meta in self._chunks.items():
            if meta.file_path != file_path or not meta.contains_line(line):
                continue
            if best is None or meta.line_count < best[1].line_count:
                best = (cid, meta)
        return best

    def filter_by_kind(self, kind: ChunkKind) -> list[tuple[str, StoredChunkMetadata]]:
        return [(cid, m) for cid, m in self._chunks.items() if m.kind == kind]

    def search_by_name(self, name: str) -> list[tuple[str, StoredChunkMetadata]]:
        """Case-insensitive substring match on chunk names."""
        needle = name.lower()
        return [
            (cid, m)
            for cid, m in self._chunks.items()
            if m.name is not None and needle in m.name.lower()
        ]

    def get_by_content_hash(self, content_hash: str) -> list[tuple[str, StoredChunkMetadata]]:
        return [(cid, m) for cid, m in self._chunks.items() if m.content_hash == content_hash]

    def file_paths(self) -> set[str]:
        return {m.file_path for m in self._chunks.values()}

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, dir_path: Path) -> None:
        payload = {
            "version": MANIFEST_VERSION,
            "chunks": {
                cid: meta.model_dump(by_alias=True, mode="json")
                for cid, meta in self._chunks.items()
            },
        }
        atomic_write_json(dir_path / METADATA_FILE, payload)
        logger.debug("Saved metadata for %d chunks to %s", len(self._chunks), dir_path)

    def load(self, dir_path: Path) -> None:
        """Replace contents with ``metadata.json`` from *dir_path*.

        Raises:
            CorruptIndexError: Missing, unparsable, or wrong-version file.
        """
        path = dir_path / METADATA_FILE
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise CorruptIndexError(path, f"unreadable: {e}") from e

        if not isinstance(raw, dict) or raw.get("version") != MANIFEST_VERSION:
            raise CorruptIndexError(path, "unsupported metadata version")
        chunks = raw.get("chunks")
        if not isinstance(chunks, dict):
            raise CorruptIndexError(path, "missing chunk table")

        try:
            loaded = {
                cid: StoredChunkMetadata.model_validate(data) for cid, data in chunks.items()
            }
        except ValidationError as e:
            raise CorruptIndexError(path, f"invalid chunk record: {e}") from e

        self._chunks = loaded
        logger.debug("Loaded metadata for %d chunks from %s", len(loaded), dir_path)
