"""Persisted index records: chunk metadata, file hashes, and the manifest.

On-disk JSON uses camelCase keys; Python code uses snake_case attributes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from uilint_duplicates.chunking.models import ChunkKind, ChunkMetadata

# Bump when any on-disk record changes shape; older indexes are then rebuilt.
MANIFEST_VERSION = 1


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StoredChunkMetadata(_Record):
    """A ``CodeChunk`` without its raw text, plus a content hash."""

    file_path: str
    start_line: int
    end_line: int
    start_column: int = 0
    end_column: int = 0
    kind: ChunkKind
    name: str | None = None
    content_hash: str
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)
    parent_id: str | None = None
    section_index: int | None = None
    section_label: str | None = None

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1

    def contains_line(self, line: int) -> bool:
        return self.start_line <= line <= self.end_line


class FileHashEntry(_Record):
    """Per-file content hash, mtime, and the chunk ids the file owns."""

    content_hash: str
    mtime: float
    chunk_ids: list[str] = Field(default_factory=list)


class IndexManifest(_Record):
    """Small record describing an index snapshot."""

    version: int = MANIFEST_VERSION
    created_at: datetime
    updated_at: datetime
    embedding_model: str
    dimension: int
    file_count: int
    chunk_count: int


class ChangeType(StrEnum):
    """How a file differs from its last indexed state."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(frozen=True, slots=True)
class FileChange:
    """One detected change to a tracked or candidate file."""

    path: str
    change_type: ChangeType
    old_hash: str | None = None
    new_hash: str | None = None
