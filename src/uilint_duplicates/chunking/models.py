"""Data models for code chunks produced by a chunk extractor."""

from __future__ import annotations

import hashlib
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel


class ChunkKind(StrEnum):
    """Closed set of semantic unit kinds."""

    COMPONENT = "component"
    HOOK = "hook"
    FUNCTION = "function"
    JSX_FRAGMENT = "jsx-fragment"
    JSX_SECTION = "jsx-section"
    COMPONENT_SUMMARY = "component-summary"
    FUNCTION_SECTION = "function-section"
    FUNCTION_SUMMARY = "function-summary"


class SplitStrategy(StrEnum):
    """How an oversized component/function is broken into sub-chunks."""

    JSX_CHILDREN = "jsx-children"
    LINE_SECTIONS = "line-sections"
    NONE = "none"


class ChunkMetadata(BaseModel):
    """Structural facts about a chunk. Every field is optional."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    props: list[str] | None = None
    hooks: list[str] | None = None
    jsx_elements: list[str] | None = None
    imports: list[str] | None = None
    is_exported: bool = False
    is_default_export: bool = False


class ChunkingOptions(BaseModel):
    """Options passed to ``ChunkExtractor.chunk_file``."""

    min_lines: int = 3
    max_lines: int = 100
    include_anonymous: bool = False
    kinds: list[ChunkKind] | None = None
    split_strategy: SplitStrategy = SplitStrategy.JSX_CHILDREN


def chunk_id_for(file_path: str, start_line: int, content: str) -> str:
    """Stable identifier derived from path, location, and content."""
    digest = hashlib.blake2b(
        f"{file_path}:{start_line}:{content}".encode(), digest_size=8
    )
    return digest.hexdigest()


class CodeChunk(BaseModel):
    """A semantically meaningful unit of source code, ready for embedding.

    Chunks are immutable: re-chunking a changed file produces new chunks
    that supersede the old ones rather than patching them.
    """

    model_config = ConfigDict(frozen=True)

    file_path: str
    start_line: int
    end_line: int
    start_column: int = 0
    end_column: int = 0
    kind: ChunkKind
    name: str | None = None
    content: str
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)
    parent_id: str | None = None
    section_index: int | None = None
    section_label: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def id(self) -> str:
        """Unique identifier for this chunk."""
        return chunk_id_for(self.file_path, self.start_line, self.content)

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1
