"""Error taxonomy for the duplicate-detection index.

Every error raised by this package derives from ``DuplicateIndexError`` so
callers can catch the whole family in one place, while still telling apart
"nothing was indexed" from "the embedding service is down".
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


class DuplicateIndexError(Exception):
    """Base class for all duplicate-index errors."""


class EmbeddingError(DuplicateIndexError):
    """An embedding request failed (bad response, timeout, HTTP error)."""

    def __init__(self, message: str, provider: str, original: Exception | None = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.original = original


class EmbeddingUnavailableError(EmbeddingError):
    """The embedding provider cannot be reached. Fatal for an indexing run."""

    def __init__(self, provider: str, base_url: str | None = None) -> None:
        where = f" at {base_url}" if base_url else ""
        super().__init__(
            f"Embedding provider '{provider}' is not available{where}",
            provider=provider,
        )
        self.base_url = base_url


class CorruptIndexError(DuplicateIndexError):
    """An on-disk index file is truncated, unparsable, or inconsistent."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Corrupt index file {path}: {reason}")
        self.path = path
        self.reason = reason


class NoIndexError(DuplicateIndexError):
    """A query was issued against a project that has never been indexed."""

    def __init__(self, project_root: Path, message: str | None = None) -> None:
        super().__init__(
            message or f"No index found at {project_root}. Run 'uilint-duplicates index' first."
        )
        self.project_root = project_root


class DimensionMismatchError(DuplicateIndexError, ValueError):
    """A vector's length differs from the store's established dimension."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Vector dimension mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class IndexRebuildRequiredError(NoIndexError):
    """An index exists on disk but cannot be loaded and must be rebuilt."""

    def __init__(self, project_root: Path) -> None:
        super().__init__(
            project_root,
            f"Index at {project_root} is corrupt or inconsistent. "
            "Run 'uilint-duplicates index --force' to rebuild it.",
        )
