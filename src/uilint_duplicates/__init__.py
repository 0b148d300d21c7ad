"""uilint-duplicates — semantic duplicate detection for UI codebases."""

from uilint_duplicates.errors import (
    CorruptIndexError,
    DimensionMismatchError,
    DuplicateIndexError,
    EmbeddingError,
    EmbeddingUnavailableError,
    IndexRebuildRequiredError,
    NoIndexError,
)
from uilint_duplicates.query import ProjectIndex, SearchResult, open_project

__version__ = "0.1.0"

__all__ = [
    "CorruptIndexError",
    "DimensionMismatchError",
    "DuplicateIndexError",
    "EmbeddingError",
    "EmbeddingUnavailableError",
    "IndexRebuildRequiredError",
    "NoIndexError",
    "ProjectIndex",
    "SearchResult",
    "__version__",
    "open_project",
]
