"""Index layer — persistent stores and the incremental indexer."""

from uilint_duplicates.index.file_tracker import FileTracker, content_hash
from uilint_duplicates.index.indexer import (
    IncrementalIndexer,
    IndexerState,
    IndexStats,
    IndexUpdateResult,
)
from uilint_duplicates.index.metadata_store import MetadataStore
from uilint_duplicates.index.models import (
    MANIFEST_VERSION,
    ChangeType,
    FileChange,
    FileHashEntry,
    IndexManifest,
    StoredChunkMetadata,
)
from uilint_duplicates.index.vector_store import SimilarityResult, VectorStore, cosine_similarity

__all__ = [
    "MANIFEST_VERSION",
    "ChangeType",
    "FileChange",
    "FileHashEntry",
    "FileTracker",
    "IncrementalIndexer",
    "IndexManifest",
    "IndexStats",
    "IndexUpdateResult",
    "IndexerState",
    "MetadataStore",
    "SimilarityResult",
    "StoredChunkMetadata",
    "VectorStore",
    "content_hash",
    "cosine_similarity",
]
