"""Chunking — code chunk models, the extractor protocol, and the tree-sitter extractor."""

from uilint_duplicates.chunking.extractor import ChunkExtractor, prepare_embedding_input
from uilint_duplicates.chunking.models import (
    ChunkingOptions,
    ChunkKind,
    ChunkMetadata,
    CodeChunk,
    SplitStrategy,
    chunk_id_for,
)
from uilint_duplicates.chunking.treesitter import TreeSitterChunker

__all__ = [
    "ChunkExtractor",
    "ChunkKind",
    "ChunkMetadata",
    "ChunkingOptions",
    "CodeChunk",
    "SplitStrategy",
    "TreeSitterChunker",
    "chunk_id_for",
    "prepare_embedding_input",
]
