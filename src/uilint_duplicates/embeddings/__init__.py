"""Embeddings — provider protocol and the OpenAI-compatible embedder."""

from uilint_duplicates.embeddings.embedder import Embedder
from uilint_duplicates.embeddings.provider import EmbeddingProvider, EmbeddingResult

__all__ = ["Embedder", "EmbeddingProvider", "EmbeddingResult"]
