"""Embedding provider interface.

The indexer and query layer depend only on this Protocol, so tests can swap
in a deterministic provider with no network access.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True, slots=True)
class EmbeddingResult:
    """One embedding vector and the model that produced it."""

    vector: list[float]
    model: str


class EmbeddingProvider(Protocol):
    """Protocol for embedding providers.

    Implementations must handle:
    - Batching large inputs internally
    - Preserving input order, one result per input text
    - Mapping transport errors to EmbeddingError
    """

    @property
    def model(self) -> str: ...

    def embed(self, text: str) -> EmbeddingResult:
        """Embed a single text."""
        ...

    def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        """Embed many texts. Order-preserving and one-to-one with *texts*.

        Raises:
            EmbeddingError: On any provider error or timeout.
        """
        ...

    def is_available(self) -> bool:
        """Whether the provider can currently be reached."""
        ...
