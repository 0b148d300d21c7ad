"""Embedding pipeline — batch-embeds chunk text via Ollama, OpenAI, or Voyage."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from openai import OpenAI, OpenAIError

from uilint_duplicates.embeddings.provider import EmbeddingResult
from uilint_duplicates.errors import EmbeddingError

if TYPE_CHECKING:
    from uilint_duplicates.config import EmbeddingConfig

logger = logging.getLogger(__name__)

_VOYAGE_BASE_URL = "https://api.voyageai.com/v1"
_AVAILABILITY_TIMEOUT_SECONDS = 5.0


class Embedder:
    """Generates embeddings for chunk text.

    Talks to every provider through the OpenAI-compatible embeddings API:
    Ollama exposes it under ``/v1`` (no API key required), Voyage under its
    own base URL. Requests are bounded by ``config.timeout_seconds``.
    """

    def __init__(self, config: EmbeddingConfig, api_key: str = "") -> None:
        self.config = config
        if config.provider == "ollama":
            self.base_url: str | None = f"{config.base_url.rstrip('/')}/v1"
        elif config.provider == "voyage":
            self.base_url = _VOYAGE_BASE_URL
        else:
            self.base_url = None
        self._client = OpenAI(
            api_key=api_key or "ollama",
            base_url=self.base_url,
            timeout=config.timeout_seconds,
            max_retries=1,
        )

    @property
    def provider_name(self) -> str:
        return self.config.provider

    @property
    def model(self) -> str:
        return self.config.model

    def embed(self, text: str) -> EmbeddingResult:
        """Embed a single text."""
        return self._embed_direct([text])[0]

    def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        """Embed texts in batches of ``config.batch_size``, preserving order."""
        if not texts:
            return []

        results: list[EmbeddingResult] = []
        for i in range(0, len(texts), self.config.batch_size):
            batch = texts[i : i + self.config.batch_size]
            results.extend(self._embed_direct(batch))
            logger.debug(
                "Embedded batch %d-%d of %d",
                i,
                min(i + self.config.batch_size, len(texts)),
                len(texts),
            )
        return results

    def _embed_direct(self, texts: list[str]) -> list[EmbeddingResult]:
        """One API request, no batching."""
        try:
            response = self._client.embeddings.create(model=self.config.model, input=texts)
        except OpenAIError as e:
            raise EmbeddingError(str(e), provider=self.provider_name, original=e) from e

        data = sorted(response.data, key=lambda item: item.index)
        if len(data) != len(texts):
            raise EmbeddingError(
                f"Expected {len(texts)} embeddings, got {len(data)}",
                provider=self.provider_name,
            )
        return [EmbeddingResult(vector=list(item.embedding), model=self.config.model) for item in data]

    def is_available(self) -> bool:
        """Probe the provider's model listing endpoint."""
        try:
            self._client.with_options(timeout=_AVAILABILITY_TIMEOUT_SECONDS).models.list()
        except OpenAIError as e:
            logger.debug("Embedding provider %s unavailable: %s", self.provider_name, e)
            return False
        return True
