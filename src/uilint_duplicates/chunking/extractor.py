"""Chunk extractor interface and embedding-input preparation.

The indexer only ever talks to a ``ChunkExtractor``: anything that can turn a
file's text into ``CodeChunk`` objects and render a chunk as embedding input.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from uilint_duplicates.chunking.models import ChunkKind

if TYPE_CHECKING:
    from uilint_duplicates.chunking.models import ChunkingOptions, CodeChunk

# Safe limit for nomic-embed-text with a 2048 token context
DEFAULT_MAX_EMBEDDING_CHARS = 6000

_TRUNCATION_MARKER = "\n\n[... content truncated for embedding ...]"


class ChunkExtractor(Protocol):
    """Protocol for chunk extractors."""

    def chunk_file(
        self,
        file_path: str,
        content: str,
        options: ChunkingOptions | None = None,
    ) -> list[CodeChunk]:
        """Split *content* into semantic chunks. Chunk ids must be stable."""
        ...

    def prepare_embedding_input(self, chunk: CodeChunk) -> str:
        """Render *chunk* as the text handed to the embedding provider."""
        ...


def _describe(chunk: CodeChunk) -> list[str]:
    name = chunk.name or "anonymous"
    label = chunk.section_label or f"section-{chunk.section_index}"
    props = chunk.metadata.props

    match chunk.kind:
        case ChunkKind.COMPONENT:
            parts = [f"React component: {name}"]
            if props:
                parts.append(f"Props: {', '.join(props)}")
        case ChunkKind.COMPONENT_SUMMARY:
            parts = [f"React component summary: {name}"]
            if props:
                parts.append(f"Props: {', '.join(props)}")
            parts.append("(Large component - see sections for JSX details)")
        case ChunkKind.JSX_SECTION:
            parts = [f"JSX section from {name}: {label}"]
        case ChunkKind.HOOK:
            parts = [f"React hook: {name}"]
        case ChunkKind.FUNCTION:
            parts = [f"Function: {name}"]
        case ChunkKind.FUNCTION_SUMMARY:
            parts = [f"Function summary: {name}", "(Large function - split into sections)"]
        case ChunkKind.FUNCTION_SECTION:
            parts = [f"Function section from {name}: {label}"]
        case ChunkKind.JSX_FRAGMENT:
            parts = [f"JSX fragment: {name}"]
    return parts


def prepare_embedding_input(
    chunk: CodeChunk,
    max_chars: int = DEFAULT_MAX_EMBEDDING_CHARS,
) -> str:
    """Enrich chunk content with structural context for embedding.

    The kind/name header, the code itself, then the JSX elements and hooks it
    uses. Output longer than *max_chars* is truncated with a marker.
    """
    parts = _describe(chunk)
    parts.append(chunk.content)

    if chunk.metadata.jsx_elements:
        parts.append(f"JSX elements: {', '.join(chunk.metadata.jsx_elements)}")
    if chunk.metadata.hooks:
        parts.append(f"Hooks used: {', '.join(chunk.metadata.hooks)}")

    result = "\n\n".join(parts)
    if len(result) > max_chars:
        result = result[: max(max_chars - 50, 0)] + _TRUNCATION_MARKER
    return result
