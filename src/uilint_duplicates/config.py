"""Configuration management for uilint-duplicates.

Loads from environment variables, .env files, and an optional TOML file.
API keys come from env vars; structural config from TOML.

Per-project index layout (relative to the project root):
  .uilint/.duplicates-index/manifest.json   — versioned manifest
  .uilint/.duplicates-index/embeddings.bin  — float32 vectors
  .uilint/.duplicates-index/ids.json        — vector row order
  .uilint/.duplicates-index/metadata.json   — chunk metadata
  .uilint/.duplicates-index/hashes.json     — file content hashes
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from uilint_duplicates.chunking.models import ChunkKind, SplitStrategy

DEFAULT_INDEX_DIR = Path(".uilint") / ".duplicates-index"

DEFAULT_INCLUDE = ["**/*.tsx", "**/*.ts", "**/*.jsx", "**/*.js"]

DEFAULT_EXCLUDE = [
    "**/node_modules/**",
    "**/dist/**",
    "**/build/**",
    "**/.git/**",
    "**/.next/**",
    "**/*.test.*",
    "**/*.spec.*",
    "**/__tests__/**",
    "**/*.d.ts",
]


class EmbeddingConfig(BaseSettings):
    """Embedding model configuration."""

    provider: Literal["ollama", "openai", "voyage"] = "ollama"
    model: str = "nomic-embed-text"
    base_url: str = "http://localhost:11434"
    batch_size: int = Field(default=10, ge=1)
    timeout_seconds: float = Field(default=60.0, gt=0)
    max_input_chars: int = 6000


class ChunkingConfig(BaseSettings):
    """Chunk extraction options handed to the chunk extractor."""

    min_lines: int = Field(default=3, ge=1)
    max_lines: int = Field(default=100, ge=1)
    include_anonymous: bool = False
    kinds: list[ChunkKind] | None = None
    split_strategy: SplitStrategy = SplitStrategy.JSX_CHILDREN


class IndexConfig(BaseSettings):
    """Where the index lives and which files feed it."""

    index_dir: Path = DEFAULT_INDEX_DIR
    include: list[str] = Field(default_factory=lambda: list(DEFAULT_INCLUDE))
    exclude: list[str] = Field(default_factory=list)

    @field_validator("index_dir")
    @classmethod
    def expand_index_dir(cls, v: Path) -> Path:
        return v.expanduser()

    @property
    def exclude_patterns(self) -> list[str]:
        """Built-in excludes followed by user-configured ones."""
        return [*DEFAULT_EXCLUDE, *self.exclude]


class DetectionConfig(BaseSettings):
    """Duplicate grouping and similarity search defaults."""

    threshold: float = Field(default=0.85, ge=-1.0, le=1.0)
    min_group_size: int = Field(default=2, ge=2)
    min_lines: int = Field(default=3, ge=1)
    search_threshold: float = Field(default=0.5, ge=-1.0, le=1.0)
    top: int = Field(default=10, ge=1)


class Settings(BaseSettings):
    """Root configuration — aggregates all sub-configs."""

    model_config = SettingsConfigDict(
        env_prefix="UILINT_DUPLICATES_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    index: IndexConfig = Field(default_factory=IndexConfig)
    detection: DetectionConfig = Field(default_factory=DetectionConfig)

    # API keys always come from env vars
    openai_api_key: str = ""
    voyage_api_key: str = ""

    @property
    def embedding_api_key(self) -> str:
        """Resolve the API key for the configured embedding provider."""
        keys = {
            "openai": self.openai_api_key,
            "voyage": self.voyage_api_key,
            "ollama": "ollama",
        }
        return keys.get(self.embedding.provider, "")

    @classmethod
    def from_toml(cls, path: Path | None = None) -> Settings:
        """Load settings from TOML file, with env var overrides."""
        config_path = path or Path("uilint-duplicates.toml")
        if config_path.exists():
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
            return cls(**data)
        return cls()


def load_settings(config_path: Path | None = None) -> Settings:
    """Load and validate settings. Entry point for all config access."""
    return Settings.from_toml(config_path)
