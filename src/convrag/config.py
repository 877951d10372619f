# src/convrag/config.py
"""Configuration system for convrag.

This module handles loading settings from environment variables and an INI
file in the data directory, providing defaults from convrag.constants, and
computing derived paths.
"""

from configparser import ConfigParser
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional
import os

from convrag.constants import (
    CHUNK_MAX_TOKENS,
    CHUNK_OVERLAP_TOKENS,
    CODE_CONTEXT_MAX_CHUNKS,
    CODE_CONTEXT_TOP_K,
    CONVERSATION_CONTEXT_TOP_K,
    DEFAULT_EMBEDDING_DIMENSION,
    DEFAULT_EMBEDDING_MODEL,
    DEFAULT_EMBEDDING_PROVIDER,
    DEFAULT_HYBRID_TOP_K,
    EMBEDDING_BATCH_DELAY_SECONDS,
    EMBEDDING_BATCH_SIZE,
    EMBEDDING_MAX_RETRIES,
    EMBEDDING_RETRY_BASE_DELAY,
    EMBEDDING_TIMEOUT_SECONDS,
    INDEXING_ITEM_DELAY_SECONDS,
    INDEXING_WORKER_COUNT,
    KEYWORD_CANDIDATE_LIMIT,
    KEYWORD_WEIGHT,
    MAX_CONTEXT_TOKENS,
    MULTI_TURN_MAX_SOURCES,
    MULTI_TURN_TOP_K,
    SEMANTIC_WEIGHT,
    UNINDEXED_BATCH_LIMIT,
)


class ConfigError(Exception):
    """Raised when configuration validation fails."""

    pass


# Schema: section -> key -> (type, default, min, max, description)
CONFIG_SCHEMA: dict[str, dict[str, tuple[type, Any, Any, Any, str]]] = {
    "search": {
        "keyword_candidate_limit": (
            int,
            KEYWORD_CANDIDATE_LIMIT,
            1,
            1000,
            "FTS matches re-scored by hybrid search",
        ),
        "semantic_weight": (float, SEMANTIC_WEIGHT, 0.0, 1.0, "Weight of cosine similarity"),
        "keyword_weight": (float, KEYWORD_WEIGHT, 0.0, 1.0, "Weight of keyword rank"),
        "default_top_k": (int, DEFAULT_HYBRID_TOP_K, 1, 100, "Default hybrid result count"),
    },
    "context": {
        "max_context_tokens": (int, MAX_CONTEXT_TOKENS, 100, 100_000, "Context token budget"),
        "conversation_top_k": (int, CONVERSATION_CONTEXT_TOP_K, 1, 50, "Per-conversation hits"),
        "code_top_k": (int, CODE_CONTEXT_TOP_K, 1, 50, "Candidates for code context"),
        "code_max_chunks": (int, CODE_CONTEXT_MAX_CHUNKS, 1, 50, "Code chunks packed"),
        "multi_turn_top_k": (int, MULTI_TURN_TOP_K, 1, 100, "Candidates for multi-turn"),
        "multi_turn_max_sources": (int, MULTI_TURN_MAX_SOURCES, 1, 50, "Unique sources packed"),
    },
    "embedding": {
        "batch_size": (int, EMBEDDING_BATCH_SIZE, 1, 2048, "Texts per provider call"),
        "batch_delay_seconds": (
            float,
            EMBEDDING_BATCH_DELAY_SECONDS,
            0.0,
            60.0,
            "Pause between batch calls",
        ),
        "timeout_seconds": (float, EMBEDDING_TIMEOUT_SECONDS, 1.0, 600.0, "Per-call timeout"),
        "max_retries": (int, EMBEDDING_MAX_RETRIES, 0, 10, "Retries for transient failures"),
        "retry_base_delay": (
            float,
            EMBEDDING_RETRY_BASE_DELAY,
            0.0,
            30.0,
            "First backoff delay in seconds",
        ),
    },
    "indexing": {
        "worker_count": (int, INDEXING_WORKER_COUNT, 1, 16, "Background indexing workers"),
        "item_delay_seconds": (
            float,
            INDEXING_ITEM_DELAY_SECONDS,
            0.0,
            60.0,
            "Pause between backfill items",
        ),
        "chunk_max_tokens": (int, CHUNK_MAX_TOKENS, 50, 8000, "Max tokens per chunk"),
        "chunk_overlap_tokens": (int, CHUNK_OVERLAP_TOKENS, 0, 1000, "Overlap between chunks"),
        "unindexed_batch_limit": (int, UNINDEXED_BATCH_LIMIT, 1, 1000, "Backfill batch size"),
    },
}


@dataclass(frozen=True)
class SearchConfig:
    """Hybrid search configuration."""

    keyword_candidate_limit: int
    semantic_weight: float
    keyword_weight: float
    default_top_k: int


@dataclass(frozen=True)
class ContextConfig:
    """Context assembly configuration."""

    max_context_tokens: int
    conversation_top_k: int
    code_top_k: int
    code_max_chunks: int
    multi_turn_top_k: int
    multi_turn_max_sources: int


@dataclass(frozen=True)
class EmbeddingConfig:
    """Embedding client configuration."""

    batch_size: int
    batch_delay_seconds: float
    timeout_seconds: float
    max_retries: int
    retry_base_delay: float


@dataclass(frozen=True)
class IndexingConfig:
    """Indexing and background worker configuration."""

    worker_count: int
    item_delay_seconds: float
    chunk_max_tokens: int
    chunk_overlap_tokens: int
    unindexed_batch_limit: int


_SECTION_TYPES = {
    "search": SearchConfig,
    "context": ContextConfig,
    "embedding": EmbeddingConfig,
    "indexing": IndexingConfig,
}


def _load_section(
    parser: ConfigParser, section: str, schema: dict[str, tuple[type, Any, Any, Any, str]]
) -> dict[str, Any]:
    """Load and validate a configuration section.

    Args:
        parser: ConfigParser instance with loaded config
        section: Section name to load
        schema: Schema definition for the section

    Returns:
        Dictionary of validated configuration values

    Raises:
        ConfigError: If validation fails
    """
    result = {}

    for key, (typ, default, min_val, max_val, _) in schema.items():
        if parser.has_option(section, key):
            raw_value = parser.get(section, key)
            value: bool | int | float | str
            try:
                if typ is bool:
                    value = raw_value.lower() in ("true", "1", "yes", "on")
                elif typ is int:
                    value = int(raw_value)
                elif typ is float:
                    value = float(raw_value)
                else:
                    value = raw_value
            except ValueError as e:
                raise ConfigError(
                    f"Invalid value for [{section}].{key}: {raw_value!r} (expected {typ.__name__})"
                ) from e
        else:
            value = default

        if typ in (int, float) and value is not None:
            if min_val is not None and value < min_val:
                raise ConfigError(
                    f"Value for [{section}].{key} is {value}, but minimum is {min_val}"
                )
            if max_val is not None and value > max_val:
                raise ConfigError(
                    f"Value for [{section}].{key} is {value}, but maximum is {max_val}"
                )

        result[key] = value

    return result


def _defaults(section: str) -> Any:
    """Build a section dataclass from schema defaults."""
    values = {key: default for key, (_, default, _, _, _) in CONFIG_SCHEMA[section].items()}
    return _SECTION_TYPES[section](**values)


def _load_config(config_path: Optional[Path] = None) -> "Config":
    """Load configuration from an INI file (internal use only).

    Args:
        config_path: Path to config file. If None, uses defaults from schema.

    Returns:
        Config with all sections populated and default core settings.

    Raises:
        ConfigError: If validation fails
    """
    parser = ConfigParser()

    if config_path and config_path.exists():
        parser.read(config_path)

    sections = {
        name: _SECTION_TYPES[name](**_load_section(parser, name, schema))
        for name, schema in CONFIG_SCHEMA.items()
    }

    return Config(**sections)


@dataclass(frozen=True)
class Config:
    """Complete application configuration."""

    data_dir: Path = None  # type: ignore[assignment]  # Set in __post_init__ if None
    embedding_provider: str = DEFAULT_EMBEDDING_PROVIDER
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    embedding_dimension: int = DEFAULT_EMBEDDING_DIMENSION
    together_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    ollama_endpoint: str = "http://localhost:11434"

    search: SearchConfig = None  # type: ignore[assignment]
    context: ContextConfig = None  # type: ignore[assignment]
    embedding: EmbeddingConfig = None  # type: ignore[assignment]
    indexing: IndexingConfig = None  # type: ignore[assignment]

    def __post_init__(self):
        """Initialize section configs with defaults if not provided."""
        # Since frozen=True, we need to use object.__setattr__
        if self.data_dir is None:
            object.__setattr__(self, "data_dir", Path.home() / ".convrag")
        for section in _SECTION_TYPES:
            if getattr(self, section) is None:
                object.__setattr__(self, section, _defaults(section))

    @property
    def db_path(self) -> Path:
        """Path to the SQLite database holding documents and embeddings."""
        return self.data_dir / "convrag.db"

    @property
    def config_path(self) -> Path:
        """Path to the optional INI overrides file."""
        return self.data_dir / "config.ini"

    @property
    def embedding_api_key(self) -> Optional[str]:
        """API key for the active embedding provider."""
        provider_keys = {
            "together_ai": self.together_api_key,
            "openai": self.openai_api_key,
        }
        return provider_keys.get(self.embedding_provider)

    @property
    def embedding_endpoint(self) -> Optional[str]:
        """Endpoint for the embedding provider (mainly for Ollama)."""
        if self.embedding_provider == "ollama":
            return self.ollama_endpoint
        return None


@lru_cache(maxsize=1)
def load_settings() -> Config:
    """Load settings from environment variables and config file.

    Settings are cached for the lifetime of the application.
    Use load_settings.cache_clear() to reload settings.

    Returns:
        Config object populated from environment variables and config file.

    Raises:
        ConfigError: If the config file or EMBEDDING_DIMENSION is invalid.
    """
    data_dir_str = os.getenv("CONVRAG_DATA_DIR")
    data_dir = Path(data_dir_str) if data_dir_str else Path.home() / ".convrag"

    config_file = data_dir / "config.ini"
    try:
        config_exists = config_file.exists()
    except PermissionError:
        config_exists = False
    base_config = _load_config(config_file if config_exists else None)

    dimension_env = os.getenv("EMBEDDING_DIMENSION")
    try:
        embedding_dimension = int(dimension_env) if dimension_env else DEFAULT_EMBEDDING_DIMENSION
    except ValueError as e:
        raise ConfigError(f"Invalid EMBEDDING_DIMENSION: {dimension_env!r}") from e
    if embedding_dimension < 1:
        raise ConfigError(f"EMBEDDING_DIMENSION must be positive, got {embedding_dimension}")

    return Config(
        data_dir=data_dir,
        embedding_provider=os.getenv("EMBEDDING_PROVIDER", DEFAULT_EMBEDDING_PROVIDER),
        embedding_model=os.getenv("EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL),
        embedding_dimension=embedding_dimension,
        together_api_key=os.getenv("TOGETHERAI_API_KEY"),
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        ollama_endpoint=os.getenv("OLLAMA_ENDPOINT", "http://localhost:11434"),
        search=base_config.search,
        context=base_config.context,
        embedding=base_config.embedding,
        indexing=base_config.indexing,
    )
