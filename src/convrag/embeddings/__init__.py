"""Embedding generation."""

from convrag.embeddings.base import (
    EmbeddingAuthenticationError,
    EmbeddingConnectionError,
    EmbeddingError,
    EmbeddingGenerator,
    EmbeddingRateLimitError,
    EmbeddingTransportError,
    EmptyInputError,
    InvalidEmbeddingResponseError,
    batch_generate_chunked,
)
from convrag.embeddings.client import EmbeddingClient

__all__ = [
    "EmbeddingAuthenticationError",
    "EmbeddingClient",
    "EmbeddingConnectionError",
    "EmbeddingError",
    "EmbeddingGenerator",
    "EmbeddingRateLimitError",
    "EmbeddingTransportError",
    "EmptyInputError",
    "InvalidEmbeddingResponseError",
    "batch_generate_chunked",
]
