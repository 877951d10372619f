"""Embedding generator contract and error types."""

import asyncio
import logging
from typing import Protocol, runtime_checkable

import numpy as np

from convrag.constants import EMBEDDING_BATCH_DELAY_SECONDS, EMBEDDING_BATCH_SIZE

logger = logging.getLogger(__name__)


class EmbeddingError(Exception):
    """Base exception for embedding generation errors."""

    pass


class EmptyInputError(EmbeddingError, ValueError):
    """Raised when asked to embed empty or whitespace-only text."""

    pass


class EmbeddingTransportError(EmbeddingError):
    """Raised when the embedding provider cannot be reached or returns an error."""

    pass


class EmbeddingConnectionError(EmbeddingTransportError):
    """Raised on connection failures and timeouts."""

    pass


class EmbeddingRateLimitError(EmbeddingTransportError):
    """Raised when rate limited by the embedding provider."""

    pass


class EmbeddingAuthenticationError(EmbeddingTransportError):
    """Raised when authentication with the embedding provider fails."""

    pass


class InvalidEmbeddingResponseError(EmbeddingError):
    """Raised when a provider response cannot be turned into vectors."""

    pass


@runtime_checkable
class EmbeddingGenerator(Protocol):
    """Turns text into fixed-length vectors."""

    @property
    def model(self) -> str: ...

    @property
    def dimension(self) -> int | None: ...

    async def generate(self, text: str) -> np.ndarray: ...

    async def batch_generate(self, texts: list[str]) -> list[np.ndarray]: ...


def ensure_not_empty(text: str) -> None:
    """Raise EmptyInputError for empty or whitespace-only text."""
    if not text or not text.strip():
        raise EmptyInputError("Cannot embed empty text")


async def batch_generate_chunked(
    generator: EmbeddingGenerator,
    texts: list[str],
    batch_size: int = EMBEDDING_BATCH_SIZE,
    delay: float = EMBEDDING_BATCH_DELAY_SECONDS,
) -> list[np.ndarray]:
    """Embed texts in batches of at most batch_size, pausing between calls.

    Args:
        generator: Generator used for each batch.
        texts: Texts to embed.
        batch_size: Maximum texts per provider call.
        delay: Seconds to wait between calls.

    Returns:
        One vector per input text, in input order.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    vectors: list[np.ndarray] = []
    for start in range(0, len(texts), batch_size):
        if start > 0 and delay > 0:
            await asyncio.sleep(delay)
        batch = texts[start : start + batch_size]
        logger.debug(f"Embedding batch {start // batch_size + 1} ({len(batch)} texts)")
        vectors.extend(await generator.batch_generate(batch))
    return vectors
