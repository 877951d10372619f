"""LiteLLM-based embedding client."""

import asyncio
import logging
from typing import Any

import numpy as np
import openai
from litellm import aembedding
from litellm.exceptions import (
    APIConnectionError,
    APIError,
    AuthenticationError,
    BadRequestError,
    ContextWindowExceededError,
    InternalServerError,
    NotFoundError,
    RateLimitError,
    ServiceUnavailableError,
    Timeout,
)

from convrag.constants import (
    EMBEDDING_BATCH_DELAY_SECONDS,
    EMBEDDING_BATCH_SIZE,
    EMBEDDING_MAX_RETRIES,
    EMBEDDING_RETRY_BASE_DELAY,
    EMBEDDING_TIMEOUT_SECONDS,
)
from convrag.embeddings.base import (
    EmbeddingAuthenticationError,
    EmbeddingConnectionError,
    EmbeddingRateLimitError,
    EmbeddingTransportError,
    InvalidEmbeddingResponseError,
    batch_generate_chunked,
    ensure_not_empty,
)

logger = logging.getLogger(__name__)


class EmbeddingClient:
    """Embedding generator supporting multiple providers via LiteLLM."""

    def __init__(
        self,
        provider: str,
        model: str,
        dimension: int | None = None,
        api_key: str | None = None,
        endpoint: str | None = None,
        timeout: float = EMBEDDING_TIMEOUT_SECONDS,
        max_retries: int = EMBEDDING_MAX_RETRIES,
        retry_base_delay: float = EMBEDDING_RETRY_BASE_DELAY,
        batch_size: int = EMBEDDING_BATCH_SIZE,
        batch_delay: float = EMBEDDING_BATCH_DELAY_SECONDS,
    ):
        """Initialize embedding client.

        Args:
            provider: Embedding provider (together_ai, openai, ollama, ...).
            model: Model name.
            dimension: Expected vector length; responses are checked against it.
            api_key: Optional API key (uses env var if not provided).
            endpoint: Optional custom endpoint (for Ollama).
            timeout: Per-call timeout in seconds.
            max_retries: Retries after the first attempt for transient failures.
            retry_base_delay: Delay before the first retry; doubles each time.
            batch_size: Default texts per call for batch_generate_chunked.
            batch_delay: Default pause between chunked calls.
        """
        self.provider = provider
        self._model = model
        self._dimension = dimension
        self.api_key = api_key
        self.endpoint = endpoint
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.batch_size = batch_size
        self.batch_delay = batch_delay

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimension(self) -> int | None:
        return self._dimension

    def _get_model_string(self) -> str:
        """Get LiteLLM model string.

        Returns:
            Model string in provider/model format.
        """
        if self.provider == "openai":
            return self._model  # OpenAI is default
        elif self.provider == "ollama":
            return f"ollama/{self._model}"
        else:
            return f"{self.provider}/{self._model}"

    async def generate(self, text: str) -> np.ndarray:
        """Embed a single text.

        Raises:
            EmptyInputError: If text is empty or whitespace.
            EmbeddingTransportError: On network or provider failure.
            InvalidEmbeddingResponseError: If the response has no usable vector.
        """
        ensure_not_empty(text)
        vectors = await self._embed([text])
        return vectors[0]

    async def batch_generate(self, texts: list[str]) -> list[np.ndarray]:
        """Embed several texts in one provider call.

        Returns:
            One vector per text, in input order; [] for no texts.
        """
        if not texts:
            return []
        for text in texts:
            ensure_not_empty(text)
        return await self._embed(texts)

    async def batch_generate_chunked(
        self,
        texts: list[str],
        batch_size: int | None = None,
        delay: float | None = None,
    ) -> list[np.ndarray]:
        """Embed many texts using several bounded provider calls."""
        return await batch_generate_chunked(
            self,
            texts,
            batch_size=self.batch_size if batch_size is None else batch_size,
            delay=self.batch_delay if delay is None else delay,
        )

    async def _embed(self, texts: list[str]) -> list[np.ndarray]:
        """Call the provider, retrying transient failures with exponential backoff."""
        delay = self.retry_base_delay
        attempts = self.max_retries + 1

        for attempt in range(attempts):
            try:
                response = await self._call(texts)
                return self._extract_vectors(response, len(texts))
            except (EmbeddingRateLimitError, EmbeddingConnectionError) as e:
                if attempt == attempts - 1:
                    raise
                logger.warning(
                    f"Embedding call failed ({e}), retrying in {delay}s "
                    f"(attempt {attempt + 1}/{attempts})"
                )
                await asyncio.sleep(delay)
                delay *= 2  # Exponential backoff

        # Unreachable: the last attempt either returns or raises
        raise EmbeddingTransportError("Embedding retries exhausted")

    async def _call(self, texts: list[str]) -> Any:
        kwargs: dict[str, Any] = {
            "model": self._get_model_string(),
            "input": texts,
            "timeout": self.timeout,
        }

        if self.api_key:
            kwargs["api_key"] = self.api_key

        if self.endpoint and self.provider == "ollama":
            kwargs["api_base"] = self.endpoint

        try:
            return await asyncio.wait_for(aembedding(**kwargs), timeout=self.timeout)
        except AuthenticationError as e:
            raise EmbeddingAuthenticationError(f"Authentication failed: {e}") from e
        except RateLimitError as e:
            raise EmbeddingRateLimitError(f"Rate limit exceeded: {e}") from e
        except (Timeout, asyncio.TimeoutError) as e:
            raise EmbeddingConnectionError(
                f"Embedding call timed out after {self.timeout}s"
            ) from e
        except APIConnectionError as e:
            raise EmbeddingConnectionError(f"Connection failed: {e}") from e
        except (ServiceUnavailableError, InternalServerError) as e:
            raise EmbeddingConnectionError(f"Provider unavailable: {e}") from e
        except (BadRequestError, NotFoundError, ContextWindowExceededError) as e:
            raise EmbeddingTransportError(f"Embedding request rejected: {e}") from e
        except APIError as e:
            raise EmbeddingTransportError(f"Embedding API error: {e}") from e
        except openai.APIError as e:
            # Base of every LiteLLM provider exception
            raise EmbeddingTransportError(f"Embedding provider error: {e}") from e

    def _extract_vectors(self, response: Any, expected: int) -> list[np.ndarray]:
        """Pull vectors out of a LiteLLM embedding response.

        Raises:
            InvalidEmbeddingResponseError: If the response has the wrong number
                of vectors, a non-numeric payload or the wrong dimension.
        """
        data = getattr(response, "data", None)
        if data is None and isinstance(response, dict):
            data = response.get("data")
        if not isinstance(data, list) or len(data) != expected:
            count = len(data) if isinstance(data, list) else 0
            raise InvalidEmbeddingResponseError(
                f"Expected {expected} embeddings in response, got {count}"
            )

        items: list[tuple[int, Any]] = []
        for position, item in enumerate(data):
            if isinstance(item, dict):
                index = item.get("index", position)
                raw = item.get("embedding")
            else:
                index = getattr(item, "index", position)
                raw = getattr(item, "embedding", None)
            items.append((index if index is not None else position, raw))
        items.sort(key=lambda pair: pair[0])

        vectors = []
        for _, raw in items:
            try:
                vector = np.asarray(raw, dtype=np.float32)
            except (TypeError, ValueError) as e:
                raise InvalidEmbeddingResponseError(f"Embedding is not numeric: {e}") from e
            if vector.ndim != 1 or vector.size == 0:
                raise InvalidEmbeddingResponseError(
                    "Embedding must be a non-empty list of numbers"
                )
            if not np.all(np.isfinite(vector)):
                raise InvalidEmbeddingResponseError("Embedding contains non-finite values")
            if self._dimension is not None and vector.shape[0] != self._dimension:
                raise InvalidEmbeddingResponseError(
                    f"Embedding has dimension {vector.shape[0]}, expected {self._dimension}"
                )
            vectors.append(vector)
        return vectors
