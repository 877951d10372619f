"""Embedding generation configuration.

Embeddings are produced by an external provider through LiteLLM. Every stored
vector records the model that produced it, since vectors from different
models are not comparable.
"""

# =============================================================================
# Model
# =============================================================================
# The default model is a retrieval-tuned BERT served by Together AI with
# 768-dimensional output. Any LiteLLM embedding model can be configured.

DEFAULT_EMBEDDING_PROVIDER = "together_ai"
DEFAULT_EMBEDDING_MODEL = "togethercomputer/m2-bert-80M-8k-retrieval"
DEFAULT_EMBEDDING_DIMENSION = 768

# =============================================================================
# Batching and Rate Limits
# =============================================================================
# Large batches are split into calls of at most EMBEDDING_BATCH_SIZE texts with
# a short pause between calls to stay under provider rate limits.

EMBEDDING_BATCH_SIZE = 20
EMBEDDING_BATCH_DELAY_SECONDS = 0.1

# =============================================================================
# Timeouts and Retries
# =============================================================================
# Each provider call is bounded by EMBEDDING_TIMEOUT_SECONDS. Connection
# failures, timeouts and rate limits are retried up to EMBEDDING_MAX_RETRIES
# times with exponential backoff starting at EMBEDDING_RETRY_BASE_DELAY.
# Authentication failures and malformed responses are never retried.

EMBEDDING_TIMEOUT_SECONDS = 30.0
EMBEDDING_MAX_RETRIES = 3
EMBEDDING_RETRY_BASE_DELAY = 0.5
