"""Indexing configuration.

These settings control how chat content becomes searchable documents: how
long messages are split into chunks, and how the background indexer paces
itself against the embedding provider.
"""

# =============================================================================
# Chunking
# =============================================================================
# Messages longer than CHUNK_MAX_TOKENS are split on word boundaries with
# CHUNK_OVERLAP_TOKENS of overlap so that no chunk loses its surrounding
# context entirely.

CHUNK_MAX_TOKENS = 500
CHUNK_OVERLAP_TOKENS = 50

# =============================================================================
# Background Indexing
# =============================================================================
# Fire-and-forget indexing runs on a small pool of workers. Backfill walks
# existing conversations one message at a time with a fixed delay between
# items.

INDEXING_WORKER_COUNT = 2
INDEXING_ITEM_DELAY_SECONDS = 0.1
UNINDEXED_BATCH_LIMIT = 10
BACKFILL_CONVERSATION_LIMIT = 1000
PROGRESS_LOG_INTERVAL = 10
