"""Indexing of chat content for retrieval."""

from convrag.indexing.background import BackgroundIndexer, IndexingReport
from convrag.indexing.chunking import chunk_text, estimate_tokens
from convrag.indexing.service import IndexingService

__all__ = [
    "BackgroundIndexer",
    "IndexingReport",
    "IndexingService",
    "chunk_text",
    "estimate_tokens",
]
