"""Document and embedding storage for retrieval."""

from convrag.vectorstore.documents import DocumentStore
from convrag.vectorstore.embeddings import EmbeddingStore
from convrag.vectorstore.models import Document, EmbeddingRecord, SearchResult

__all__ = ["Document", "DocumentStore", "EmbeddingRecord", "EmbeddingStore", "SearchResult"]
