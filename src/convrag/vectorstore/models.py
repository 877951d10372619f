"""Record types for the retrieval store."""

from __future__ import annotations

import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

import numpy as np

from convrag.db.codec import decode_metadata, decode_vector


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Generate a new record identifier."""
    return str(uuid.uuid4())


def format_timestamp(value: datetime) -> str:
    """Format a datetime for storage. Naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def parse_timestamp(value: str) -> datetime:
    """Parse a stored timestamp."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Document:
    """A chunk of text indexed for retrieval.

    Attributes:
        source_type: Kind of content the chunk came from (e.g. "conversation").
        source_id: Identifier of the owning source, e.g. a conversation id.
        chunk_text: The text that is searched and returned as context.
        chunk_index: Position of the chunk within its source.
        metadata: Free-form string fields (library_id, conversation_title, ...).
        id: Unique identifier.
        created_at: When the document was first stored.
    """

    source_type: str
    source_id: str
    chunk_text: str
    chunk_index: int = 0
    metadata: dict[str, str] = field(default_factory=dict)
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        if self.chunk_index < 0:
            raise ValueError(f"chunk_index must be >= 0, got {self.chunk_index}")

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Document:
        """Create a document from a rag_documents row."""
        return cls(
            id=row["id"],
            source_type=row["source_type"],
            source_id=row["source_id"],
            chunk_text=row["chunk_text"],
            chunk_index=row["chunk_index"],
            metadata=decode_metadata(row["metadata"]),
            created_at=parse_timestamp(row["created_at"]),
        )


@dataclass
class EmbeddingRecord:
    """A stored embedding vector for one document under one model."""

    id: str
    document_id: str
    vector: np.ndarray
    model: str
    dimension: int
    created_at: datetime

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> EmbeddingRecord:
        """Create a record from a rag_embeddings row."""
        return cls(
            id=row["id"],
            document_id=row["document_id"],
            vector=decode_vector(row["embedding"], row["dimension"]),
            model=row["embedding_model"],
            dimension=row["dimension"],
            created_at=parse_timestamp(row["created_at"]),
        )


@dataclass
class SearchResult:
    """A document scored against a query. Never persisted."""

    document: Document
    relevance_score: float

    @property
    def id(self) -> str:
        return self.document.id
