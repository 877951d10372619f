"""SQLite-backed storage for document embeddings."""

from __future__ import annotations

from typing import Any

import numpy as np

from convrag.constants import CONVERSATION_SOURCE_TYPE
from convrag.db.codec import decode_vector, encode_vector
from convrag.db.connection import Database, StorageError
from convrag.vectorstore.models import (
    Document,
    EmbeddingRecord,
    format_timestamp,
    new_id,
    utc_now,
)


def validate_vector(vector: Any, dimension: int | None = None) -> np.ndarray:
    """Coerce a vector to float32 and check it can be stored.

    Args:
        vector: Sequence of numbers or a 1-D array.
        dimension: Expected length, if known.

    Returns:
        1-D float32 array.

    Raises:
        ValueError: If the vector is empty, not 1-D, contains non-finite
            values or has the wrong length.
    """
    arr = np.asarray(vector, dtype=np.float32)
    if arr.ndim != 1:
        raise ValueError(f"Embedding must be one-dimensional, got shape {arr.shape}")
    if arr.size == 0:
        raise ValueError("Embedding must not be empty")
    if not np.all(np.isfinite(arr)):
        raise ValueError("Embedding contains non-finite values")
    if dimension is not None and arr.shape[0] != dimension:
        raise ValueError(f"Embedding has dimension {arr.shape[0]}, expected {dimension}")
    return arr


def write_embedding(db: Database, document_id: str, vector: np.ndarray, model: str) -> None:
    """Insert or overwrite the embedding for (document_id, model).

    Must be called inside an open write transaction.

    Raises:
        StorageError: If the document does not exist.
    """
    exists = db.execute("SELECT 1 FROM rag_documents WHERE id = ?", (document_id,)).fetchone()
    if exists is None:
        raise StorageError(f"Cannot store embedding for unknown document {document_id!r}")

    db.execute(
        """
        INSERT INTO rag_embeddings
            (id, document_id, embedding, embedding_model, dimension, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(document_id, embedding_model) DO UPDATE SET
            embedding = excluded.embedding,
            dimension = excluded.dimension,
            created_at = excluded.created_at
        """,
        (
            new_id(),
            document_id,
            encode_vector(vector),
            model,
            int(vector.shape[0]),
            format_timestamp(utc_now()),
        ),
    )


class EmbeddingStore:
    """Stores one vector per (document, model) pair.

    Bulk reads are restricted to a single model so vectors from different
    embedding spaces are never compared with each other.
    """

    def __init__(self, db: Database, default_model: str, dimension: int | None = None) -> None:
        """Initialize the store.

        Args:
            db: Database holding the rag_* tables.
            default_model: Model used when a call does not name one.
            dimension: Expected vector length; enforced on save when set.
        """
        self._db = db
        self.default_model = default_model
        self.dimension = dimension

    async def save(self, document_id: str, vector: Any, model: str | None = None) -> None:
        """Store a vector for a document, replacing any previous one for the model.

        Raises:
            ValueError: If the vector is empty, non-finite or the wrong length.
            StorageError: If the document does not exist or the write fails.
        """
        arr = validate_vector(vector, self.dimension)
        async with self._db.write_transaction():
            write_embedding(self._db, document_id, arr, model or self.default_model)

    async def load_record(
        self, document_id: str, model: str | None = None
    ) -> EmbeddingRecord | None:
        """Load the stored embedding record for a document.

        With no model given, the default model's vector is preferred, falling
        back to the most recently written one.
        """
        if model is not None:
            row = self._db.execute(
                "SELECT * FROM rag_embeddings WHERE document_id = ? AND embedding_model = ?",
                (document_id, model),
            ).fetchone()
        else:
            row = self._db.execute(
                """
                SELECT * FROM rag_embeddings
                WHERE document_id = ?
                ORDER BY (embedding_model = ?) DESC, created_at DESC, rowid DESC
                LIMIT 1
                """,
                (document_id, self.default_model),
            ).fetchone()
        if row is None:
            return None
        return EmbeddingRecord.from_row(row)

    async def load(self, document_id: str, model: str | None = None) -> np.ndarray | None:
        """Load a document's vector, or None if it has none."""
        record = await self.load_record(document_id, model)
        return record.vector if record is not None else None

    async def load_all(
        self, source_type: str | None = None, model: str | None = None
    ) -> list[tuple[Document, np.ndarray]]:
        """Load every (document, vector) pair for one model.

        Args:
            source_type: Optional filter on the document's source type.
            model: Embedding model; defaults to the store's default model.

        Returns:
            Pairs ordered newest document first.
        """
        sql = """
            SELECT d.*, e.embedding, e.dimension
            FROM rag_embeddings e
            JOIN rag_documents d ON d.id = e.document_id
            WHERE e.embedding_model = ?
        """
        params: list[Any] = [model or self.default_model]
        if source_type is not None:
            sql += " AND d.source_type = ?"
            params.append(source_type)
        sql += " ORDER BY d.created_at DESC, d.rowid DESC"

        rows = self._db.execute(sql, tuple(params)).fetchall()
        return [
            (Document.from_row(row), decode_vector(row["embedding"], row["dimension"]))
            for row in rows
        ]

    async def load_for_source(
        self,
        source_id: str,
        source_type: str = CONVERSATION_SOURCE_TYPE,
        model: str | None = None,
    ) -> list[np.ndarray]:
        """Load all vectors belonging to one source, in chunk order."""
        rows = self._db.execute(
            """
            SELECT e.embedding, e.dimension
            FROM rag_embeddings e
            JOIN rag_documents d ON d.id = e.document_id
            WHERE d.source_type = ? AND d.source_id = ? AND e.embedding_model = ?
            ORDER BY d.chunk_index, d.rowid
            """,
            (source_type, source_id, model or self.default_model),
        ).fetchall()
        return [decode_vector(row["embedding"], row["dimension"]) for row in rows]

    async def count(self, model: str | None = None) -> int:
        """Number of stored embeddings, optionally for one model."""
        if model is None:
            row = self._db.execute("SELECT COUNT(*) FROM rag_embeddings").fetchone()
        else:
            row = self._db.execute(
                "SELECT COUNT(*) FROM rag_embeddings WHERE embedding_model = ?", (model,)
            ).fetchone()
        return int(row[0])
