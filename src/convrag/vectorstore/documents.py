"""SQLite-backed document store with an FTS5 keyword index."""

from __future__ import annotations

import logging
import re
import sqlite3
from typing import Any

from convrag.constants import DEFAULT_LIST_LIMIT, KEYWORD_CANDIDATE_LIMIT
from convrag.db.codec import encode_metadata
from convrag.db.connection import Database, StorageError
from convrag.vectorstore.embeddings import validate_vector, write_embedding
from convrag.vectorstore.models import Document, format_timestamp

logger = logging.getLogger(__name__)

_WORD_RE = re.compile(r"\w+")


def build_fts_query(query: str) -> str | None:
    """Turn free text into a safe FTS5 MATCH expression.

    Each word token is quoted so FTS5 operators and punctuation in user input
    are treated as plain text, and tokens are OR-ed so a chunk only needs to
    share one term with the query.

    Returns:
        The MATCH expression, or None if the query has no word tokens.
    """
    tokens = _WORD_RE.findall(query)
    if not tokens:
        return None
    return " OR ".join(f'"{token}"' for token in tokens)


def write_document(db: Database, document: Document) -> None:
    """Insert or update a document row and its FTS entry.

    Must be called inside an open write transaction. The original created_at
    of an existing document is kept. When the chunk text changes, embeddings
    computed from the old text are dropped.
    """
    existing = db.execute(
        "SELECT chunk_text FROM rag_documents WHERE id = ?", (document.id,)
    ).fetchone()
    if existing is not None and existing["chunk_text"] != document.chunk_text:
        db.execute("DELETE FROM rag_embeddings WHERE document_id = ?", (document.id,))

    db.execute(
        """
        INSERT INTO rag_documents
            (id, source_type, source_id, chunk_text, chunk_index, metadata, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            source_type = excluded.source_type,
            source_id = excluded.source_id,
            chunk_text = excluded.chunk_text,
            chunk_index = excluded.chunk_index,
            metadata = excluded.metadata
        """,
        (
            document.id,
            document.source_type,
            document.source_id,
            document.chunk_text,
            document.chunk_index,
            encode_metadata(document.metadata),
            format_timestamp(document.created_at),
        ),
    )
    # FTS5 has no uniqueness on id, so replace the entry explicitly
    db.execute("DELETE FROM rag_documents_fts WHERE id = ?", (document.id,))
    db.execute(
        "INSERT INTO rag_documents_fts (id, chunk_text) VALUES (?, ?)",
        (document.id, document.chunk_text),
    )


def purge_documents(db: Database, where_sql: str, params: tuple[Any, ...]) -> int:
    """Delete matching documents along with their embeddings and FTS entries.

    Must be called inside an open write transaction.

    Args:
        db: Database connection.
        where_sql: Condition on rag_documents columns.
        params: Parameters for the condition.

    Returns:
        Number of documents deleted.
    """
    selected = f"SELECT id FROM rag_documents WHERE {where_sql}"
    db.execute(f"DELETE FROM rag_embeddings WHERE document_id IN ({selected})", params)
    db.execute(f"DELETE FROM rag_documents_fts WHERE id IN ({selected})", params)
    cursor = db.execute(f"DELETE FROM rag_documents WHERE {where_sql}", params)
    return cursor.rowcount


class DocumentStore:
    """Stores document chunks and keeps the keyword index in step with them."""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def upsert(self, document: Document) -> None:
        """Insert or replace a document by id.

        Raises:
            StorageError: If the write fails. Nothing is changed in that case.
        """
        async with self._db.write_transaction():
            write_document(self._db, document)

    async def upsert_with_embedding(
        self, document: Document, vector: Any, model: str, dimension: int | None = None
    ) -> None:
        """Store a document, its FTS entry and its embedding as one unit.

        Args:
            document: Document to store.
            vector: Embedding of the document's chunk text.
            model: Embedding model that produced the vector.
            dimension: Expected vector length, if known.

        Raises:
            ValueError: If the vector cannot be stored.
            StorageError: If the write fails. Nothing is changed in that case.
        """
        arr = validate_vector(vector, dimension)
        async with self._db.write_transaction():
            write_document(self._db, document)
            write_embedding(self._db, document.id, arr, model)

    async def replace_chunks(
        self,
        id_prefix: str,
        documents: list[Document],
        vectors: list[Any],
        model: str,
        dimension: int | None = None,
    ) -> int:
        """Store the chunks of one unit and drop its older chunks not among them.

        Args:
            id_prefix: Prefix shared by every chunk id of the unit.
            documents: Current chunks, each id starting with id_prefix.
            vectors: One embedding per chunk, in the same order.
            model: Embedding model that produced the vectors.
            dimension: Expected vector length, if known.

        Returns:
            Number of stale chunks removed.

        Raises:
            ValueError: If a vector cannot be stored or the lists differ in length.
            StorageError: If the write fails. Nothing is changed in that case.
        """
        if len(documents) != len(vectors):
            raise ValueError(f"Got {len(vectors)} vectors for {len(documents)} documents")
        arrays = [validate_vector(vector, dimension) for vector in vectors]
        ids = [d.id for d in documents]

        where = "substr(id, 1, ?) = ?"
        params: tuple[Any, ...] = (len(id_prefix), id_prefix)
        if ids:
            where += f" AND id NOT IN ({', '.join('?' for _ in ids)})"
            params += tuple(ids)

        async with self._db.write_transaction():
            for document, arr in zip(documents, arrays):
                write_document(self._db, document)
                write_embedding(self._db, document.id, arr, model)
            purged = purge_documents(self._db, where, params)
        if purged:
            logger.debug(f"Removed {purged} stale chunks under {id_prefix!r}")
        return purged

    async def get(self, document_id: str) -> Document | None:
        """Fetch a document by id."""
        row = self._db.execute(
            "SELECT * FROM rag_documents WHERE id = ?", (document_id,)
        ).fetchone()
        return Document.from_row(row) if row is not None else None

    async def list(
        self,
        source_type: str | None = None,
        source_id: str | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
        offset: int = 0,
    ) -> list[Document]:
        """List documents, newest first.

        Args:
            source_type: Optional source type filter.
            source_id: Optional source id filter.
            limit: Maximum number of documents.
            offset: Number of documents to skip.
        """
        clauses = []
        params: list[Any] = []
        if source_type is not None:
            clauses.append("source_type = ?")
            params.append(source_type)
        if source_id is not None:
            clauses.append("source_id = ?")
            params.append(source_id)

        sql = "SELECT * FROM rag_documents"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        rows = self._db.execute(sql, tuple(params)).fetchall()
        return [Document.from_row(row) for row in rows]

    async def count(self, source_type: str | None = None) -> int:
        """Number of stored documents, optionally for one source type."""
        if source_type is None:
            row = self._db.execute("SELECT COUNT(*) FROM rag_documents").fetchone()
        else:
            row = self._db.execute(
                "SELECT COUNT(*) FROM rag_documents WHERE source_type = ?", (source_type,)
            ).fetchone()
        return int(row[0])

    async def delete(self, document_id: str) -> bool:
        """Delete a document with its embeddings and FTS entry.

        Returns:
            True if a document was deleted, False if it did not exist.
        """
        async with self._db.write_transaction():
            deleted = purge_documents(self._db, "id = ?", (document_id,))
        return deleted > 0

    async def delete_by_source(self, source_type: str, source_id: str) -> int:
        """Delete every document belonging to one source.

        Returns:
            Number of documents deleted.
        """
        async with self._db.write_transaction():
            deleted = purge_documents(
                self._db, "source_type = ? AND source_id = ?", (source_type, source_id)
            )
        if deleted:
            logger.info(f"Deleted {deleted} documents for {source_type} {source_id}")
        return deleted

    async def full_text_search(
        self,
        query: str,
        limit: int = KEYWORD_CANDIDATE_LIMIT,
        source_type: str | None = None,
    ) -> list[Document]:
        """Keyword search over chunk text, best match first.

        Args:
            query: Free text; only its word tokens are used.
            limit: Maximum number of documents.
            source_type: Optional source type filter.

        Returns:
            Matching documents ordered by BM25 rank. Empty if the query has
            no word tokens.

        Raises:
            StorageError: If the FTS query fails.
        """
        match = build_fts_query(query)
        if match is None:
            return []

        sql = """
            SELECT d.*
            FROM rag_documents_fts
            JOIN rag_documents d ON d.id = rag_documents_fts.id
            WHERE rag_documents_fts MATCH ?
        """
        params: list[Any] = [match]
        if source_type is not None:
            sql += " AND d.source_type = ?"
            params.append(source_type)
        sql += " ORDER BY bm25(rag_documents_fts) LIMIT ?"
        params.append(limit)

        try:
            rows = self._db.execute(sql, tuple(params)).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Full-text search failed: {e}") from e
        return [Document.from_row(row) for row in rows]
