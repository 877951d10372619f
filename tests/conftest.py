"""Shared pytest fixtures for all tests.

These fixtures properly clean up resources to prevent file descriptor leaks.
"""

import gc
import hashlib
import re

import numpy as np
import pytest

from convrag.config import Config
from convrag.context.builder import ContextAssembler
from convrag.conversations.store import ConversationStore
from convrag.db.connection import Database
from convrag.db.migrations import run_migrations
from convrag.embeddings.base import EmbeddingTransportError, ensure_not_empty
from convrag.engine import RAGEngine
from convrag.search.hybrid import HybridSearchEngine
from convrag.vectorstore.documents import DocumentStore
from convrag.vectorstore.embeddings import EmbeddingStore

FAKE_DIMENSION = 512


class FakeEmbedder:
    """Deterministic bag-of-stems embedder.

    Each word is reduced to its first five characters and hashed into one
    bucket, so texts sharing vocabulary get similar vectors. Explicit vectors
    can be pinned for given texts, and the embedder can be switched to fail.
    """

    def __init__(self, dimension: int = FAKE_DIMENSION, model: str = "fake-embedder"):
        self._dimension = dimension
        self._model = model
        self.pinned: dict[str, np.ndarray] = {}
        self.fail = False
        self.calls: list[str] = []

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimension(self) -> int:
        return self._dimension

    def vector_for(self, text: str) -> np.ndarray:
        if text in self.pinned:
            return np.asarray(self.pinned[text], dtype=np.float32)
        vector = np.zeros(self._dimension, dtype=np.float32)
        for token in re.findall(r"\w+", text.lower()):
            digest = hashlib.md5(token[:5].encode()).hexdigest()
            vector[int(digest, 16) % self._dimension] += 1.0
        return vector

    async def generate(self, text: str) -> np.ndarray:
        ensure_not_empty(text)
        if self.fail:
            raise EmbeddingTransportError("embedding provider unreachable")
        self.calls.append(text)
        return self.vector_for(text)

    async def batch_generate(self, texts: list[str]) -> list[np.ndarray]:
        return [await self.generate(text) for text in texts]


@pytest.fixture(autouse=True)
def cleanup_after_test():
    """Clean up resources after each test to prevent file descriptor leaks."""
    yield
    # Force garbage collection to release file handles
    gc.collect()


@pytest.fixture
def temp_db_path(tmp_path):
    """Create a temporary database path (for tests that manage their own connection)."""
    return tmp_path / "test.db"


@pytest.fixture
def temp_db(tmp_path):
    """Create a temporary, fully migrated database that cleans up properly."""
    db = Database(tmp_path / "test.db")
    run_migrations(db)
    yield db
    # Clean up to release file handles
    db.close()
    gc.collect()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def document_store(temp_db):
    return DocumentStore(temp_db)


@pytest.fixture
def embedding_store(temp_db, embedder):
    return EmbeddingStore(temp_db, default_model=embedder.model)


@pytest.fixture
def conversation_store(temp_db):
    return ConversationStore(temp_db)


@pytest.fixture
def search_engine(document_store, embedding_store, embedder):
    return HybridSearchEngine(document_store, embedding_store, embedder)


@pytest.fixture
def assembler(search_engine):
    return ContextAssembler(search_engine)


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a temporary data directory, with no pacing delays."""
    from dataclasses import replace

    from convrag.config import _defaults

    indexing = replace(_defaults("indexing"), item_delay_seconds=0.0)
    embedding = replace(_defaults("embedding"), batch_delay_seconds=0.0)
    return Config(
        data_dir=tmp_path / "data",
        embedding_dimension=FAKE_DIMENSION,
        indexing=indexing,
        embedding=embedding,
    )


@pytest.fixture
async def engine(settings, embedder):
    """An opened engine on a temporary database using the fake embedder."""
    engine = await RAGEngine.open(settings, generator=embedder)
    yield engine
    await engine.close()


@pytest.fixture
def index_document(document_store, embedder):
    """Store a document together with the fake embedding of its text."""

    async def _index(document):
        await document_store.upsert_with_embedding(
            document, embedder.vector_for(document.chunk_text), embedder.model
        )
        return document

    return _index
