"""Wiring of the retrieval components around one database."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from convrag.config import Config, load_settings
from convrag.context.builder import ContextAssembler
from convrag.conversations.store import ConversationStore
from convrag.db.connection import Database
from convrag.db.migrations import run_migrations
from convrag.embeddings.base import EmbeddingGenerator
from convrag.embeddings.client import EmbeddingClient
from convrag.indexing.background import BackgroundIndexer
from convrag.indexing.service import IndexingService
from convrag.search.conversations import ConversationSimilarityEngine
from convrag.search.hybrid import HybridSearchEngine
from convrag.vectorstore.documents import DocumentStore
from convrag.vectorstore.embeddings import EmbeddingStore

logger = logging.getLogger(__name__)


def build_embedding_client(settings: Config) -> EmbeddingClient:
    """Create the LiteLLM embedding client described by settings."""
    return EmbeddingClient(
        provider=settings.embedding_provider,
        model=settings.embedding_model,
        dimension=settings.embedding_dimension,
        api_key=settings.embedding_api_key,
        endpoint=settings.embedding_endpoint,
        timeout=settings.embedding.timeout_seconds,
        max_retries=settings.embedding.max_retries,
        retry_base_delay=settings.embedding.retry_base_delay,
        batch_size=settings.embedding.batch_size,
        batch_delay=settings.embedding.batch_delay_seconds,
    )


@dataclass
class RAGEngine:
    """Handle holding every retrieval component for one database.

    Created with RAGEngine.open() and passed to whoever needs it; there is no
    module-level state.
    """

    settings: Config
    db: Database
    generator: EmbeddingGenerator
    documents: DocumentStore
    embeddings: EmbeddingStore
    conversations: ConversationStore
    search: HybridSearchEngine
    context: ContextAssembler
    similarity: ConversationSimilarityEngine
    indexing: IndexingService
    indexer: BackgroundIndexer

    @classmethod
    async def open(
        cls,
        settings: Config | None = None,
        generator: EmbeddingGenerator | None = None,
        start_indexer: bool = True,
    ) -> RAGEngine:
        """Open the database, apply migrations and wire the components.

        Args:
            settings: Configuration; load_settings() when omitted.
            generator: Embedding generator; a LiteLLM client built from
                settings when omitted.
            start_indexer: Whether to start the background indexing workers.

        Raises:
            MigrationError: If the schema cannot be brought up to date.
        """
        settings = settings or load_settings()
        db = Database(settings.db_path)
        try:
            applied = run_migrations(db)
        except Exception:
            db.close()
            raise
        if applied:
            logger.info(f"Applied migrations: {', '.join(applied)}")

        generator = generator or build_embedding_client(settings)
        documents = DocumentStore(db)
        embeddings = EmbeddingStore(
            db, default_model=generator.model, dimension=generator.dimension
        )
        conversations = ConversationStore(db)
        search = HybridSearchEngine(documents, embeddings, generator, settings.search)
        indexing = IndexingService(
            documents,
            generator,
            settings.indexing,
            batch_size=settings.embedding.batch_size,
            batch_delay=settings.embedding.batch_delay_seconds,
        )
        engine = cls(
            settings=settings,
            db=db,
            generator=generator,
            documents=documents,
            embeddings=embeddings,
            conversations=conversations,
            search=search,
            context=ContextAssembler(search, settings.context),
            similarity=ConversationSimilarityEngine(embeddings, conversations),
            indexing=indexing,
            indexer=BackgroundIndexer(indexing, conversations, settings.indexing),
        )
        if start_indexer:
            engine.indexer.start()
        logger.info(f"RAG engine ready (database: {settings.db_path}, model: {generator.model})")
        return engine

    async def close(self) -> None:
        """Stop background work and close the database."""
        await self.indexer.stop()
        self.db.close()
