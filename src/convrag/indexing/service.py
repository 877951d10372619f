"""Indexing service for chat content into the document and embedding stores."""

import logging

from convrag.config import IndexingConfig
from convrag.constants import (
    CHUNK_MAX_TOKENS,
    CHUNK_OVERLAP_TOKENS,
    CONVERSATION_SOURCE_TYPE,
    EMBEDDING_BATCH_DELAY_SECONDS,
    EMBEDDING_BATCH_SIZE,
    SCOPE_METADATA_KEY,
)
from convrag.conversations.models import Conversation, Message
from convrag.embeddings.base import EmbeddingGenerator, batch_generate_chunked
from convrag.indexing.chunking import chunk_text
from convrag.vectorstore.documents import DocumentStore
from convrag.vectorstore.models import Document, format_timestamp

logger = logging.getLogger(__name__)


def message_document_prefix(conversation_id: str, message_id: str) -> str:
    return f"{conversation_id}:{message_id}:"


def message_document_id(conversation_id: str, message_id: str, chunk_index: int) -> str:
    """Stable document id for one chunk of one message.

    Re-indexing a message overwrites its documents instead of duplicating them.
    """
    return f"{message_document_prefix(conversation_id, message_id)}{chunk_index}"


def message_metadata(conversation: Conversation, message: Message) -> dict[str, str]:
    """Metadata stored with each chunk of a message."""
    metadata = {
        "conversation_title": conversation.title,
        "message_id": message.id,
        "role": "user" if message.is_user else "assistant",
        "timestamp": format_timestamp(message.timestamp),
    }
    library_id = message.library_id or conversation.library_id
    if library_id:
        metadata[SCOPE_METADATA_KEY] = library_id
    return metadata


class IndexingService:
    """Turns documents and chat messages into searchable, embedded documents.

    Every document is written together with its embedding, so search never
    sees a document whose vector is still being generated.
    """

    def __init__(
        self,
        documents: DocumentStore,
        generator: EmbeddingGenerator,
        config: IndexingConfig | None = None,
        batch_size: int = EMBEDDING_BATCH_SIZE,
        batch_delay: float = EMBEDDING_BATCH_DELAY_SECONDS,
    ) -> None:
        """Initialize indexing service.

        Args:
            documents: Store that receives documents and embeddings.
            generator: Embedding generator for chunk text.
            config: Chunk sizes; module defaults when omitted.
            batch_size: Maximum chunks embedded per provider call.
            batch_delay: Pause between provider calls for one message.
        """
        self._documents = documents
        self._generator = generator
        self._max_tokens = config.chunk_max_tokens if config else CHUNK_MAX_TOKENS
        self._overlap_tokens = config.chunk_overlap_tokens if config else CHUNK_OVERLAP_TOKENS
        self._batch_size = batch_size
        self._batch_delay = batch_delay

    async def index(self, document: Document) -> Document:
        """Embed a document and store both as one unit.

        Raises:
            EmbeddingError: If the text cannot be embedded.
            StorageError: If the write fails.
        """
        vector = await self._generator.generate(document.chunk_text)
        await self._documents.upsert_with_embedding(
            document, vector, self._generator.model, dimension=self._generator.dimension
        )
        return document

    async def index_message(self, conversation: Conversation, message: Message) -> int:
        """Chunk, embed and store one message of a conversation.

        Chunks left over from an earlier, longer version of the message are
        removed in the same write.

        Returns:
            Number of documents written; 0 for a blank message.

        Raises:
            EmbeddingError: If any chunk cannot be embedded. Nothing is written.
            StorageError: If a write fails.
        """
        prefix = message_document_prefix(conversation.id, message.id)
        chunks = chunk_text(message.content, self._max_tokens, self._overlap_tokens)
        if not chunks:
            await self._documents.replace_chunks(prefix, [], [], self._generator.model)
            return 0

        metadata = message_metadata(conversation, message)
        documents = [
            Document(
                id=message_document_id(conversation.id, message.id, index),
                source_type=CONVERSATION_SOURCE_TYPE,
                source_id=conversation.id,
                chunk_text=chunk,
                chunk_index=index,
                metadata=dict(metadata),
                created_at=message.timestamp,
            )
            for index, chunk in enumerate(chunks)
        ]

        vectors = await batch_generate_chunked(
            self._generator,
            [d.chunk_text for d in documents],
            batch_size=self._batch_size,
            delay=self._batch_delay,
        )
        await self._documents.replace_chunks(
            prefix, documents, vectors, self._generator.model, dimension=self._generator.dimension
        )
        return len(documents)

    async def index_conversation(self, conversation: Conversation) -> int:
        """Index every message of a conversation.

        Returns:
            Number of documents written.
        """
        total = 0
        for message in conversation.messages:
            total += await self.index_message(conversation, message)
        logger.info(f"Indexed conversation {conversation.id}: {total} documents")
        return total
