"""Tests for indexing chat content into the document and embedding stores."""

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from convrag.config import _defaults
from convrag.conversations.models import Conversation, Message
from convrag.embeddings.base import EmbeddingTransportError
from convrag.indexing.background import BackgroundIndexer, IndexingReport
from convrag.indexing.service import IndexingService, message_document_id
from convrag.vectorstore.models import Document

BASE = datetime(2024, 6, 1, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def indexing_config():
    return replace(_defaults("indexing"), item_delay_seconds=0.0)


@pytest.fixture
def service(document_store, embedder):
    return IndexingService(document_store, embedder, batch_delay=0.0)


@pytest.fixture
async def indexer(service, conversation_store, indexing_config):
    indexer = BackgroundIndexer(service, conversation_store, indexing_config)
    yield indexer
    await indexer.stop()


def make_conversation(conversation_id: str, *contents: str, **kwargs) -> Conversation:
    messages = [
        Message(
            content=content,
            is_user=i % 2 == 0,
            id=f"{conversation_id}-m{i}",
            timestamp=BASE + timedelta(minutes=i),
        )
        for i, content in enumerate(contents)
    ]
    return Conversation(
        title=f"Chat {conversation_id}", id=conversation_id, messages=messages, **kwargs
    )


async def wait_for_backfill(indexer):
    while indexer.backfill_running:
        await asyncio.sleep(0.01)
    # Let the completion callback run
    await asyncio.sleep(0)


def fail_on(embedder, monkeypatch, marker: str, error: type[Exception] = EmbeddingTransportError):
    """Make the embedder fail for any text containing marker."""
    original = embedder.generate

    async def generate(text):
        if marker in text:
            raise error(f"cannot embed {marker}")
        return await original(text)

    monkeypatch.setattr(embedder, "generate", generate)


class TestIndexingService:
    async def test_index_message_writes_document_and_embedding(
        self, service, document_store, embedding_store
    ):
        conversation = make_conversation("c1", "How do I add shadows?", library_id="threejs")

        written = await service.index_message(conversation, conversation.messages[0])

        assert written == 1
        document = await document_store.get(message_document_id("c1", "c1-m0", 0))
        assert document.source_type == "conversation"
        assert document.source_id == "c1"
        assert document.chunk_text == "How do I add shadows?"
        assert document.created_at == BASE
        assert document.metadata == {
            "conversation_title": "Chat c1",
            "message_id": "c1-m0",
            "role": "user",
            "timestamp": BASE.isoformat(),
            "library_id": "threejs",
        }
        assert await embedding_store.load(document.id) is not None

    async def test_message_library_overrides_conversation(self, service, document_store):
        conversation = make_conversation("c1", "answer", library_id="threejs")
        message = conversation.messages[0]
        message.library_id = "babylon"

        await service.index_message(conversation, message)

        document = await document_store.get(message_document_id("c1", "c1-m0", 0))
        assert document.metadata["library_id"] == "babylon"

    async def test_no_library_means_no_scope_field(self, service, document_store):
        conversation = make_conversation("c1", "hello")

        await service.index_message(conversation, conversation.messages[0])

        document = await document_store.get(message_document_id("c1", "c1-m0", 0))
        assert "library_id" not in document.metadata

    async def test_long_message_is_chunked(self, document_store, embedding_store, embedder):
        config = replace(_defaults("indexing"), chunk_max_tokens=50, chunk_overlap_tokens=5)
        service = IndexingService(document_store, embedder, config, batch_size=2, batch_delay=0)
        conversation = make_conversation("c1", " ".join(f"token{i}" for i in range(200)))

        written = await service.index_message(conversation, conversation.messages[0])

        documents = await document_store.list(source_id="c1")
        assert written == len(documents) > 1
        assert sorted(d.chunk_index for d in documents) == list(range(written))
        assert await embedding_store.count() == written

    async def test_reindexing_overwrites_instead_of_duplicating(self, service, document_store):
        conversation = make_conversation("c1", "first version")
        await service.index_message(conversation, conversation.messages[0])

        conversation.messages[0].content = "second version"
        await service.index_message(conversation, conversation.messages[0])

        documents = await document_store.list()
        assert [d.chunk_text for d in documents] == ["second version"]

    async def test_shorter_edit_removes_leftover_chunks(
        self, document_store, embedding_store, embedder
    ):
        config = replace(_defaults("indexing"), chunk_max_tokens=50, chunk_overlap_tokens=5)
        service = IndexingService(document_store, embedder, config, batch_delay=0)
        conversation = make_conversation("c1", " ".join(f"word{i}" for i in range(200)))
        await service.index_message(conversation, conversation.messages[0])
        assert await document_store.count() > 1

        conversation.messages[0].content = "short edited reply"
        written = await service.index_message(conversation, conversation.messages[0])

        documents = await document_store.list(source_id="c1")
        assert written == 1
        assert [d.chunk_text for d in documents] == ["short edited reply"]
        assert await embedding_store.count() == 1

    async def test_blank_edit_removes_message_chunks(self, service, document_store):
        conversation = make_conversation("c1", "keep this", "drop this")
        await service.index_conversation(conversation)

        conversation.messages[1].content = "  "
        await service.index_message(conversation, conversation.messages[1])

        assert [d.chunk_text for d in await document_store.list()] == ["keep this"]

    async def test_other_messages_keep_their_chunks(self, service, document_store):
        first = make_conversation("c1", "alpha text", "beta text")
        second = make_conversation("c2", "gamma text")
        await service.index_conversation(first)
        await service.index_conversation(second)

        first.messages[0].content = "alpha edited"
        await service.index_message(first, first.messages[0])

        texts = sorted(d.chunk_text for d in await document_store.list())
        assert texts == ["alpha edited", "beta text", "gamma text"]

    async def test_blank_message_writes_nothing(self, service, document_store):
        conversation = make_conversation("c1", "   ")

        assert await service.index_message(conversation, conversation.messages[0]) == 0
        assert await document_store.count() == 0

    async def test_embedding_failure_writes_nothing(
        self, document_store, embedder, monkeypatch
    ):
        config = replace(_defaults("indexing"), chunk_max_tokens=50, chunk_overlap_tokens=0)
        service = IndexingService(document_store, embedder, config, batch_delay=0)
        text = " ".join(f"word{i}" for i in range(100)) + " boom"
        conversation = make_conversation("c1", text)
        fail_on(embedder, monkeypatch, "boom")

        with pytest.raises(EmbeddingTransportError):
            await service.index_message(conversation, conversation.messages[0])

        assert await document_store.count() == 0

    async def test_index_conversation_counts_documents(self, service, document_store):
        conversation = make_conversation("c1", "question", "answer", "follow up")

        assert await service.index_conversation(conversation) == 3
        assert await document_store.count() == 3

    async def test_index_document(self, service, document_store, embedding_store):
        document = Document(source_type="note", source_id="n1", chunk_text="use PBR materials")

        await service.index(document)

        assert (await document_store.get(document.id)).chunk_text == "use PBR materials"
        assert await embedding_store.load(document.id) is not None

    async def test_index_document_checks_dimension(self, document_store, embedder):
        embedder.pinned["odd"] = [1.0, 2.0]
        service = IndexingService(document_store, embedder)

        with pytest.raises(ValueError):
            await service.index(Document(source_type="note", source_id="n", chunk_text="odd"))

        assert await document_store.count() == 0


class TestBackgroundIndexer:
    async def test_submitted_documents_are_indexed(self, indexer, document_store):
        indexer.start()
        documents = [
            Document(source_type="note", source_id="n", chunk_text=f"note {i}") for i in range(5)
        ]

        for document in documents:
            await indexer.submit(document)
        await indexer.join()

        assert await document_store.count() == 5
        assert indexer.report.indexed == 5
        assert indexer.pending == 0

    async def test_worker_survives_failures(self, indexer, document_store, embedder, monkeypatch):
        fail_on(embedder, monkeypatch, "boom")
        indexer.start()

        await indexer.submit(Document(source_type="note", source_id="n", chunk_text="boom"))
        await indexer.submit(Document(source_type="note", source_id="n", chunk_text="fine"))
        await indexer.join()

        assert indexer.report.failed == 1
        assert indexer.report.indexed == 1
        assert await document_store.count() == 1

    async def test_start_is_idempotent(self, indexer, indexing_config):
        indexer.start()
        indexer.start()

        assert indexer.running
        assert len(indexer._workers) == indexing_config.worker_count

    async def test_stop_cancels_workers(self, indexer):
        indexer.start()

        await indexer.stop()

        assert not indexer.running

    async def test_backfill_indexes_stored_conversations(
        self, indexer, conversation_store, document_store
    ):
        await conversation_store.save_conversation(make_conversation("c1", "a", "b"))
        await conversation_store.save_conversation(make_conversation("c2", "c", "  "))

        report = await indexer.backfill()

        assert report.indexed == 3
        assert report.skipped == 1
        assert report.failed == 0
        assert not report.cancelled
        assert await document_store.count() == 3

    async def test_backfill_skips_failing_messages(
        self, indexer, document_store, embedder, monkeypatch
    ):
        fail_on(embedder, monkeypatch, "boom")
        conversation = make_conversation("c1", "before", "boom", "after")

        report = await indexer.backfill([conversation])

        assert report.indexed == 2
        assert report.failed == 1
        texts = sorted(d.chunk_text for d in await document_store.list())
        assert texts == ["after", "before"]

    async def test_backfill_can_be_cancelled(self, indexer, embedder, monkeypatch):
        original = embedder.generate

        async def generate(text):
            indexer.cancel()
            return await original(text)

        monkeypatch.setattr(embedder, "generate", generate)
        conversation = make_conversation("c1", "one", "two", "three")

        report = await indexer.backfill([conversation])

        assert report.cancelled
        assert report.indexed == 1

    async def test_backfill_resets_cancel_flag(self, indexer):
        indexer.cancel()

        report = await indexer.backfill([make_conversation("c1", "one")])

        assert not report.cancelled
        assert report.indexed == 1

    async def test_backfill_unindexed_only_touches_new_conversations(
        self, indexer, service, conversation_store, document_store
    ):
        done = make_conversation("done", "already indexed")
        await conversation_store.save_conversation(done)
        await service.index_conversation(done)
        await conversation_store.save_conversation(make_conversation("new", "fresh content"))

        report = await indexer.backfill_unindexed()

        assert report.indexed == 1
        assert [d.source_id for d in await document_store.list(source_id="new")] == ["new"]
        assert await document_store.count() == 2

    async def test_start_backfill_runs_once_at_a_time(
        self, indexer, conversation_store, document_store
    ):
        await conversation_store.save_conversation(make_conversation("c1", "alpha", "beta"))

        assert indexer.start_backfill() is True
        assert indexer.start_backfill() is False

        while indexer.backfill_running:
            await asyncio.sleep(0.01)
        assert await document_store.count() == 2
        assert indexer.start_backfill(unindexed_only=True) is True

    async def test_workers_survive_unexpected_errors(
        self, indexer, document_store, embedder, monkeypatch, indexing_config
    ):
        fail_on(embedder, monkeypatch, "bad", error=RuntimeError)
        indexer.start()

        for i in range(indexing_config.worker_count + 1):
            await indexer.submit(Document(source_type="note", source_id="n", chunk_text=f"bad {i}"))
        await indexer.submit(Document(source_type="note", source_id="n", chunk_text="good text"))
        await asyncio.wait_for(indexer.join(), timeout=2)

        assert indexer.report.failed == indexing_config.worker_count + 1
        assert indexer.report.indexed == 1
        assert all(not worker.done() for worker in indexer._workers)
        assert [d.chunk_text for d in await document_store.list()] == ["good text"]

    async def test_backfill_continues_after_unexpected_error(
        self, indexer, document_store, embedder, monkeypatch
    ):
        fail_on(embedder, monkeypatch, "bad", error=RuntimeError)

        report = await indexer.backfill([make_conversation("c1", "bad", "good")])

        assert report.indexed == 1
        assert report.failed == 1
        assert [d.chunk_text for d in await document_store.list()] == ["good"]

    async def test_background_backfill_keeps_its_report(self, indexer, conversation_store):
        await conversation_store.save_conversation(make_conversation("c1", "alpha", "  "))

        indexer.start_backfill()
        await wait_for_backfill(indexer)

        assert indexer.last_backfill == IndexingReport(indexed=1, skipped=1)
        assert indexer.last_backfill_error is None

    async def test_background_backfill_keeps_its_error(
        self, indexer, conversation_store, monkeypatch
    ):
        monkeypatch.setattr(
            conversation_store,
            "load_conversations",
            AsyncMock(side_effect=RuntimeError("conversation source offline")),
        )

        indexer.start_backfill()
        await wait_for_backfill(indexer)

        assert indexer.last_backfill is None
        assert str(indexer.last_backfill_error) == "conversation source offline"
