"""Background indexing: a worker pool for new content and a paced backfill."""

import asyncio
import logging
from dataclasses import dataclass

from convrag.config import IndexingConfig
from convrag.constants import (
    BACKFILL_CONVERSATION_LIMIT,
    INDEXING_ITEM_DELAY_SECONDS,
    INDEXING_WORKER_COUNT,
    PROGRESS_LOG_INTERVAL,
    UNINDEXED_BATCH_LIMIT,
)
from convrag.conversations.models import Conversation
from convrag.conversations.store import ConversationStore
from convrag.db.connection import StorageError
from convrag.embeddings.base import EmbeddingError
from convrag.indexing.service import IndexingService
from convrag.vectorstore.models import Document

logger = logging.getLogger(__name__)

# Expected per-item failures; anything else is logged with a traceback
ITEM_ERRORS = (EmbeddingError, StorageError, ValueError)

QUEUE_MAX_SIZE = 1000


@dataclass
class IndexingReport:
    """Outcome counts of an indexing run."""

    indexed: int = 0
    failed: int = 0
    skipped: int = 0
    cancelled: bool = False


class BackgroundIndexer:
    """Runs indexing off the caller's path.

    New documents are queued with submit() and embedded by a small pool of
    worker tasks. backfill() walks existing conversations one message at a
    time, pausing between items and checking for cancellation before each.
    """

    def __init__(
        self,
        service: IndexingService,
        conversations: ConversationStore,
        config: IndexingConfig | None = None,
        queue_size: int = QUEUE_MAX_SIZE,
    ) -> None:
        self._service = service
        self._conversations = conversations
        self._worker_count = config.worker_count if config else INDEXING_WORKER_COUNT
        self._item_delay = config.item_delay_seconds if config else INDEXING_ITEM_DELAY_SECONDS
        self._unindexed_limit = (
            config.unindexed_batch_limit if config else UNINDEXED_BATCH_LIMIT
        )
        self._queue: asyncio.Queue[Document] = asyncio.Queue(maxsize=queue_size)
        self._workers: list[asyncio.Task] = []
        self._backfill_task: asyncio.Task | None = None
        self._cancelled = False
        self.report = IndexingReport()
        self.last_backfill: IndexingReport | None = None
        self.last_backfill_error: BaseException | None = None

    @property
    def running(self) -> bool:
        return bool(self._workers)

    @property
    def backfill_running(self) -> bool:
        return self._backfill_task is not None and not self._backfill_task.done()

    @property
    def pending(self) -> int:
        """Documents waiting in the queue."""
        return self._queue.qsize()

    def start(self) -> None:
        """Start the worker tasks. Must be called from a running event loop."""
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(n), name=f"convrag-indexer-{n}")
            for n in range(self._worker_count)
        ]
        logger.info(f"Background indexer started with {self._worker_count} workers")

    async def submit(self, document: Document) -> None:
        """Queue a document for indexing. Waits only if the queue is full."""
        await self._queue.put(document)
        logger.debug(f"Queued document {document.id} (queue size: {self._queue.qsize()})")

    async def join(self) -> None:
        """Wait until every queued document has been processed."""
        await self._queue.join()

    async def _worker(self, n: int) -> None:
        while True:
            document = await self._queue.get()
            try:
                await self._service.index(document)
                self.report.indexed += 1
            except ITEM_ERRORS as e:
                self.report.failed += 1
                logger.warning(f"Worker {n} failed to index document {document.id}: {e}")
            except Exception:
                self.report.failed += 1
                logger.exception(f"Worker {n} hit an unexpected error on document {document.id}")
            finally:
                self._queue.task_done()

    def cancel(self) -> None:
        """Ask a running backfill to stop before its next item."""
        self._cancelled = True

    async def backfill(self, conversations: list[Conversation] | None = None) -> IndexingReport:
        """Index existing conversations message by message.

        Args:
            conversations: Conversations to index; defaults to the most
                recently updated ones in the conversation store.

        Returns:
            Counts of indexed, failed and skipped messages, and whether the
            run was cancelled.
        """
        self._cancelled = False
        if conversations is None:
            conversations = await self._conversations.load_conversations(
                BACKFILL_CONVERSATION_LIMIT
            )

        report = IndexingReport()
        logger.info(f"Starting backfill of {len(conversations)} conversations")

        for conversation in conversations:
            for message in conversation.messages:
                if self._cancelled:
                    report.cancelled = True
                    logger.info(
                        f"Backfill cancelled after {report.indexed} messages "
                        f"({report.failed} failed)"
                    )
                    return report

                try:
                    written = await self._service.index_message(conversation, message)
                except ITEM_ERRORS as e:
                    report.failed += 1
                    logger.warning(f"Failed to index message {message.id}: {e}")
                except Exception:
                    report.failed += 1
                    logger.exception(f"Unexpected error indexing message {message.id}")
                else:
                    if written:
                        report.indexed += 1
                        if report.indexed % PROGRESS_LOG_INTERVAL == 0:
                            logger.info(f"Indexed {report.indexed} messages...")
                    else:
                        report.skipped += 1

                if self._item_delay > 0:
                    await asyncio.sleep(self._item_delay)

        logger.info(
            f"Backfill complete: {report.indexed} messages indexed, {report.failed} failed"
        )
        return report

    async def backfill_unindexed(self) -> IndexingReport:
        """Backfill one batch of conversations that have nothing indexed yet."""
        conversations = await self._conversations.load_unindexed_conversations(
            self._unindexed_limit
        )
        return await self.backfill(conversations)

    def start_backfill(self, unindexed_only: bool = False) -> bool:
        """Launch a backfill as a background task.

        Returns:
            False if a backfill is already running, True otherwise.
        """
        if self.backfill_running:
            return False
        coro = self.backfill_unindexed() if unindexed_only else self.backfill()
        self._backfill_task = asyncio.create_task(coro, name="convrag-backfill")
        self._backfill_task.add_done_callback(self._record_backfill)
        return True

    def _record_backfill(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.last_backfill_error = error
            logger.error("Background backfill failed", exc_info=error)
            return
        self.last_backfill = task.result()
        self.last_backfill_error = None

    async def stop(self) -> None:
        """Cancel the backfill and worker tasks and wait for them to finish."""
        self.cancel()
        tasks = list(self._workers)
        if self._backfill_task is not None:
            tasks.append(self._backfill_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._workers = []
        self._backfill_task = None
        logger.info("Background indexer stopped")
