"""Conversation endpoints."""

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query, status

from convrag.api.deps import get_engine
from convrag.api.schemas import (
    BackfillProgress,
    BackfillReport,
    BackfillRequest,
    BackfillStatus,
    ConversationSummary,
    SimilarConversations,
)
from convrag.constants import DEFAULT_SIMILAR_CONVERSATIONS
from convrag.engine import RAGEngine

router = APIRouter(prefix="/api/conversations", tags=["conversations"])


@router.get("/{conversation_id}/similar", response_model=SimilarConversations)
async def similar_conversations(
    conversation_id: str,
    limit: int = Query(DEFAULT_SIMILAR_CONVERSATIONS, ge=1, le=50),
    engine: RAGEngine = Depends(get_engine),
) -> SimilarConversations:
    """Find conversations whose content resembles this one."""
    conversations = await engine.similarity.find_similar(conversation_id, top_k=limit)
    return SimilarConversations(
        conversation_id=conversation_id,
        results=[ConversationSummary.from_conversation(c) for c in conversations],
    )


@router.delete("/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_conversation(
    conversation_id: str,
    engine: RAGEngine = Depends(get_engine),
) -> None:
    """Delete a conversation and everything indexed from it."""
    if not await engine.conversations.delete_conversation(conversation_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found"
        )


@router.post("/backfill", response_model=BackfillStatus, status_code=status.HTTP_202_ACCEPTED)
async def start_backfill(
    request: BackfillRequest,
    engine: RAGEngine = Depends(get_engine),
) -> BackfillStatus:
    """Index existing conversations in the background."""
    if not engine.indexer.start_backfill(unindexed_only=request.unindexed_only):
        return BackfillStatus(started=False, message="Backfill already running")
    return BackfillStatus(started=True, message="Backfill started")


@router.get("/backfill", response_model=BackfillProgress)
async def backfill_status(engine: RAGEngine = Depends(get_engine)) -> BackfillProgress:
    """Report whether a backfill is running and the outcome of the last one."""
    indexer = engine.indexer
    report = indexer.last_backfill
    error = indexer.last_backfill_error
    return BackfillProgress(
        running=indexer.backfill_running,
        last_report=BackfillReport(**asdict(report)) if report is not None else None,
        last_error=str(error) if error is not None else None,
    )
