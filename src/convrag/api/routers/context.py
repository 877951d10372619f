"""Prompt context endpoints."""

from fastapi import APIRouter, Depends, HTTPException, status

from convrag.api.deps import get_engine
from convrag.api.schemas import ContextRequest, ContextResponse
from convrag.constants import DEFAULT_CONTEXT_TOP_K
from convrag.engine import RAGEngine
from convrag.indexing.chunking import estimate_tokens

router = APIRouter(prefix="/api/context", tags=["context"])


@router.post("", response_model=ContextResponse)
async def build_context(
    request: ContextRequest,
    engine: RAGEngine = Depends(get_engine),
) -> ContextResponse:
    """Assemble prompt context for a query."""
    assembler = engine.context

    if request.kind == "multi_turn":
        if not request.recent_queries:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="recent_queries is required for multi_turn context",
            )
        context = await assembler.build_multi_turn_context(request.recent_queries, request.scope)
    elif not request.query.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="query is required")
    elif request.kind == "conversation":
        if not request.source_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="source_id is required for conversation context",
            )
        context = await assembler.build_conversation_context(
            request.source_id, request.query, request.top_k
        )
    elif request.kind == "code":
        context = await assembler.build_code_context(request.query, request.language)
    elif request.best_effort:
        context = await assembler.try_build_context(
            request.query, request.scope, request.top_k or DEFAULT_CONTEXT_TOP_K
        )
    else:
        context = await assembler.build_context(
            request.query, request.scope, request.top_k or DEFAULT_CONTEXT_TOP_K
        )

    return ContextResponse(context=context, estimated_tokens=estimate_tokens(context))
