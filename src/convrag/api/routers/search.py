"""Search endpoints."""

from fastapi import APIRouter, Depends, Query

from convrag.api.deps import get_engine
from convrag.api.schemas import SearchHit, SearchMode, SearchResponse
from convrag.engine import RAGEngine

router = APIRouter(prefix="/api/search", tags=["search"])


@router.get("", response_model=SearchResponse)
async def search(
    q: str = Query(..., min_length=1, description="Search query"),
    mode: SearchMode = Query("hybrid", description="hybrid, semantic or keyword"),
    source_type: str | None = Query(None, description="Filter by source type"),
    limit: int = Query(10, ge=1, le=100),
    engine: RAGEngine = Depends(get_engine),
) -> SearchResponse:
    """Search indexed content."""
    if mode == "semantic":
        results = await engine.search.semantic_search(q, top_k=limit, source_type=source_type)
    elif mode == "keyword":
        results = await engine.search.keyword_search(q, top_k=limit, source_type=source_type)
    else:
        results = await engine.search.hybrid_search(q, top_k=limit, source_type=source_type)

    return SearchResponse(
        query=q,
        mode=mode,
        results=[SearchHit.from_result(r) for r in results],
        total=len(results),
    )
