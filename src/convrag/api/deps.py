"""FastAPI dependency injection functions."""

from fastapi import HTTPException, Request, status

from convrag.engine import RAGEngine


def get_engine(request: Request) -> RAGEngine:
    """Get the RAG engine attached to the application.

    Raises:
        HTTPException: 503 if the engine has not been opened yet.
    """
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Retrieval engine is not ready.",
        )
    return engine
