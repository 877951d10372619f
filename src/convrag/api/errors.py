"""Exception handlers mapping retrieval errors to HTTP responses."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from convrag.db.connection import StorageError
from convrag.embeddings.base import EmbeddingError, EmptyInputError

logger = logging.getLogger(__name__)


async def empty_input_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": str(exc)},
    )


async def embedding_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Embedding provider failures are upstream failures."""
    logger.warning(f"Embedding failed during {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": f"Embedding provider error: {exc}"},
    )


async def storage_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Storage error during {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": f"Storage error: {exc}"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the retrieval error handlers on an application."""
    app.add_exception_handler(EmptyInputError, empty_input_handler)
    app.add_exception_handler(EmbeddingError, embedding_error_handler)
    app.add_exception_handler(StorageError, storage_error_handler)
