"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

# Logging constants defined here (not in constants/) because logging.basicConfig()
# must run before any module imports that might create loggers.
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logging.basicConfig(
    format=LOG_FORMAT,
    datefmt=DATE_FORMAT,
    level=logging.INFO,
)

# Unify uvicorn loggers with app format
for uvicorn_logger_name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
    uvicorn_logger = logging.getLogger(uvicorn_logger_name)
    uvicorn_logger.handlers.clear()
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    uvicorn_logger.addHandler(handler)

from convrag.api.errors import register_exception_handlers  # noqa: E402
from convrag.api.routers import context, conversations, documents, search  # noqa: E402
from convrag.engine import RAGEngine  # noqa: E402

logger = logging.getLogger(__name__)


def create_app(engine: RAGEngine | None = None) -> FastAPI:
    """Create the application.

    Args:
        engine: An already opened engine to serve. When omitted, the lifespan
            opens one from load_settings() on startup and closes it on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Open the engine on startup and close it on shutdown if we own it."""
        owned = app.state.engine is None
        if owned:
            app.state.engine = await RAGEngine.open()
        logger.info("convrag started")

        yield

        if owned:
            await app.state.engine.close()
            app.state.engine = None

    app = FastAPI(
        title="convrag",
        description="Hybrid retrieval over prior conversation content",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.engine = engine

    register_exception_handlers(app)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy"}

    app.include_router(search.router)
    app.include_router(context.router)
    app.include_router(documents.router)
    app.include_router(conversations.router)
    return app


app = create_app()
