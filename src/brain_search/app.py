"""FastAPI application factory for brain-search."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from brain_search import __version__
from brain_search.config import BrainSettings, load_settings, validate_settings
from brain_search.errors import BrainSearchError, ErrorKind
from brain_search.logging_config import configure_logging
from brain_search.routes import embeddings, health, search
from brain_search.runtime import Runtime

logger = logging.getLogger(__name__)

# Error kind -> HTTP status
HTTP_STATUS = {
    ErrorKind.VALIDATION: 422,
    ErrorKind.NOTE_NOT_FOUND: 404,
    ErrorKind.SEMANTIC_UNAVAILABLE: 503,
    ErrorKind.EMBEDDING_UNAVAILABLE: 503,
    ErrorKind.EMBEDDING_DIMENSION_MISMATCH: 502,
    ErrorKind.STORE_IO: 500,
}


async def _handle_domain_error(request: Request, exc: BrainSearchError) -> JSONResponse:
    status = HTTP_STATUS.get(exc.kind, 500)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"error": exc.to_dict()})


def create_app(
    runtime: Runtime | None = None,
    settings: BrainSettings | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    A prebuilt ``runtime`` is used as-is. Otherwise the runtime is built on
    startup from ``settings`` (or the merged settings files and BRAIN_*
    environment) and closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if app.state.runtime is not None:
            yield
            return

        resolved = settings or load_settings()
        configure_logging(resolved.log_file, resolved.log_level)
        for problem in validate_settings(resolved):
            logger.warning("Invalid setting: %s", problem)

        owned = await Runtime.create(resolved)
        app.state.runtime = owned
        try:
            yield
        finally:
            app.state.runtime = None
            await owned.aclose()

    app = FastAPI(
        title="brain-search",
        version=__version__,
        description="Semantic and keyword search over a markdown knowledge base",
        lifespan=lifespan,
    )
    app.state.runtime = runtime

    app.add_exception_handler(BrainSearchError, _handle_domain_error)

    # Register route modules
    app.include_router(health.router)
    app.include_router(search.router)
    app.include_router(embeddings.router)

    return app
