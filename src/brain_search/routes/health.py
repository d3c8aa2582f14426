"""Health check endpoint."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends

from brain_search import __version__
from brain_search.models.responses import HealthResponse
from brain_search.routes.deps import get_runtime
from brain_search.runtime import Runtime

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(runtime: Runtime = Depends(get_runtime)) -> HealthResponse:
    """Report which services were available at startup and the index state."""
    availability = runtime.availability
    indexed = await asyncio.to_thread(runtime.store.has_any)
    queue_size = await asyncio.to_thread(runtime.queue.size)
    healthy = availability.embedding_enabled and availability.notes_available
    return HealthResponse(
        status="ok" if healthy else "degraded",
        version=__version__,
        embedding_enabled=availability.embedding_enabled,
        notes_available=availability.notes_available,
        embeddings_indexed=indexed,
        queue_size=queue_size,
    )
