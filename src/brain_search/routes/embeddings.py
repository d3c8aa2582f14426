"""Embedding maintenance endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from brain_search.models.requests import (
    GenerateEmbeddingsRequest,
    IndexNoteRequest,
    ProcessQueueRequest,
    RenameNoteRequest,
)
from brain_search.models.responses import (
    DeleteEmbeddingsResponse,
    GenerateEmbeddingsResponse,
    IndexNoteResponse,
    ProcessQueueResponse,
)
from brain_search.routes.deps import get_runtime
from brain_search.runtime import Runtime

router = APIRouter(prefix="/embeddings")


@router.post("/index", response_model=IndexNoteResponse)
async def index_note_endpoint(
    req: IndexNoteRequest,
    runtime: Runtime = Depends(get_runtime),
) -> IndexNoteResponse:
    """Index one note, or queue it if the embedding server is down."""
    outcome = await runtime.indexer.index_or_enqueue(req.permalink, req.project)
    return IndexNoteResponse(
        success=True,
        permalink=outcome.permalink,
        status=outcome.status,
        chunks=outcome.chunks,
    )


@router.post("/generate", response_model=GenerateEmbeddingsResponse)
async def generate_embeddings_endpoint(
    req: GenerateEmbeddingsRequest,
    runtime: Runtime = Depends(get_runtime),
) -> GenerateEmbeddingsResponse:
    """Generate embeddings for the notes of a project."""
    stats = await runtime.indexer.index_project(req.project, force=req.force, limit=req.limit)
    return GenerateEmbeddingsResponse(success=stats.failed == 0, **stats.to_dict())


@router.post("/rename", response_model=IndexNoteResponse)
async def rename_note_endpoint(
    req: RenameNoteRequest,
    runtime: Runtime = Depends(get_runtime),
) -> IndexNoteResponse:
    outcome = await runtime.indexer.rename_note(req.old_permalink, req.new_permalink, req.project)
    return IndexNoteResponse(
        success=True,
        permalink=outcome.permalink,
        status=outcome.status,
        chunks=outcome.chunks,
    )


@router.post("/queue/process", response_model=ProcessQueueResponse)
async def process_queue_endpoint(
    req: ProcessQueueRequest,
    runtime: Runtime = Depends(get_runtime),
) -> ProcessQueueResponse:
    """Retry notes waiting in the embedding queue."""
    stats = await runtime.indexer.process_queue(req.project)
    return ProcessQueueResponse(success=True, **stats.to_dict())


@router.delete("/{permalink:path}", response_model=DeleteEmbeddingsResponse)
async def delete_embeddings_endpoint(
    permalink: str,
    runtime: Runtime = Depends(get_runtime),
) -> DeleteEmbeddingsResponse:
    """Drop every chunk of a note."""
    removed = await runtime.indexer.remove_note(permalink)
    return DeleteEmbeddingsResponse(success=True, permalink=permalink, removed=removed)
