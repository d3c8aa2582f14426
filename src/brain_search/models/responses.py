"""Pydantic response models for the brain-search API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "ok"
    version: str
    embedding_enabled: bool = False
    notes_available: bool = False
    embeddings_indexed: bool = False
    queue_size: int = 0


class IndexNoteResponse(BaseModel):
    """Result of indexing one note."""
    success: bool
    permalink: str
    status: str
    chunks: int = 0


class GenerateEmbeddingsResponse(BaseModel):
    """Result of a project-wide embedding run."""
    success: bool
    total_notes: int = 0
    indexed: int = 0
    skipped: int = 0
    queued: int = 0
    failed: int = 0
    chunks_created: int = 0
    errors: list[str] = Field(default_factory=list)


class DeleteEmbeddingsResponse(BaseModel):
    success: bool
    permalink: str
    removed: bool


class ProcessQueueResponse(BaseModel):
    """Result of draining the embedding queue."""
    success: bool
    processed: int = 0
    failed: int = 0
    remaining: int = 0
