"""Pydantic request models for the brain-search API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class IndexNoteRequest(BaseModel):
    """Request to (re)index a single note."""
    permalink: str = Field(..., min_length=1, description="Permalink of the note")
    project: str | None = Field(default=None, description="Project the note belongs to")


class GenerateEmbeddingsRequest(BaseModel):
    """Request to generate embeddings for a whole project."""
    project: str | None = Field(default=None, description="Project to index (default project if unset)")
    force: bool = Field(default=False, description="Re-embed notes that already have embeddings")
    limit: int = Field(default=100, ge=0, description="Maximum notes to process, 0 for all")


class RenameNoteRequest(BaseModel):
    """Request to move a note's embeddings to a new permalink."""
    old_permalink: str = Field(..., min_length=1)
    new_permalink: str = Field(..., min_length=1)
    project: str | None = None


class ProcessQueueRequest(BaseModel):
    """Request to retry notes waiting in the embedding queue."""
    project: str | None = None
