"""Startup probes for the note store and the embedding server."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from brain_search.embedding.client import EmbeddingClient, TaskType
from brain_search.errors import BrainSearchError, EmbeddingDimensionError
from brain_search.notes.store import NoteStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Availability:
    """Which backing services answered at startup."""
    embedding_enabled: bool = False
    notes_available: bool = False

    def to_dict(self) -> dict[str, bool]:
        return {
            "embedding_enabled": self.embedding_enabled,
            "notes_available": self.notes_available,
        }


async def probe_notes(note_store: NoteStore, project: str | None = None) -> bool:
    """True when the note store can list the project."""
    try:
        await note_store.list_directory(project, "*.md", 1)
    except (BrainSearchError, OSError) as e:
        logger.warning("Note store unavailable: %s", e)
        return False
    return True


async def probe_embeddings(client: EmbeddingClient) -> bool:
    """True when the embedding server returns a vector of the right size."""
    try:
        await client.embed("healthcheck", TaskType.SEARCH_DOCUMENT)
    except EmbeddingDimensionError as e:
        logger.warning(
            "Embedding model returned %s dimensions, expected %s. "
            "Pull the right model with: ollama pull nomic-embed-text",
            e.details.get("actual"), e.details.get("expected"),
        )
        return False
    except BrainSearchError as e:
        logger.warning(
            "Embedding server unavailable (%s). Start it with: ollama serve, "
            "then: ollama pull nomic-embed-text",
            e,
        )
        return False
    return True


async def probe_services(
    note_store: NoteStore,
    client: EmbeddingClient,
    project: str | None = None,
) -> Availability:
    """Run both probes once. The result is fixed for the process lifetime."""
    availability = Availability(
        embedding_enabled=await probe_embeddings(client),
        notes_available=await probe_notes(note_store, project),
    )
    logger.info(
        "Service availability: embeddings=%s notes=%s",
        availability.embedding_enabled, availability.notes_available,
    )
    return availability
