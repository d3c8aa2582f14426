"""Wiring of settings, stores, clients and services for one process."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from brain_search.config import BrainSettings
from brain_search.embedding.client import OllamaEmbeddingClient
from brain_search.health import Availability, probe_services
from brain_search.indexer import Indexer
from brain_search.notes.store import MarkdownNoteStore, NoteStore
from brain_search.search.service import SearchService
from brain_search.store.queue import EmbeddingQueue
from brain_search.store.vectors import VectorStore
from brain_search.utils.paths import expand_path

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Everything a request handler or CLI command needs."""
    settings: BrainSettings
    note_store: NoteStore
    client: OllamaEmbeddingClient
    store: VectorStore
    queue: EmbeddingQueue
    availability: Availability
    indexer: Indexer
    search_service: SearchService

    @classmethod
    async def create(
        cls,
        settings: BrainSettings,
        note_store: NoteStore | None = None,
        client: OllamaEmbeddingClient | None = None,
        probe: bool = True,
    ) -> "Runtime":
        """Open the store, probe the services once and build the services.

        With ``probe=False`` both services are assumed available.
        """
        if note_store is None:
            note_store = MarkdownNoteStore(expand_path(settings.notes_root), settings.default_project)
        if client is None:
            client = OllamaEmbeddingClient(
                base_url=settings.embedding_base_url,
                model=settings.embedding_model,
                timeout=settings.embedding_timeout_s,
                dimension=settings.vector_dim,
            )

        db_path = settings.db_path if settings.db_path == ":memory:" else expand_path(settings.db_path)
        store = await asyncio.to_thread(VectorStore, db_path)
        await asyncio.to_thread(store.ensure_schema)
        queue = EmbeddingQueue(store)
        await asyncio.to_thread(queue.ensure_schema)

        if probe:
            availability = await probe_services(note_store, client, settings.default_project)
        else:
            availability = Availability(embedding_enabled=True, notes_available=True)

        indexer = Indexer(
            note_store,
            client,
            store,
            queue=queue,
            chunk_size=settings.chunk_size,
            chunk_overlap=settings.chunk_overlap,
        )
        search_service = SearchService(
            note_store,
            client,
            store,
            availability,
            default_project=settings.default_project,
        )
        logger.info("Runtime ready (db=%s)", db_path)
        return cls(
            settings=settings,
            note_store=note_store,
            client=client,
            store=store,
            queue=queue,
            availability=availability,
            indexer=indexer,
            search_service=search_service,
        )

    async def aclose(self) -> None:
        await self.client.aclose()
        await asyncio.to_thread(self.store.close)
