"""Note indexer: note text -> chunks -> embeddings -> vector store.

Supports single-note upserts, removal and renames, project-wide batch
generation, and draining the offline embedding queue.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable

from brain_search.embedding.chunker import (
    DEFAULT_CHUNK_OVERLAP,
    DEFAULT_CHUNK_SIZE,
    chunk_text,
)
from brain_search.embedding.client import EmbeddingClient, TaskType
from brain_search.errors import (
    BrainSearchError,
    EmbeddingDimensionError,
    EmbeddingUnavailableError,
    NoteNotFoundError,
)
from brain_search.notes.store import NoteStore
from brain_search.store.queue import EmbeddingQueue
from brain_search.store.schema import ChunkEmbeddingInput
from brain_search.store.vectors import VectorStore

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
BASE_DELAY_S = 1.0
DEFAULT_BATCH_LIMIT = 100
MAX_REPORTED_ERRORS = 10


@dataclass
class IndexOutcome:
    """Result of indexing one note."""
    permalink: str
    status: str  # "indexed", "skipped" or "queued"
    chunks: int = 0


@dataclass
class BatchIndexStats:
    """Counters from a project-wide embedding run."""
    total_notes: int = 0
    indexed: int = 0
    skipped: int = 0
    queued: int = 0
    failed: int = 0
    chunks_created: int = 0
    errors: list[str] = field(default_factory=list)

    def record_error(self, message: str) -> None:
        self.failed += 1
        if len(self.errors) < MAX_REPORTED_ERRORS:
            self.errors.append(message)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class QueueStats:
    """Counters from draining the embedding queue."""
    processed: int = 0
    failed: int = 0
    remaining: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def normalize_permalink(identifier: str) -> str:
    """Strip a leading slash and a trailing ``.md``."""
    permalink = identifier.strip().lstrip("/")
    return permalink[:-3] if permalink.endswith(".md") else permalink


class Indexer:
    """Keeps the vector store in step with the note store."""

    def __init__(
        self,
        note_store: NoteStore,
        client: EmbeddingClient,
        store: VectorStore,
        queue: EmbeddingQueue | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.note_store = note_store
        self.client = client
        self.store = store
        self.queue = queue
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self._sleep = sleep
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @asynccontextmanager
    async def _entity_lock(self, entity_id: str) -> AsyncIterator[None]:
        """Serialize work on one note; the lock is dropped once nobody holds or awaits it."""
        lock = self._locks.setdefault(entity_id, asyncio.Lock())
        self._lock_users[entity_id] = self._lock_users.get(entity_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[entity_id] -= 1
            if not self._lock_users[entity_id]:
                del self._lock_users[entity_id]
                del self._locks[entity_id]

    async def index_note(self, permalink: str, project: str | None = None) -> IndexOutcome:
        """Chunk, embed and store one note, replacing any earlier chunks.

        Raises:
            NoteNotFoundError: The note does not exist
            EmbeddingUnavailableError: The embedding server failed; the store
                is left untouched
            EmbeddingDimensionError: The server returned a wrong-sized vector
        """
        entity_id = normalize_permalink(permalink)
        async with self._entity_lock(entity_id):
            return await self._index(entity_id, project)

    async def _index(self, entity_id: str, project: str | None) -> IndexOutcome:
        note = await self.note_store.read_note(entity_id, project)
        chunks = chunk_text(note.text, self.chunk_size, self.chunk_overlap)

        if not chunks:
            # Empty notes keep no embeddings
            await asyncio.to_thread(self.store.delete_for_entity, entity_id)
            logger.debug("Skipped empty note %s", entity_id)
            return IndexOutcome(permalink=entity_id, status="skipped")

        vectors = await self.client.embed_batch(
            [c.text for c in chunks], TaskType.SEARCH_DOCUMENT
        )
        if len(vectors) != len(chunks):
            raise EmbeddingUnavailableError(
                f"Embedding server returned {len(vectors)} vectors for {len(chunks)} chunks",
                {"expected": len(chunks), "actual": len(vectors)},
            )
        rows = [
            ChunkEmbeddingInput(
                chunk_index=c.chunk_index,
                total_chunks=c.total_chunks,
                chunk_start=c.start,
                chunk_end=c.end,
                chunk_text=c.text,
                embedding=vector,
            )
            for c, vector in zip(chunks, vectors)
        ]
        stored = await asyncio.to_thread(self.store.store_chunks, entity_id, rows)
        logger.info("Indexed %s (%d chunks)", entity_id, stored)
        return IndexOutcome(permalink=entity_id, status="indexed", chunks=stored)

    async def remove_note(self, permalink: str) -> bool:
        """Drop every chunk of a note. False if it had none."""
        entity_id = normalize_permalink(permalink)
        async with self._entity_lock(entity_id):
            removed = await asyncio.to_thread(self.store.delete_for_entity, entity_id)
        if removed:
            logger.info("Removed embeddings for %s", entity_id)
        return removed

    async def rename_note(
        self,
        old_permalink: str,
        new_permalink: str,
        project: str | None = None,
    ) -> IndexOutcome:
        """Move a note's embeddings to its new permalink."""
        await self.remove_note(old_permalink)
        return await self.index_or_enqueue(new_permalink, project)

    async def index_or_enqueue(self, permalink: str, project: str | None = None) -> IndexOutcome:
        """Index a note, queueing it for later if the embedding server is down."""
        try:
            return await self.index_note(permalink, project)
        except EmbeddingUnavailableError as e:
            entity_id = normalize_permalink(permalink)
            if self.queue is None:
                raise
            await asyncio.to_thread(self.queue.enqueue, entity_id)
            logger.warning("Queued %s for embedding: %s", entity_id, e)
            return IndexOutcome(permalink=entity_id, status="queued")

    async def index_project(
        self,
        project: str | None = None,
        force: bool = False,
        limit: int = DEFAULT_BATCH_LIMIT,
    ) -> BatchIndexStats:
        """Generate embeddings for every note in a project.

        Args:
            project: Project to index (default project if None)
            force: Re-embed notes that already have embeddings
            limit: Maximum notes to process, 0 for all

        Returns:
            BatchIndexStats; per-note failures are counted, not raised
        """
        paths = await self.note_store.list_directory(project, "*.md", 10)
        permalinks = [normalize_permalink(p) for p in paths]

        stats = BatchIndexStats(total_notes=len(permalinks))
        if not force:
            existing = await asyncio.to_thread(self.store.entity_ids)
            todo = [p for p in permalinks if p not in existing]
            stats.skipped = len(permalinks) - len(todo)
        else:
            todo = permalinks
        if limit > 0:
            todo = todo[:limit]

        for permalink in todo:
            try:
                outcome = await self.index_or_enqueue(permalink, project)
            except BrainSearchError as e:
                stats.record_error(f"{permalink}: {e}")
                continue
            if outcome.status == "indexed":
                stats.indexed += 1
                stats.chunks_created += outcome.chunks
            elif outcome.status == "queued":
                stats.queued += 1
            else:
                stats.skipped += 1

        logger.info(
            "Batch embedding: %d indexed, %d skipped, %d queued, %d failed",
            stats.indexed, stats.skipped, stats.queued, stats.failed,
        )
        return stats

    async def process_queue(self, project: str | None = None) -> QueueStats:
        """Retry queued notes, oldest first, until the queue is empty.

        A failing item is retried with exponential backoff and dropped once
        it has failed ``MAX_RETRIES`` times. Notes that no longer exist are
        dropped immediately.
        """
        stats = QueueStats()
        if self.queue is None:
            return stats

        while True:
            item = await asyncio.to_thread(self.queue.peek)
            if item is None:
                break

            if item.attempts >= MAX_RETRIES:
                logger.warning(
                    "Removing %s from queue after %d failures", item.note_id, MAX_RETRIES
                )
                await asyncio.to_thread(self.queue.mark_processed, item.id)
                stats.failed += 1
                continue

            try:
                await self.index_note(item.note_id, project)
            except NoteNotFoundError:
                logger.warning("Could not fetch content for queued note %s", item.note_id)
                await asyncio.to_thread(self.queue.mark_processed, item.id)
                stats.failed += 1
                continue
            except (EmbeddingUnavailableError, EmbeddingDimensionError) as e:
                delay = BASE_DELAY_S * (2 ** item.attempts)
                logger.warning(
                    "Retry %d/%d for %s failed, next in %.1fs",
                    item.attempts + 1, MAX_RETRIES, item.note_id, delay,
                )
                await asyncio.to_thread(self.queue.increment_attempts, item.id, str(e))
                await self._sleep(delay)
                continue

            await asyncio.to_thread(self.queue.mark_processed, item.id)
            stats.processed += 1

        stats.remaining = await asyncio.to_thread(self.queue.size)
        return stats
