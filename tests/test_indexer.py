"""Tests for the note indexer."""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from brain_search.errors import (
    EmbeddingDimensionError,
    EmbeddingUnavailableError,
    NoteNotFoundError,
    StoreError,
)
from brain_search.indexer import MAX_RETRIES, Indexer, normalize_permalink
from brain_search.notes.store import MarkdownNoteStore
from brain_search.store.queue import EmbeddingQueue
from brain_search.store.vectors import VectorStore

from conftest import FakeEmbeddingClient, write_note


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def indexer(
    note_store: MarkdownNoteStore,
    fake_client: FakeEmbeddingClient,
    vector_store: VectorStore,
    queue: EmbeddingQueue,
    sleep: AsyncMock,
) -> Indexer:
    return Indexer(note_store, fake_client, vector_store, queue=queue, sleep=sleep)


def long_text(n: int) -> str:
    return "".join(chr(ord("a") + i % 26) for i in range(n))


def test_normalize_permalink():
    assert normalize_permalink("/notes/a.md") == "notes/a"
    assert normalize_permalink("notes/a") == "notes/a"


class TestIndexNote:
    @pytest.mark.asyncio
    async def test_two_chunks(self, indexer: Indexer, notes_root: Path, vector_store: VectorStore):
        text = long_text(1500)
        write_note(notes_root, "n/a", text)
        outcome = await indexer.index_note("n/a")

        assert outcome.status == "indexed"
        assert outcome.chunks == 2
        assert vector_store.count_for_entity("n/a") == 2
        rows = vector_store.get_for_entity("n/a")
        assert rows[0].chunk_start == 0
        for r in rows:
            assert r.chunk_text == text[r.chunk_start:r.chunk_end]

    @pytest.mark.asyncio
    async def test_documents_use_document_prefix(self, indexer: Indexer, notes_root: Path, fake_client: FakeEmbeddingClient):
        write_note(notes_root, "n/a", "short body")
        await indexer.index_note("n/a")
        assert fake_client.calls == [("short body", "search_document")]

    @pytest.mark.asyncio
    async def test_reindex_shrinks(self, indexer: Indexer, notes_root: Path, vector_store: VectorStore):
        write_note(notes_root, "n/a", long_text(1500))
        await indexer.index_note("n/a")
        write_note(notes_root, "n/a", long_text(400))
        await indexer.index_note("n/a")
        assert vector_store.count_for_entity("n/a") == 1
        assert [r.chunk_index for r in vector_store.get_for_entity("n/a")] == [0]

    @pytest.mark.asyncio
    async def test_reindex_is_stable(self, indexer: Indexer, notes_root: Path, vector_store: VectorStore):
        write_note(notes_root, "n/a", long_text(2000))
        await indexer.index_note("n/a")
        first = vector_store.get_for_entity("n/a")
        await indexer.index_note("n/a")
        second = vector_store.get_for_entity("n/a")
        assert [(r.chunk_id, r.chunk_start, r.chunk_end, r.chunk_text) for r in first] == \
            [(r.chunk_id, r.chunk_start, r.chunk_end, r.chunk_text) for r in second]

    @pytest.mark.asyncio
    async def test_empty_note_clears_rows(self, indexer: Indexer, notes_root: Path, vector_store: VectorStore):
        write_note(notes_root, "n/a", long_text(400))
        await indexer.index_note("n/a")
        write_note(notes_root, "n/a", "   \n")
        outcome = await indexer.index_note("n/a")
        assert outcome.status == "skipped"
        assert vector_store.count_for_entity("n/a") == 0

    @pytest.mark.asyncio
    async def test_embedding_failure_leaves_store_untouched(
        self, indexer: Indexer, notes_root: Path, vector_store: VectorStore, fake_client: FakeEmbeddingClient
    ):
        write_note(notes_root, "n/a", long_text(400))
        await indexer.index_note("n/a")
        write_note(notes_root, "n/a", long_text(1500))
        fake_client.fail = True
        with pytest.raises(EmbeddingUnavailableError):
            await indexer.index_note("n/a")
        assert vector_store.count_for_entity("n/a") == 1

    @pytest.mark.asyncio
    async def test_missing_note(self, indexer: Indexer):
        with pytest.raises(NoteNotFoundError):
            await indexer.index_note("ghost")

    @pytest.mark.asyncio
    async def test_concurrent_same_note(self, indexer: Indexer, notes_root: Path, vector_store: VectorStore):
        write_note(notes_root, "n/a", long_text(2500))
        await asyncio.gather(*(indexer.index_note("n/a") for _ in range(5)))
        rows = vector_store.get_for_entity("n/a")
        assert [r.chunk_index for r in rows] == [0, 1, 2]
        assert all(r.total_chunks == 3 for r in rows)

    @pytest.mark.asyncio
    async def test_locks_released_after_use(self, indexer: Indexer, notes_root: Path):
        write_note(notes_root, "n/a", long_text(1500))
        await asyncio.gather(*(indexer.index_note("n/a") for _ in range(3)))
        with pytest.raises(NoteNotFoundError):
            await indexer.index_note("ghost")
        await indexer.remove_note("n/a")
        assert indexer._locks == {}
        assert indexer._lock_users == {}

    @pytest.mark.asyncio
    async def test_short_vector_batch_rejected(
        self, indexer: Indexer, notes_root: Path, vector_store: VectorStore, fake_client: FakeEmbeddingClient
    ):
        write_note(notes_root, "n/a", long_text(400))
        await indexer.index_note("n/a")
        write_note(notes_root, "n/a", long_text(1500))

        full_batch = fake_client.embed_batch

        async def short_batch(texts, task_type):
            return (await full_batch(texts, task_type))[:1]

        fake_client.embed_batch = short_batch
        with pytest.raises(EmbeddingUnavailableError) as exc_info:
            await indexer.index_note("n/a")
        assert exc_info.value.details == {"expected": 2, "actual": 1}
        rows = vector_store.get_for_entity("n/a")
        assert len(rows) == 1
        assert rows[0].total_chunks == 1


class TestRemoveAndRename:
    @pytest.mark.asyncio
    async def test_remove(self, indexer: Indexer, notes_root: Path, vector_store: VectorStore):
        write_note(notes_root, "n/a", "body")
        await indexer.index_note("n/a")
        assert await indexer.remove_note("n/a") is True
        assert await indexer.remove_note("n/a") is False
        assert vector_store.count_for_entity("n/a") == 0

    @pytest.mark.asyncio
    async def test_rename(self, indexer: Indexer, notes_root: Path, vector_store: VectorStore):
        write_note(notes_root, "old", "body text")
        await indexer.index_note("old")
        (notes_root / "old.md").rename(notes_root / "new.md")

        outcome = await indexer.rename_note("old", "new")
        assert outcome.status == "indexed"
        assert vector_store.count_for_entity("old") == 0
        assert vector_store.count_for_entity("new") == 1


class TestIndexOrEnqueue:
    @pytest.mark.asyncio
    async def test_queues_when_server_down(
        self, indexer: Indexer, notes_root: Path, fake_client: FakeEmbeddingClient, queue: EmbeddingQueue
    ):
        write_note(notes_root, "n/a", "body")
        fake_client.fail = True
        outcome = await indexer.index_or_enqueue("n/a")
        assert outcome.status == "queued"
        assert queue.peek().note_id == "n/a"

    @pytest.mark.asyncio
    async def test_without_queue_raises(
        self, note_store: MarkdownNoteStore, fake_client: FakeEmbeddingClient, vector_store: VectorStore, notes_root: Path
    ):
        write_note(notes_root, "n/a", "body")
        fake_client.fail = True
        indexer = Indexer(note_store, fake_client, vector_store)
        with pytest.raises(EmbeddingUnavailableError):
            await indexer.index_or_enqueue("n/a")


class TestIndexProject:
    @pytest.mark.asyncio
    async def test_indexes_all(self, indexer: Indexer, notes_root: Path, vector_store: VectorStore):
        write_note(notes_root, "a", "alpha")
        write_note(notes_root, "b", long_text(1500))
        write_note(notes_root, "c", "")
        stats = await indexer.index_project()
        assert stats.total_notes == 3
        assert stats.indexed == 2
        assert stats.skipped == 1
        assert stats.chunks_created == 3
        assert vector_store.entity_ids() == {"a", "b"}

    @pytest.mark.asyncio
    async def test_skips_existing_unless_forced(self, indexer: Indexer, notes_root: Path, fake_client: FakeEmbeddingClient):
        write_note(notes_root, "a", "alpha")
        await indexer.index_project()
        fake_client.calls.clear()

        stats = await indexer.index_project()
        assert stats.indexed == 0
        assert stats.skipped == 1
        assert fake_client.calls == []

        stats = await indexer.index_project(force=True)
        assert stats.indexed == 1

    @pytest.mark.asyncio
    async def test_limit(self, indexer: Indexer, notes_root: Path):
        for i in range(5):
            write_note(notes_root, f"n{i}", f"note {i}")
        assert (await indexer.index_project(limit=2)).indexed == 2
        assert (await indexer.index_project(limit=0)).indexed == 3

    @pytest.mark.asyncio
    async def test_server_down_queues(self, indexer: Indexer, notes_root: Path, fake_client: FakeEmbeddingClient, queue: EmbeddingQueue):
        write_note(notes_root, "a", "alpha")
        write_note(notes_root, "b", "beta")
        fake_client.fail = True
        stats = await indexer.index_project()
        assert stats.queued == 2
        assert stats.failed == 0
        assert queue.size() == 2

    @pytest.mark.asyncio
    async def test_failures_counted_not_raised(self, indexer: Indexer, notes_root: Path, fake_client: FakeEmbeddingClient):
        for i in range(12):
            write_note(notes_root, f"n{i:02d}", f"note {i}")
        fake_client.embed_batch = AsyncMock(side_effect=EmbeddingDimensionError(768, 3))
        stats = await indexer.index_project(limit=0)
        assert stats.failed == 12
        assert len(stats.errors) == 10
        assert stats.errors[0].startswith("n00:")

    @pytest.mark.asyncio
    async def test_latin1_note_counted_as_failure(self, indexer: Indexer, notes_root: Path, vector_store: VectorStore):
        (notes_root / "legacy.md").write_bytes("caf\xe9 alpha".encode("latin-1"))
        write_note(notes_root, "good", "alpha")
        stats = await indexer.index_project(limit=0)
        assert stats.indexed == 1
        assert stats.failed == 1
        assert stats.errors[0].startswith("legacy:")
        assert vector_store.entity_ids() == {"good"}

    @pytest.mark.asyncio
    async def test_store_error_does_not_abort_batch(
        self, indexer: Indexer, notes_root: Path, vector_store: VectorStore, monkeypatch: pytest.MonkeyPatch
    ):
        for name in ("a", "b", "c"):
            write_note(notes_root, name, f"note {name}")
        store_chunks = vector_store.store_chunks

        def failing_store_chunks(entity_id, chunks):
            if entity_id == "b":
                raise StoreError("disk I/O error")
            return store_chunks(entity_id, chunks)

        monkeypatch.setattr(vector_store, "store_chunks", failing_store_chunks)
        stats = await indexer.index_project(limit=0)
        assert stats.indexed == 2
        assert stats.failed == 1
        assert stats.errors == ["b: disk I/O error"]
        assert vector_store.entity_ids() == {"a", "c"}


class TestProcessQueue:
    @pytest.mark.asyncio
    async def test_drains_queue(self, indexer: Indexer, notes_root: Path, queue: EmbeddingQueue, vector_store: VectorStore):
        write_note(notes_root, "a", "alpha")
        write_note(notes_root, "b", "beta")
        queue.enqueue("a")
        queue.enqueue("b")

        stats = await indexer.process_queue()
        assert stats.processed == 2
        assert stats.failed == 0
        assert stats.remaining == 0
        assert vector_store.entity_ids() == {"a", "b"}

    @pytest.mark.asyncio
    async def test_missing_note_dropped(self, indexer: Indexer, queue: EmbeddingQueue):
        queue.enqueue("ghost")
        stats = await indexer.process_queue()
        assert stats.failed == 1
        assert queue.size() == 0

    @pytest.mark.asyncio
    async def test_retries_with_backoff_then_drops(
        self, indexer: Indexer, notes_root: Path, queue: EmbeddingQueue, fake_client: FakeEmbeddingClient, sleep: AsyncMock
    ):
        write_note(notes_root, "a", "alpha")
        queue.enqueue("a")
        fake_client.fail = True

        stats = await indexer.process_queue()
        assert stats.processed == 0
        assert stats.failed == 1
        assert queue.size() == 0
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0, 4.0]
        assert len(sleep.await_args_list) == MAX_RETRIES

    @pytest.mark.asyncio
    async def test_recovers_on_retry(
        self, indexer: Indexer, notes_root: Path, queue: EmbeddingQueue, fake_client: FakeEmbeddingClient, sleep: AsyncMock
    ):
        write_note(notes_root, "a", "alpha")
        queue.enqueue("a")
        fake_client.fail = True

        async def recover(delay: float) -> None:
            fake_client.fail = False

        sleep.side_effect = recover
        stats = await indexer.process_queue()
        assert stats.processed == 1
        assert len(sleep.await_args_list) == 1

    @pytest.mark.asyncio
    async def test_without_queue(self, note_store: MarkdownNoteStore, fake_client: FakeEmbeddingClient, vector_store: VectorStore):
        indexer = Indexer(note_store, fake_client, vector_store)
        stats = await indexer.process_queue()
        assert stats.to_dict() == {"processed": 0, "failed": 0, "remaining": 0}
