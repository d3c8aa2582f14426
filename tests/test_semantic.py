"""Tests for semantic search and result deduplication."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from brain_search.notes.store import MarkdownNoteStore, NoteContent
from brain_search.search.models import SearchSource
from brain_search.search.semantic import SemanticSearcher, deduplicate_by_entity, titleize
from brain_search.store.schema import ChunkEmbeddingInput, SearchResult
from brain_search.store.vectors import VectorStore

from conftest import FakeEmbeddingClient, mix, unit_vector, write_note


def result(entity_id: str, index: int, similarity: float) -> SearchResult:
    return SearchResult(
        entity_id=entity_id,
        chunk_id=f"{entity_id}#chunk-{index}",
        chunk_index=index,
        total_chunks=index + 1,
        chunk_text=f"text {entity_id} {index}",
        distance=1 - similarity,
        similarity=similarity,
    )


def store_vectors(store: VectorStore, entity_id: str, texts_and_vectors: list[tuple[str, list[float]]]) -> None:
    rows = []
    offset = 0
    for i, (text, vector) in enumerate(texts_and_vectors):
        rows.append(ChunkEmbeddingInput(
            chunk_index=i,
            total_chunks=len(texts_and_vectors),
            chunk_start=offset,
            chunk_end=offset + len(text),
            chunk_text=text,
            embedding=vector,
        ))
        offset += len(text)
    store.store_chunks(entity_id, rows)


class TestDeduplicate:
    def test_keeps_best_chunk(self):
        rows = [result("a", 0, 0.8), result("a", 1, 0.95), result("b", 0, 0.9)]
        deduped = deduplicate_by_entity(rows)
        assert [(r.entity_id, r.chunk_index) for r in deduped] == [("a", 1), ("b", 0)]

    def test_sorted_by_similarity(self):
        rows = [result("c", 0, 0.7), result("a", 0, 0.9), result("b", 0, 0.8)]
        assert [r.entity_id for r in deduplicate_by_entity(rows)] == ["a", "b", "c"]

    def test_ties_broken_by_entity(self):
        rows = [result("z", 0, 0.8), result("m", 0, 0.8), result("a", 0, 0.8)]
        assert [r.entity_id for r in deduplicate_by_entity(rows)] == ["a", "m", "z"]

    def test_empty(self):
        assert deduplicate_by_entity([]) == []


class TestTitleize:
    def test_slug(self):
        assert titleize("patterns/auth-flow") == "Auth Flow"

    def test_underscores(self):
        assert titleize("my_note_name") == "My Note Name"


class TestSemanticSearcher:
    @pytest.fixture
    def client(self) -> FakeEmbeddingClient:
        return FakeEmbeddingClient({"q": unit_vector(0)})

    @pytest.mark.asyncio
    async def test_two_chunks_dedup_to_best(
        self, client: FakeEmbeddingClient, vector_store: VectorStore, note_store: MarkdownNoteStore, notes_root: Path
    ):
        q = unit_vector(0)
        write_note(notes_root, "n/a", "whatever", title="Note A")
        store_vectors(vector_store, "n/a", [
            ("first chunk", mix(q, unit_vector(1), 0.2)),
            ("second chunk", mix(q, unit_vector(1), 0.05)),
        ])
        searcher = SemanticSearcher(client, vector_store, note_store)
        hits = await searcher.search("q", limit=5, threshold=0.7)

        assert len(hits) == 1
        best = max(r.similarity for r in vector_store.search(q, 10, 0.0))
        assert hits[0].similarity_score == pytest.approx(best)
        assert hits[0].snippet == "second chunk"
        assert hits[0].title == "Note A"
        assert hits[0].source == SearchSource.SEMANTIC

    @pytest.mark.asyncio
    async def test_query_uses_query_prefix(
        self, client: FakeEmbeddingClient, vector_store: VectorStore, note_store: MarkdownNoteStore
    ):
        searcher = SemanticSearcher(client, vector_store, note_store)
        await searcher.search("q")
        assert client.calls == [("q", "search_query")]

    @pytest.mark.asyncio
    async def test_empty_store(self, client: FakeEmbeddingClient, vector_store: VectorStore, note_store: MarkdownNoteStore):
        searcher = SemanticSearcher(client, vector_store, note_store)
        assert await searcher.search("q") == []

    @pytest.mark.asyncio
    async def test_limit_threshold_and_order(
        self, client: FakeEmbeddingClient, vector_store: VectorStore, note_store: MarkdownNoteStore, notes_root: Path
    ):
        q = unit_vector(0)
        for i, weight in enumerate([0.05, 0.1, 0.2, 0.3, 0.9]):
            write_note(notes_root, f"n{i}", "body")
            store_vectors(vector_store, f"n{i}", [(f"chunk {i}", mix(q, unit_vector(1), weight))])

        searcher = SemanticSearcher(client, vector_store, note_store)
        hits = await searcher.search("q", limit=3, threshold=0.7)
        assert [h.permalink for h in hits] == ["n0", "n1", "n2"]
        scores = [h.similarity_score for h in hits]
        assert scores == sorted(scores, reverse=True)
        assert min(scores) >= 0.7

        all_hits = await searcher.search("q", limit=10, threshold=0.7)
        assert "n4" not in [h.permalink for h in all_hits]

    @pytest.mark.asyncio
    async def test_missing_note_dropped(
        self, client: FakeEmbeddingClient, vector_store: VectorStore, note_store: MarkdownNoteStore, notes_root: Path
    ):
        q = unit_vector(0)
        write_note(notes_root, "kept", "body")
        store_vectors(vector_store, "kept", [("kept chunk", q)])
        store_vectors(vector_store, "deleted", [("orphan chunk", q)])
        searcher = SemanticSearcher(client, vector_store, note_store)
        hits = await searcher.search("q")
        assert [h.permalink for h in hits] == ["kept"]

    @pytest.mark.asyncio
    async def test_snippet_truncated_and_title_fallback(self, client: FakeEmbeddingClient, vector_store: VectorStore):
        store_vectors(vector_store, "ideas/big-idea", [("x" * 500, unit_vector(0))])
        note_store = MagicMock()
        note_store.read_note = AsyncMock(return_value=NoteContent(permalink="ideas/big-idea", text="x", title=None))

        searcher = SemanticSearcher(client, vector_store, note_store)
        hits = await searcher.search("q")
        assert hits[0].snippet == "x" * 200
        assert hits[0].title == "Big Idea"
