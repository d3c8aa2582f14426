"""Semantic search: query embedding -> chunk hits -> note hits."""

from __future__ import annotations

import asyncio
import logging

from brain_search.embedding.client import EmbeddingClient, TaskType
from brain_search.errors import NoteNotFoundError
from brain_search.notes.store import NoteStore
from brain_search.search.models import SearchHit, SearchSource
from brain_search.store.schema import SearchResult
from brain_search.store.vectors import VectorStore

logger = logging.getLogger(__name__)

OVERFETCH_FACTOR = 3
SNIPPET_LENGTH = 200


def deduplicate_by_entity(results: list[SearchResult]) -> list[SearchResult]:
    """Keep the best chunk per note, best notes first.

    Ties on similarity are broken by entity id so the order is stable.
    """
    best: dict[str, SearchResult] = {}
    for result in results:
        current = best.get(result.entity_id)
        if current is None or result.similarity > current.similarity:
            best[result.entity_id] = result
    return sorted(best.values(), key=lambda r: (-r.similarity, r.entity_id))


def titleize(permalink: str) -> str:
    """``notes/auth-flow`` -> ``Auth Flow``."""
    slug = permalink.rstrip("/").rsplit("/", 1)[-1]
    return " ".join(w.capitalize() for w in slug.replace("_", "-").split("-") if w)


class SemanticSearcher:
    """Vector search over stored chunk embeddings."""

    def __init__(self, client: EmbeddingClient, store: VectorStore, note_store: NoteStore) -> None:
        self.client = client
        self.store = store
        self.note_store = note_store

    async def search(
        self,
        query: str,
        limit: int = 10,
        threshold: float = 0.7,
        project: str | None = None,
    ) -> list[SearchHit]:
        query_vector = await self.client.embed(query, TaskType.SEARCH_QUERY)
        rows = await asyncio.to_thread(
            self.store.search, query_vector, limit * OVERFETCH_FACTOR, threshold
        )
        top = deduplicate_by_entity(rows)[:limit]
        logger.debug("Semantic search matched %d chunks, %d notes", len(rows), len(top))

        hits = []
        for result in top:
            try:
                note = await self.note_store.read_note(result.entity_id, project)
            except NoteNotFoundError:
                logger.debug("Dropping hit for missing note %s", result.entity_id)
                continue
            hits.append(SearchHit(
                permalink=result.entity_id,
                title=note.title or titleize(result.entity_id),
                similarity_score=result.similarity,
                snippet=result.chunk_text[:SNIPPET_LENGTH],
                source=SearchSource.SEMANTIC,
            ))
        return hits
