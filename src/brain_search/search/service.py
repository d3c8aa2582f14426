"""Search orchestration.

Picks semantic or keyword retrieval, filters by folder, follows wikilinks
out to ``depth`` hops, and optionally attaches note text to each hit.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from brain_search.embedding.client import EmbeddingClient
from brain_search.errors import (
    EmbeddingUnavailableError,
    NoteNotFoundError,
    SemanticUnavailableError,
)
from brain_search.health import Availability
from brain_search.notes.store import NoteStore
from brain_search.notes.wikilinks import NoteCatalog, extract_wikilinks
from brain_search.search.models import (
    SearchArgs,
    SearchHit,
    SearchMode,
    SearchSource,
    parse_search_args,
)
from brain_search.search.semantic import SNIPPET_LENGTH, SemanticSearcher
from brain_search.store.vectors import VectorStore

logger = logging.getLogger(__name__)

RELATED_SCORE = 0.5
MAX_LINKS_PER_NOTE = 5
FULL_CONTENT_CHAR_LIMIT = 5000


def filter_by_folders(hits: list[SearchHit], folders: list[str]) -> list[SearchHit]:
    """Keep hits whose permalink lies under one of ``folders``."""
    prefixes = [f.strip("/") + "/" for f in folders if f.strip("/")]
    if not prefixes:
        return hits
    return [h for h in hits if any(h.permalink.startswith(p) for p in prefixes)]


class SearchService:
    """Entry point for search calls."""

    def __init__(
        self,
        note_store: NoteStore,
        client: EmbeddingClient,
        store: VectorStore,
        availability: Availability,
        default_project: str | None = None,
    ) -> None:
        self.note_store = note_store
        self.store = store
        self.availability = availability
        self.default_project = default_project
        self.semantic = SemanticSearcher(client, store, note_store)
        self._content_cache: dict[str, str] = {}

    async def search(self, args: SearchArgs | dict[str, Any]) -> list[SearchHit]:
        """Run a search.

        Raises:
            SearchValidationError: Bad arguments
            SemanticUnavailableError: ``semantic`` mode without embeddings
        """
        if not isinstance(args, SearchArgs):
            args = parse_search_args(args)
        project = args.project or self.default_project

        if args.mode == SearchMode.SEMANTIC:
            await self._require_semantic()
            hits = await self.semantic.search(args.query, args.limit, args.threshold, project)
        elif args.mode == SearchMode.KEYWORD:
            hits = await self.keyword_search(args.query, args.limit, project)
        else:
            hits = await self._auto_search(args, project)

        if args.folders:
            hits = filter_by_folders(hits, args.folders)

        if args.depth > 0:
            hits = await self.expand_relations(hits, args.depth, args.limit, project)

        if args.full_context:
            hits = await self._attach_full_content(hits, project)

        logger.info(
            "Search %r (%s, depth %d): %d hits",
            args.query, args.mode.value, args.depth, len(hits),
        )
        return hits

    async def _semantic_ready(self) -> bool:
        if not self.availability.embedding_enabled:
            return False
        return await asyncio.to_thread(self.store.has_any)

    async def _require_semantic(self) -> None:
        if not self.availability.embedding_enabled:
            raise SemanticUnavailableError(
                "Semantic search needs the embedding server, which was unavailable at startup"
            )
        if not await asyncio.to_thread(self.store.has_any):
            raise SemanticUnavailableError(
                "No embeddings have been generated yet. Run the embedding generation first."
            )

    async def _auto_search(self, args: SearchArgs, project: str | None) -> list[SearchHit]:
        if await self._semantic_ready():
            try:
                hits = await self.semantic.search(args.query, args.limit, args.threshold, project)
            except EmbeddingUnavailableError as e:
                logger.warning("Semantic search failed, falling back to keyword: %s", e)
            else:
                if hits:
                    return hits
                logger.debug("No semantic hits for %r, falling back to keyword", args.query)
        return await self.keyword_search(args.query, args.limit, project)

    async def keyword_search(self, query: str, limit: int, project: str | None = None) -> list[SearchHit]:
        """Delegate to the note store's own text search."""
        matches = await self.note_store.search_notes(query, "text", project, limit)
        return [
            SearchHit(
                permalink=m.permalink,
                title=m.title,
                similarity_score=m.score,
                snippet=m.content[:SNIPPET_LENGTH],
                source=SearchSource.KEYWORD,
            )
            for m in matches
        ]

    async def expand_relations(
        self,
        hits: list[SearchHit],
        depth: int,
        limit: int,
        project: str | None = None,
    ) -> list[SearchHit]:
        """Append notes reachable over wikilinks, level by level.

        Direct hits come first with depth 0, then related notes in order of
        increasing depth. The result never exceeds ``limit``.
        """
        direct = [h.model_copy(update={"depth": 0}) for h in hits]
        results = list(direct)
        if depth <= 0 or len(results) >= limit:
            return results[:limit]

        catalog = await NoteCatalog.load(self.note_store, project)
        seen = {h.permalink for h in direct}
        level = direct

        for d in range(1, depth + 1):
            next_level: list[SearchHit] = []
            for hit in level:
                for target, permalink in await self._related(hit.permalink, catalog, project):
                    if permalink in seen:
                        continue
                    seen.add(permalink)
                    related = SearchHit(
                        permalink=permalink,
                        title=target,
                        similarity_score=RELATED_SCORE,
                        snippet=f"Related via [[{target}]]",
                        source=SearchSource.RELATED,
                        depth=d,
                    )
                    next_level.append(related)
                    results.append(related)
            level = next_level
            if not level or len(results) >= limit:
                break

        logger.debug("Expanded %d direct hits to %d results", len(direct), len(results))
        return results[:limit]

    async def _related(
        self,
        permalink: str,
        catalog: NoteCatalog,
        project: str | None,
    ) -> list[tuple[str, str]]:
        """(link target, resolved permalink) pairs for a note's wikilinks."""
        try:
            note = await self.note_store.read_note(permalink, project)
        except NoteNotFoundError:
            return []
        pairs = []
        for target in extract_wikilinks(note.text)[:MAX_LINKS_PER_NOTE]:
            resolved = catalog.resolve(target)
            if resolved is None:
                logger.debug("Unresolved wikilink [[%s]] in %s", target, permalink)
                continue
            pairs.append((target, resolved))
        return pairs

    async def _attach_full_content(self, hits: list[SearchHit], project: str | None) -> list[SearchHit]:
        enriched = []
        for hit in hits:
            content = await self._full_content(hit.permalink, project)
            enriched.append(hit.model_copy(update={"full_content": content}))
        return enriched

    async def _full_content(self, permalink: str, project: str | None) -> str | None:
        key = f"{project}:{permalink}" if project else permalink
        if key in self._content_cache:
            return self._content_cache[key]
        try:
            note = await self.note_store.read_note(permalink, project)
        except NoteNotFoundError:
            return None
        content = note.text[:FULL_CONTENT_CHAR_LIMIT]
        self._content_cache[key] = content
        return content

    def clear_cache(self) -> None:
        self._content_cache.clear()
