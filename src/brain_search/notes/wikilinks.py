"""Wikilink extraction and resolution.

``[[Target]]``, ``[[Target|Alias]]`` and ``[[Target#Heading]]`` all point at
``Target``. A target resolves to a note when, in order:

1. its lowercased form equals a known note title (lowercased)
2. it equals a known permalink
3. it names a known file once ``.md`` is appended
4. its basename equals the basename of a known permalink
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field

from brain_search.errors import NoteNotFoundError
from brain_search.notes.store import NoteStore

logger = logging.getLogger(__name__)

WIKILINK_PATTERN = re.compile(r"\[\[([^\]|#]+)(?:#[^\]|]*)?(?:\|[^\]]+)?\]\]")


def extract_wikilinks(content: str) -> list[str]:
    """Unique link targets in order of first appearance."""
    links: list[str] = []
    seen: set[str] = set()
    for match in WIKILINK_PATTERN.finditer(content):
        target = match.group(1).strip()
        if target and target not in seen:
            seen.add(target)
            links.append(target)
    return links


def _basename(reference: str) -> str:
    name = reference.rstrip("/").rsplit("/", 1)[-1]
    return name[:-3] if name.endswith(".md") else name


@dataclass
class NoteCatalog:
    """Known notes of one project, indexed for link resolution."""
    titles: dict[str, str] = field(default_factory=dict)
    permalinks: set[str] = field(default_factory=set)
    paths: dict[str, str] = field(default_factory=dict)
    basenames: dict[str, str] = field(default_factory=dict)

    def add(self, path: str, title: str | None) -> None:
        permalink = path[:-3] if path.endswith(".md") else path
        self.permalinks.add(permalink)
        self.paths[path] = permalink
        self.basenames.setdefault(_basename(permalink), permalink)
        if title:
            self.titles.setdefault(title.lower(), permalink)

    def resolve(self, reference: str) -> str | None:
        """Permalink the reference points at, or None if it is broken."""
        ref = reference.strip()
        if not ref:
            return None
        if ref.lower() in self.titles:
            return self.titles[ref.lower()]
        if ref in self.permalinks:
            return ref
        if f"{ref}.md" in self.paths:
            return self.paths[f"{ref}.md"]
        return self.basenames.get(_basename(ref))

    @classmethod
    async def load(cls, note_store: NoteStore, project: str | None = None) -> "NoteCatalog":
        """Build a catalog from every markdown note in a project."""
        paths = await note_store.list_directory(project, "*.md", 10)
        titles = await asyncio.gather(*(_read_title(note_store, p, project) for p in paths))

        catalog = cls()
        for path, title in zip(paths, titles):
            catalog.add(path, title)
        logger.debug("Loaded note catalog with %d notes", len(catalog.permalinks))
        return catalog


async def _read_title(note_store: NoteStore, path: str, project: str | None) -> str | None:
    permalink = path[:-3] if path.endswith(".md") else path
    try:
        note = await note_store.read_note(permalink, project)
    except NoteNotFoundError:
        return None
    return note.title
