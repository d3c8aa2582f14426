"""Note store boundary and a markdown-directory implementation.

The search and indexing code only talks to a ``NoteStore``. The bundled
``MarkdownNoteStore`` serves a directory of markdown files, one
subdirectory per project, with permalinks being paths relative to the
project directory without the ``.md`` suffix.
"""

from __future__ import annotations

import asyncio
import fnmatch
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import yaml

from brain_search.errors import NoteNotFoundError, NoteUnreadableError


@dataclass
class NoteContent:
    """A note as read from the store."""
    permalink: str
    text: str
    title: str | None = None


@dataclass
class NoteSearchMatch:
    """One hit from the store's own text search."""
    permalink: str
    title: str
    content: str = ""
    score: float = 0.0


class NoteStore(Protocol):
    """Operations the core needs from the knowledge service."""

    async def list_directory(
        self,
        project: str | None = None,
        glob: str = "*.md",
        depth: int = 10,
    ) -> list[str]: ...

    async def read_note(self, identifier: str, project: str | None = None) -> NoteContent: ...

    async def search_notes(
        self,
        query: str,
        search_type: str = "text",
        project: str | None = None,
        page_size: int = 10,
    ) -> list[NoteSearchMatch]: ...


def extract_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """Extract YAML frontmatter and body from markdown content.

    Returns (frontmatter_dict, body_text).
    """
    if not content.startswith("---"):
        return {}, content

    parts = content.split("---", 2)
    if len(parts) < 3:
        return {}, content

    try:
        fm = yaml.safe_load(parts[1]) or {}
    except yaml.YAMLError:
        fm = {}
    if not isinstance(fm, dict):
        fm = {}

    body = parts[2].lstrip("\n")
    return fm, body


_HEADING_PATTERN = re.compile(r"^#\s+(.+)$", re.MULTILINE)


def note_title(frontmatter: dict[str, Any], body: str, fallback: str) -> str:
    """Title from frontmatter, else the first ``# heading``, else the fallback."""
    title = frontmatter.get("title")
    if isinstance(title, str) and title.strip():
        return title.strip()
    match = _HEADING_PATTERN.search(body)
    if match:
        return match.group(1).strip()
    return fallback


def permalink_for(path: Path, base_dir: Path) -> str:
    """Relative POSIX path without the .md suffix."""
    rel = path.relative_to(base_dir).as_posix()
    return rel[:-3] if rel.endswith(".md") else rel


class MarkdownNoteStore:
    """NoteStore over a directory tree of markdown files."""

    def __init__(self, root: Path | str, default_project: str | None = None) -> None:
        self.root = Path(root).expanduser()
        self.default_project = default_project

    def project_dir(self, project: str | None = None) -> Path:
        """Directory holding a project's notes."""
        project = project or self.default_project
        return self.root / project if project else self.root

    async def list_directory(
        self,
        project: str | None = None,
        glob: str = "*.md",
        depth: int = 10,
    ) -> list[str]:
        """Relative paths of files matching ``glob`` up to ``depth`` levels deep."""
        return await asyncio.to_thread(self._list_paths, project, glob, depth)

    def _list_paths(self, project: str | None, glob: str, depth: int) -> list[str]:
        base = self.project_dir(project)
        if not base.is_dir():
            return []
        paths = []
        for path in base.rglob("*"):
            if not path.is_file():
                continue
            rel = path.relative_to(base)
            if len(rel.parts) > depth or any(p.startswith(".") for p in rel.parts):
                continue
            if fnmatch.fnmatch(rel.name, glob):
                paths.append(rel.as_posix())
        return sorted(paths)

    async def read_note(self, identifier: str, project: str | None = None) -> NoteContent:
        """Read a note by permalink, path, or title.

        Raises:
            NoteNotFoundError: No note matches the identifier
            NoteUnreadableError: The note exists but is not valid UTF-8
        """
        return await asyncio.to_thread(self._read, identifier, project)

    def _read(self, identifier: str, project: str | None) -> NoteContent:
        base = self.project_dir(project)
        path = self._locate(base, identifier)
        if path is None:
            raise NoteNotFoundError(identifier, project)
        return self._load(path, base)

    def _locate(self, base: Path, identifier: str) -> Path | None:
        identifier = identifier.strip().lstrip("/")
        if not identifier or not base.is_dir():
            return None

        resolved_base = base.resolve()
        for candidate in (identifier, f"{identifier}.md"):
            path = (base / candidate).resolve()
            try:
                path.relative_to(resolved_base)
            except ValueError:
                continue
            if path.is_file():
                return path

        # Fall back to a case-insensitive title match
        wanted = identifier.lower()
        for path in sorted(base.rglob("*.md")):
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                continue
            fm, body = extract_frontmatter(content)
            if note_title(fm, body, path.stem).lower() == wanted:
                return path
        return None

    def _load(self, path: Path, base: Path) -> NoteContent:
        permalink = permalink_for(path.resolve(), base.resolve())
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise NoteUnreadableError(permalink, str(e)) from e
        fm, body = extract_frontmatter(content)
        return NoteContent(
            permalink=permalink,
            text=body,
            title=note_title(fm, body, path.stem),
        )

    async def search_notes(
        self,
        query: str,
        search_type: str = "text",
        project: str | None = None,
        page_size: int = 10,
    ) -> list[NoteSearchMatch]:
        """Keyword search over note titles and bodies.

        ``search_type`` is ``text`` (title and body words), ``title``, or
        ``permalink`` (a glob over permalinks).
        """
        return await asyncio.to_thread(self._search, query, search_type, project, page_size)

    def _search(
        self,
        query: str,
        search_type: str,
        project: str | None,
        page_size: int,
    ) -> list[NoteSearchMatch]:
        base = self.project_dir(project)
        if not base.is_dir():
            return []

        query_lower = query.lower().strip().strip('"')
        query_words = query_lower.split()
        if not query_words:
            return []

        results = []
        for path in sorted(base.rglob("*.md")):
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                continue
            fm, body = extract_frontmatter(content)
            permalink = permalink_for(path, base)
            title = note_title(fm, body, path.stem)

            if search_type == "permalink":
                score = 1.0 if fnmatch.fnmatch(permalink, query_lower) else 0.0
            elif search_type == "title":
                title_lower = title.lower()
                score = sum(1 for w in query_words if w in title_lower) / len(query_words)
            else:
                haystack = f"{title}\n{body}".lower()
                score = sum(1 for w in query_words if w in haystack) / len(query_words)

            if score > 0:
                results.append(NoteSearchMatch(
                    permalink=permalink,
                    title=title,
                    content=body,
                    score=score,
                ))

        results.sort(key=lambda r: (-r.score, r.permalink))
        return results[:page_size]
