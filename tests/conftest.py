"""Shared test fixtures for brain-search."""

from __future__ import annotations

import hashlib
import logging
import math
import re
from pathlib import Path
from typing import Iterator, Sequence

import pytest

from brain_search.embedding.client import TaskType
from brain_search.errors import EmbeddingUnavailableError
from brain_search.notes.store import MarkdownNoteStore
from brain_search.store.queue import EmbeddingQueue
from brain_search.store.schema import EMBEDDING_DIM
from brain_search.store.vectors import VectorStore


def unit_vector(index: int, dim: int = EMBEDDING_DIM) -> list[float]:
    """Basis vector with a 1.0 at ``index``."""
    v = [0.0] * dim
    v[index % dim] = 1.0
    return v


def mix(a: Sequence[float], b: Sequence[float], weight: float) -> list[float]:
    """Normalized ``(1 - weight) * a + weight * b``."""
    v = [(1 - weight) * x + weight * y for x, y in zip(a, b)]
    norm = math.sqrt(sum(x * x for x in v)) or 1.0
    return [x / norm for x in v]


def bag_of_words(text: str, dim: int = EMBEDDING_DIM) -> list[float]:
    """Deterministic unit vector from hashed word counts."""
    v = [0.0] * dim
    for word in re.findall(r"[a-z0-9]+", text.lower()):
        slot = int(hashlib.md5(word.encode()).hexdigest(), 16) % dim
        v[slot] += 1.0
    norm = math.sqrt(sum(x * x for x in v))
    if norm == 0:
        return unit_vector(dim - 1, dim)
    return [x / norm for x in v]


class FakeEmbeddingClient:
    """In-process stand-in for the embedding server.

    Texts embed as bag-of-words vectors unless pinned in ``vectors``.
    Every call is recorded as ``(text, task_type)``.
    """

    def __init__(self, vectors: dict[str, list[float]] | None = None) -> None:
        self.vectors = dict(vectors or {})
        self.calls: list[tuple[str, str]] = []
        self.fail = False

    async def embed(self, text: str, task_type: TaskType | str = TaskType.SEARCH_DOCUMENT) -> list[float]:
        self.calls.append((text, TaskType(task_type).value))
        if self.fail:
            raise EmbeddingUnavailableError("embedding server down")
        if text in self.vectors:
            return list(self.vectors[text])
        return bag_of_words(text)

    async def embed_batch(
        self,
        texts: Sequence[str],
        task_type: TaskType | str = TaskType.SEARCH_DOCUMENT,
    ) -> list[list[float]]:
        return [await self.embed(t, task_type) for t in texts]

    async def list_models(self) -> list[str]:
        return ["nomic-embed-text:latest"]

    async def aclose(self) -> None:
        pass


def write_note(root: Path, permalink: str, body: str, title: str | None = None) -> Path:
    """Write a markdown note under ``root``, with optional frontmatter title."""
    path = root / f"{permalink}.md"
    path.parent.mkdir(parents=True, exist_ok=True)
    content = f"---\ntitle: {title}\n---\n\n{body}" if title else body
    path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture
def notes_root(tmp_path: Path) -> Path:
    root = tmp_path / "memories"
    root.mkdir()
    return root


@pytest.fixture
def note_store(notes_root: Path) -> MarkdownNoteStore:
    return MarkdownNoteStore(notes_root)


@pytest.fixture
def vector_store(tmp_path: Path) -> Iterator[VectorStore]:
    """Real sqlite-vec store in a temporary database file."""
    store = VectorStore(tmp_path / "memory.db")
    store.ensure_schema()
    yield store
    store.close()


@pytest.fixture
def queue(vector_store: VectorStore) -> EmbeddingQueue:
    q = EmbeddingQueue(vector_store)
    q.ensure_schema()
    return q


@pytest.fixture
def fake_client() -> FakeEmbeddingClient:
    return FakeEmbeddingClient()


@pytest.fixture(autouse=True)
def brain_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep settings and error logs out of the real home directory."""
    home = tmp_path / ".brain"
    monkeypatch.setenv("BRAIN_HOME", str(home))
    return home


@pytest.fixture(autouse=True)
def restore_brain_logger() -> Iterator[None]:
    """Undo configure_logging so caplog keeps seeing brain_search records."""
    logger = logging.getLogger("brain_search")
    handlers, level, propagate = logger.handlers[:], logger.level, logger.propagate
    yield
    for handler in logger.handlers:
        if handler not in handlers:
            handler.close()
    logger.handlers = handlers
    logger.setLevel(level)
    logger.propagate = propagate
