"""Chunked embedding storage on SQLite + sqlite-vec.

One ``vec0`` virtual table holds every chunk of every note. Writes for a
note replace its whole chunk set in a single transaction, so readers see
either the previous run or the new one.

The store is synchronous and guards its single connection with a lock.
Async callers go through ``asyncio.to_thread``.
"""

from __future__ import annotations

import logging
import platform
import sqlite3
import threading
from pathlib import Path
from typing import Sequence

import sqlite_vec

from brain_search.errors import EmbeddingDimensionError, StoreError
from brain_search.store.schema import (
    CREATE_TABLE_SQL,
    EMBEDDING_DIM,
    TABLE_NAME,
    ChunkEmbeddingInput,
    ChunkedEmbedding,
    SearchResult,
    bytes_to_vector,
    make_chunk_id,
    vector_to_bytes,
)

logger = logging.getLogger(__name__)

_sqlite_prepared = False


def prepare_sqlite() -> None:
    """Check the interpreter's sqlite3 can load extensions.

    The stock macOS system Python ships a sqlite3 built without extension
    loading. Safe to call more than once.
    """
    global _sqlite_prepared
    if _sqlite_prepared:
        return
    if platform.system() == "Darwin" and not hasattr(sqlite3.Connection, "enable_load_extension"):
        raise StoreError(
            "This Python's sqlite3 cannot load extensions, which sqlite-vec needs. "
            "Use a Python from Homebrew or python.org."
        )
    _sqlite_prepared = True


def load_sqlite_vec(conn: sqlite3.Connection) -> None:
    """Load the sqlite-vec extension into a connection."""
    conn.enable_load_extension(True)
    try:
        sqlite_vec.load(conn)
    finally:
        conn.enable_load_extension(False)


class VectorStore:
    """Persistent table of chunk embeddings with cosine search."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = db_path
        self._lock = threading.RLock()
        self._conn = self._connect()

    def _connect(self) -> sqlite3.Connection:
        prepare_sqlite()
        if str(self.db_path) != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            load_sqlite_vec(conn)
        except (sqlite3.Error, AttributeError) as e:
            raise StoreError(f"Failed to open vector store at {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        return conn

    @property
    def connection(self) -> sqlite3.Connection:
        """The underlying connection, shared with the embedding queue."""
        return self._conn

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def ensure_schema(self) -> None:
        """Create the embeddings table if it does not exist."""
        with self._lock:
            try:
                self._conn.execute(CREATE_TABLE_SQL)
                self._conn.commit()
            except sqlite3.Error as e:
                raise StoreError(f"Failed to create {TABLE_NAME}: {e}") from e

    def store_chunks(self, entity_id: str, chunks: Sequence[ChunkEmbeddingInput]) -> int:
        """Replace every stored chunk of ``entity_id`` with ``chunks``.

        An empty ``chunks`` is a no-op and leaves existing rows alone; use
        ``delete_for_entity`` to drop a note.

        Returns:
            Number of rows inserted.
        """
        if not chunks:
            return 0

        payloads = []
        for chunk in chunks:
            if len(chunk.embedding) != EMBEDDING_DIM:
                raise EmbeddingDimensionError(
                    EMBEDDING_DIM, len(chunk.embedding), f"Chunk {chunk.chunk_index}"
                )
            payloads.append((
                make_chunk_id(entity_id, chunk.chunk_index),
                vector_to_bytes(chunk.embedding),
                entity_id,
                chunk.chunk_index,
                chunk.total_chunks,
                chunk.chunk_start,
                chunk.chunk_end,
                chunk.chunk_text,
            ))

        with self._lock:
            try:
                with self._conn:
                    self._conn.execute(
                        f"DELETE FROM {TABLE_NAME} WHERE entity_id = ?", (entity_id,)
                    )
                    self._conn.executemany(
                        f"""
                        INSERT INTO {TABLE_NAME} (
                            chunk_id, embedding, entity_id, chunk_index,
                            total_chunks, chunk_start, chunk_end, chunk_text
                        )
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        payloads,
                    )
            except sqlite3.Error as e:
                raise StoreError(f"Failed to store chunks for {entity_id}: {e}") from e

        logger.debug("Stored %d chunks for %s", len(payloads), entity_id)
        return len(payloads)

    def delete_for_entity(self, entity_id: str) -> bool:
        """Delete every chunk of a note. True if anything was removed."""
        with self._lock:
            try:
                existing = self._count(entity_id)
                if existing == 0:
                    return False
                with self._conn:
                    self._conn.execute(
                        f"DELETE FROM {TABLE_NAME} WHERE entity_id = ?", (entity_id,)
                    )
            except sqlite3.Error as e:
                raise StoreError(f"Failed to delete chunks for {entity_id}: {e}") from e
        logger.debug("Deleted %d chunks for %s", existing, entity_id)
        return True

    def get_for_entity(self, entity_id: str) -> list[ChunkedEmbedding]:
        """All chunks of a note, ordered by chunk index."""
        with self._lock:
            try:
                rows = self._conn.execute(
                    f"""
                    SELECT chunk_id, entity_id, chunk_index, embedding,
                           chunk_start, chunk_end, total_chunks, chunk_text
                    FROM {TABLE_NAME}
                    WHERE entity_id = ?
                    ORDER BY chunk_index ASC
                    """,
                    (entity_id,),
                ).fetchall()
            except sqlite3.Error as e:
                raise StoreError(f"Failed to read chunks for {entity_id}: {e}") from e

        return [
            ChunkedEmbedding(
                chunk_id=row["chunk_id"],
                entity_id=row["entity_id"],
                chunk_index=row["chunk_index"],
                total_chunks=row["total_chunks"],
                chunk_start=row["chunk_start"],
                chunk_end=row["chunk_end"],
                chunk_text=row["chunk_text"],
                embedding=bytes_to_vector(row["embedding"]),
            )
            for row in rows
        ]

    def count_for_entity(self, entity_id: str) -> int:
        with self._lock:
            try:
                return self._count(entity_id)
            except sqlite3.Error as e:
                raise StoreError(f"Failed to count chunks for {entity_id}: {e}") from e

    def _count(self, entity_id: str) -> int:
        row = self._conn.execute(
            f"SELECT COUNT(*) AS count FROM {TABLE_NAME} WHERE entity_id = ?",
            (entity_id,),
        ).fetchone()
        return int(row["count"]) if row else 0

    def has_any(self) -> bool:
        """True if at least one chunk is stored. A missing table counts as empty."""
        with self._lock:
            try:
                row = self._conn.execute(
                    f"SELECT COUNT(*) AS count FROM {TABLE_NAME}"
                ).fetchone()
            except sqlite3.OperationalError:
                return False
            except sqlite3.Error as e:
                raise StoreError(f"Failed to probe {TABLE_NAME}: {e}") from e
        return bool(row and row["count"] > 0)

    def entity_ids(self) -> set[str]:
        """Permalinks that currently have stored chunks."""
        with self._lock:
            try:
                rows = self._conn.execute(
                    f"SELECT DISTINCT entity_id FROM {TABLE_NAME}"
                ).fetchall()
            except sqlite3.Error as e:
                raise StoreError(f"Failed to list indexed notes: {e}") from e
        return {row["entity_id"] for row in rows}

    def search(
        self,
        query_vector: Sequence[float],
        limit: int,
        threshold: float,
    ) -> list[SearchResult]:
        """Cosine search over every chunk.

        Args:
            query_vector: Query embedding, must have EMBEDDING_DIM values
            limit: Maximum rows to return
            threshold: Minimum similarity (0-1); rows below it are dropped

        Returns:
            Chunk matches ordered by similarity, highest first
        """
        if len(query_vector) != EMBEDDING_DIM:
            raise EmbeddingDimensionError(EMBEDDING_DIM, len(query_vector), "Query")

        max_distance = 1.0 - threshold
        payload = vector_to_bytes(query_vector)

        with self._lock:
            try:
                rows = self._conn.execute(
                    f"""
                    SELECT * FROM (
                        SELECT
                            chunk_id,
                            entity_id,
                            chunk_index,
                            total_chunks,
                            chunk_text,
                            vec_distance_cosine(embedding, ?) AS distance
                        FROM {TABLE_NAME}
                    )
                    WHERE distance <= ?
                    ORDER BY distance ASC, chunk_id ASC
                    LIMIT ?
                    """,
                    (payload, max_distance, limit),
                ).fetchall()
            except sqlite3.Error as e:
                raise StoreError(f"Vector search failed: {e}") from e

        return [
            SearchResult(
                entity_id=row["entity_id"],
                chunk_id=row["chunk_id"],
                chunk_index=row["chunk_index"],
                total_chunks=row["total_chunks"],
                chunk_text=row["chunk_text"],
                distance=float(row["distance"]),
                similarity=1.0 - float(row["distance"]),
            )
            for row in rows
        ]
