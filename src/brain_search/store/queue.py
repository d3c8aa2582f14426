"""Embedding queue for notes that could not be embedded.

When the embedding server is down, notes are queued here and retried later
by ``Indexer.process_queue``. The queue lives in the same database file as
the embeddings and shares the store's connection.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass

from brain_search.errors import StoreError
from brain_search.store.vectors import VectorStore


CREATE_QUEUE_SQL = """
CREATE TABLE IF NOT EXISTS embedding_queue (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    note_id TEXT UNIQUE NOT NULL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    attempts INTEGER DEFAULT 0,
    last_error TEXT
)
"""


@dataclass
class QueueItem:
    """A note waiting for its embeddings."""
    id: int
    note_id: str
    created_at: str
    attempts: int
    last_error: str | None


class EmbeddingQueue:
    """Oldest-first queue of permalinks with attempt tracking."""

    def __init__(self, store: VectorStore) -> None:
        self._conn = store.connection
        self._lock = store.lock

    def ensure_schema(self) -> None:
        with self._lock:
            try:
                self._conn.execute(CREATE_QUEUE_SQL)
                self._conn.commit()
            except sqlite3.Error as e:
                raise StoreError(f"Failed to create embedding_queue: {e}") from e

    def enqueue(self, note_id: str) -> None:
        """Add a note, or reset its attempts if it is already queued."""
        self._write(
            """
            INSERT INTO embedding_queue (note_id) VALUES (?)
            ON CONFLICT(note_id) DO UPDATE SET
                created_at = CURRENT_TIMESTAMP, attempts = 0, last_error = NULL
            """,
            (note_id,),
        )

    def peek(self) -> QueueItem | None:
        """Oldest queued item, or None when the queue is empty."""
        with self._lock:
            try:
                row = self._conn.execute(
                    """
                    SELECT id, note_id, created_at, attempts, last_error
                    FROM embedding_queue
                    ORDER BY created_at ASC, id ASC
                    LIMIT 1
                    """
                ).fetchone()
            except sqlite3.Error as e:
                raise StoreError(f"Failed to read embedding_queue: {e}") from e
        if row is None:
            return None
        return QueueItem(
            id=row["id"],
            note_id=row["note_id"],
            created_at=row["created_at"],
            attempts=row["attempts"],
            last_error=row["last_error"],
        )

    def mark_processed(self, item_id: int) -> None:
        self._write("DELETE FROM embedding_queue WHERE id = ?", (item_id,))

    def increment_attempts(self, item_id: int, error: str) -> None:
        self._write(
            "UPDATE embedding_queue SET attempts = attempts + 1, last_error = ? WHERE id = ?",
            (error, item_id),
        )

    def size(self) -> int:
        with self._lock:
            try:
                row = self._conn.execute("SELECT COUNT(*) AS count FROM embedding_queue").fetchone()
            except sqlite3.Error as e:
                raise StoreError(f"Failed to count embedding_queue: {e}") from e
        return int(row["count"]) if row else 0

    def _write(self, sql: str, params: tuple) -> None:
        with self._lock:
            try:
                with self._conn:
                    self._conn.execute(sql, params)
            except sqlite3.Error as e:
                raise StoreError(f"Embedding queue update failed: {e}") from e
