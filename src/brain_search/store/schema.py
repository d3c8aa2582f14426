"""Row types and table layout for the chunked embedding store."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Sequence

import sqlite_vec


EMBEDDING_DIM = 768  # nomic-embed-text
TABLE_NAME = "brain_embeddings"

CHUNK_ID_SEPARATOR = "#chunk-"

CREATE_TABLE_SQL = f"""
CREATE VIRTUAL TABLE IF NOT EXISTS {TABLE_NAME} USING vec0(
    chunk_id TEXT PRIMARY KEY,
    embedding float[{EMBEDDING_DIM}] distance_metric=cosine,
    entity_id TEXT,
    chunk_index INTEGER,
    total_chunks INTEGER,
    +chunk_start INTEGER,
    +chunk_end INTEGER,
    +chunk_text TEXT
)
"""

# Native float32, the layout sqlite_vec.serialize_float32 writes
_VECTOR_FORMAT = f"{EMBEDDING_DIM}f"


def make_chunk_id(entity_id: str, chunk_index: int) -> str:
    """Build the store key for one chunk of a note."""
    return f"{entity_id}{CHUNK_ID_SEPARATOR}{chunk_index}"


def parse_chunk_id(chunk_id: str) -> tuple[str, int]:
    """Split a chunk id back into (entity_id, chunk_index).

    Splits on the last separator so permalinks that happen to contain
    ``#chunk-`` still round-trip.
    """
    entity_id, sep, index = chunk_id.rpartition(CHUNK_ID_SEPARATOR)
    if not sep or not index.isdigit():
        raise ValueError(f"Not a chunk id: {chunk_id!r}")
    return entity_id, int(index)


def vector_to_bytes(vector: Sequence[float]) -> bytes:
    """Pack a vector as the float32 blob vec0 stores."""
    if len(vector) != EMBEDDING_DIM:
        raise ValueError(f"Expected {EMBEDDING_DIM} dimensions, got {len(vector)}")
    return sqlite_vec.serialize_float32(list(vector))


def bytes_to_vector(raw: bytes) -> list[float]:
    """Decode a stored embedding blob into a list of floats."""
    if len(raw) != EMBEDDING_DIM * 4:
        raise ValueError(
            f"Expected {EMBEDDING_DIM * 4} bytes of float32 data, got {len(raw)}"
        )
    return list(struct.unpack(_VECTOR_FORMAT, raw))


@dataclass
class ChunkEmbeddingInput:
    """One chunk plus its vector, ready to be written."""
    chunk_index: int
    total_chunks: int
    chunk_start: int
    chunk_end: int
    chunk_text: str
    embedding: Sequence[float]


@dataclass
class ChunkedEmbedding:
    """A persisted chunk row."""
    chunk_id: str
    entity_id: str
    chunk_index: int
    total_chunks: int
    chunk_start: int
    chunk_end: int
    chunk_text: str
    embedding: list[float]


@dataclass
class SearchResult:
    """A chunk-level vector search match."""
    entity_id: str
    chunk_id: str
    chunk_index: int
    total_chunks: int
    chunk_text: str
    distance: float
    similarity: float
