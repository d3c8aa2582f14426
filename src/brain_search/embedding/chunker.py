"""Overlapping character-window chunking for note text.

Splits a note into fixed-size windows that overlap by a fixed number of
characters. The same text and parameters always produce the same chunks,
so re-indexing an unchanged note rewrites identical rows.
"""

from __future__ import annotations

from dataclasses import dataclass


DEFAULT_CHUNK_SIZE = 900
DEFAULT_CHUNK_OVERLAP = 100


@dataclass(frozen=True)
class TextChunk:
    """A contiguous slice of a note with its character span."""
    text: str
    start: int
    end: int
    chunk_index: int
    total_chunks: int


def chunk_text(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> list[TextChunk]:
    """Split text into overlapping chunks suitable for embedding.

    Args:
        text: Full note text
        chunk_size: Window length in characters
        chunk_overlap: Characters shared by consecutive windows

    Returns:
        Chunks in document order. Empty or whitespace-only text yields [].
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if not 0 <= chunk_overlap < chunk_size:
        raise ValueError("chunk_overlap must be >= 0 and smaller than chunk_size")

    if not text or not text.strip():
        return []

    spans = _window_spans(len(text), chunk_size, chunk_size - chunk_overlap)
    total = len(spans)
    return [
        TextChunk(
            text=text[start:end],
            start=start,
            end=end,
            chunk_index=index,
            total_chunks=total,
        )
        for index, (start, end) in enumerate(spans)
    ]


def _window_spans(length: int, size: int, step: int) -> list[tuple[int, int]]:
    """(start, end) pairs covering [0, length)."""
    spans: list[tuple[int, int]] = []
    start = 0
    while True:
        end = min(start + size, length)
        spans.append((start, end))
        if end >= length:
            return spans
        start += step

