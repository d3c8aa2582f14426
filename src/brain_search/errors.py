"""Error kinds shared by the store, embedding client, and search layers.

Each exception carries a machine-readable ``kind`` so the HTTP surface and
the CLI can report failures consistently. Tracebacks for unexpected CLI
failures go to an error log file via ``log_exception``.
"""

from __future__ import annotations

import traceback
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from brain_search.utils.paths import get_brain_home


class ErrorKind(str, Enum):
    """Machine-readable error categories."""
    VALIDATION = "VALIDATION"
    EMBEDDING_UNAVAILABLE = "EMBEDDING_UNAVAILABLE"
    EMBEDDING_DIMENSION_MISMATCH = "EMBEDDING_DIMENSION_MISMATCH"
    STORE_IO = "STORE_IO"
    NOTE_NOT_FOUND = "NOTE_NOT_FOUND"
    SEMANTIC_UNAVAILABLE = "SEMANTIC_UNAVAILABLE"


class BrainSearchError(Exception):
    """Base exception for brain-search failures."""

    kind: ErrorKind = ErrorKind.STORE_IO

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind.value, "message": self.message}
        if self.details:
            data["details"] = self.details
        return data


class SearchValidationError(BrainSearchError):
    """Bad arguments at the search boundary."""
    kind = ErrorKind.VALIDATION


class EmbeddingUnavailableError(BrainSearchError):
    """Embedding server unreachable, timed out, or returned garbage."""
    kind = ErrorKind.EMBEDDING_UNAVAILABLE


class EmbeddingDimensionError(BrainSearchError):
    """A vector did not have the expected number of dimensions."""
    kind = ErrorKind.EMBEDDING_DIMENSION_MISMATCH

    def __init__(self, expected: int, actual: int, context: str = "") -> None:
        prefix = f"{context}: " if context else ""
        super().__init__(
            f"{prefix}Expected {expected} dimensions, got {actual}",
            {"expected": expected, "actual": actual},
        )
        self.expected = expected
        self.actual = actual


class StoreError(BrainSearchError):
    """Low-level database failure."""
    kind = ErrorKind.STORE_IO


class NoteNotFoundError(BrainSearchError):
    """A note expected to exist could not be read."""
    kind = ErrorKind.NOTE_NOT_FOUND

    def __init__(self, identifier: str, project: str | None = None) -> None:
        where = f" in project {project!r}" if project else ""
        super().__init__(f"Note not found: {identifier}{where}", {"identifier": identifier})
        self.identifier = identifier


class NoteUnreadableError(NoteNotFoundError):
    """A note file exists but could not be read or decoded."""

    def __init__(self, identifier: str, reason: str) -> None:
        BrainSearchError.__init__(
            self,
            f"Could not read note {identifier}: {reason}",
            {"identifier": identifier, "reason": reason},
        )
        self.identifier = identifier


class SemanticUnavailableError(BrainSearchError):
    """Semantic mode requested while embeddings are disabled or empty."""
    kind = ErrorKind.SEMANTIC_UNAVAILABLE


def _error_log_path() -> Path:
    return get_brain_home() / "brain-search-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """Append the current traceback to the error log and return its path."""
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with log_path.open("a", encoding="utf-8") as f:
            f.write(f"\n{'=' * 60}\n[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write(f"\n{type(exc).__name__}: {exc}\n")
            f.write(traceback.format_exc())
    except OSError:
        pass  # the error log is best effort
    return log_path
