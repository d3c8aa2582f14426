"""Filesystem locations used by brain-search."""

from __future__ import annotations

import os
from pathlib import Path


def get_brain_home() -> Path:
    """User-level directory for settings and logs (BRAIN_HOME or ~/.brain)."""
    home = os.environ.get("BRAIN_HOME")
    return Path(home) if home else Path.home() / ".brain"


def get_user_settings_path() -> Path:
    """Get user-level settings.json path."""
    return get_brain_home() / "settings.json"


def get_default_db_path() -> Path:
    """Shared database file of the knowledge service."""
    return Path.home() / ".basic-memory" / "memory.db"


def get_default_log_file() -> Path:
    return get_brain_home() / "logs" / "brain-search.log"


def get_default_notes_root() -> Path:
    return Path.home() / "memories"


def expand_path(value: str | Path) -> Path:
    """Expand ~ and environment variables in a configured path."""
    return Path(os.path.expandvars(str(value))).expanduser()
