"""brain-search configuration management.

Loads and merges settings from defaults, the user-level settings.json, an
optional explicit settings file, and BRAIN_* environment variables.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from brain_search.store.schema import EMBEDDING_DIM
from brain_search.utils.paths import (
    get_default_db_path,
    get_default_log_file,
    get_default_notes_root,
    get_user_settings_path,
)


LOG_LEVELS = ("trace", "debug", "info", "warn", "error")
SEARCH_GUARD_MODES = ("warn", "enforce")

DEFAULT_SETTINGS: dict[str, Any] = {
    "embedding_base_url": "http://localhost:11434",
    "embedding_model": "nomic-embed-text",
    "embedding_timeout_ms": 60_000,
    "vector_dim": EMBEDDING_DIM,
    "db_path": str(get_default_db_path()),
    "notes_root": str(get_default_notes_root()),
    "default_project": None,
    "log_file": str(get_default_log_file()),
    "log_level": "info",
    "chunk_size": 900,
    "chunk_overlap": 100,
    "search_guard_mode": "warn",
}

# Environment variable -> (setting, type)
ENV_OVERRIDES: dict[str, tuple[str, type]] = {
    "BRAIN_EMBEDDING_BASE_URL": ("embedding_base_url", str),
    "OLLAMA_BASE_URL": ("embedding_base_url", str),
    "BRAIN_EMBEDDING_MODEL": ("embedding_model", str),
    "BRAIN_EMBEDDING_TIMEOUT_MS": ("embedding_timeout_ms", int),
    "BRAIN_DB_PATH": ("db_path", str),
    "BRAIN_NOTES_ROOT": ("notes_root", str),
    "BRAIN_PROJECT": ("default_project", str),
    "BRAIN_LOG_FILE": ("log_file", str),
    "BRAIN_LOG_LEVEL": ("log_level", str),
}


@dataclass
class BrainSettings:
    """Merged brain-search settings."""

    embedding_base_url: str = DEFAULT_SETTINGS["embedding_base_url"]
    embedding_model: str = DEFAULT_SETTINGS["embedding_model"]
    embedding_timeout_ms: int = DEFAULT_SETTINGS["embedding_timeout_ms"]
    vector_dim: int = EMBEDDING_DIM
    db_path: str = DEFAULT_SETTINGS["db_path"]
    notes_root: str = DEFAULT_SETTINGS["notes_root"]
    default_project: str | None = None
    log_file: str = DEFAULT_SETTINGS["log_file"]
    log_level: str = "info"
    chunk_size: int = 900
    chunk_overlap: int = 100
    search_guard_mode: str = "warn"

    @property
    def embedding_timeout_s(self) -> float:
        return self.embedding_timeout_ms / 1000.0

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def load_json_file(path: Path) -> dict[str, Any]:
    """Load a JSON file, returning empty dict if not found or invalid."""
    if not path.exists():
        return {}
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return {}


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge override into base, returning new dict.

    - Dicts are recursively merged
    - Lists are replaced (not appended)
    - Scalars are replaced
    """
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _env_overrides(environ: dict[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for var, (key, cast) in ENV_OVERRIDES.items():
        raw = environ.get(var)
        if raw is None or raw == "":
            continue
        try:
            overrides[key] = cast(raw)
        except ValueError:
            continue
    return overrides


def load_settings(
    settings_path: Path | None = None,
    environ: dict[str, str] | None = None,
) -> BrainSettings:
    """Load and merge settings.

    Precedence: environment > explicit settings file > user settings > defaults.
    """
    merged = dict(DEFAULT_SETTINGS)

    user_settings = load_json_file(get_user_settings_path())
    if user_settings:
        merged = deep_merge(merged, user_settings)

    if settings_path is not None:
        explicit = load_json_file(settings_path)
        if explicit:
            merged = deep_merge(merged, explicit)

    merged = deep_merge(merged, _env_overrides(dict(os.environ) if environ is None else environ))

    known = {f.name for f in fields(BrainSettings)}
    return BrainSettings(**{k: v for k, v in merged.items() if k in known})


def save_settings(settings: BrainSettings, path: Path) -> None:
    """Save settings to a JSON file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(settings.to_dict(), indent=2) + "\n",
        encoding="utf-8",
    )


def validate_settings(settings: BrainSettings) -> list[str]:
    """Validate settings, returning list of error messages (empty if valid)."""
    errors = []

    if not settings.embedding_base_url.startswith(("http://", "https://")):
        errors.append("embedding_base_url must be an http(s) URL")

    if not settings.embedding_model:
        errors.append("embedding_model is required")

    if not isinstance(settings.embedding_timeout_ms, int) or settings.embedding_timeout_ms < 1:
        errors.append("embedding_timeout_ms must be a positive integer")

    if settings.vector_dim != EMBEDDING_DIM:
        errors.append(f"vector_dim must be {EMBEDDING_DIM}")

    if not isinstance(settings.chunk_size, int) or settings.chunk_size < 1:
        errors.append("chunk_size must be a positive integer")
    elif not isinstance(settings.chunk_overlap, int) or not (
        0 <= settings.chunk_overlap < settings.chunk_size
    ):
        errors.append("chunk_overlap must be >= 0 and smaller than chunk_size")

    if settings.log_level not in LOG_LEVELS:
        errors.append(f"log_level must be one of {', '.join(LOG_LEVELS)}")

    if settings.search_guard_mode not in SEARCH_GUARD_MODES:
        errors.append("search_guard_mode must be 'warn' or 'enforce'")

    return errors
