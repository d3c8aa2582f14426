"""Uvicorn startup for brain-search."""

from __future__ import annotations

import argparse
import os

import uvicorn


def main() -> None:
    """Start the brain-search server."""
    parser = argparse.ArgumentParser(description="brain-search server")
    parser.add_argument("--host", default="127.0.0.1", help="Bind host (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8742, help="Bind port (default: 8742)")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    parser.add_argument("--db", default=None, help="Database file (overrides settings)")
    parser.add_argument("--notes", default=None, help="Notes root directory (overrides settings)")
    parser.add_argument("--project", default=None, help="Default project (overrides settings)")
    args = parser.parse_args()

    # Pass overrides to the factory through the environment
    if args.db:
        os.environ["BRAIN_DB_PATH"] = args.db
    if args.notes:
        os.environ["BRAIN_NOTES_ROOT"] = args.notes
    if args.project:
        os.environ["BRAIN_PROJECT"] = args.project

    uvicorn.run(
        "brain_search.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="warning",
    )


if __name__ == "__main__":
    main()
