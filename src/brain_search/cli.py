"""brain-search CLI.

Commands:
  search    Search notes
  index     Index one note
  reindex   Generate embeddings for a whole project
  forget    Drop the embeddings of a note
  health    Probe the note store and the embedding server
  queue     Show or process the offline embedding queue
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable

from brain_search.config import BrainSettings, load_settings, validate_settings
from brain_search.errors import BrainSearchError, log_exception
from brain_search.logging_config import configure_logging
from brain_search.runtime import Runtime


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="brain-search",
        description="Semantic search over a markdown knowledge base",
    )
    parser.add_argument("--settings", help="Extra settings.json to merge over the user settings")
    parser.add_argument("--project", help="Project to operate on")
    parser.add_argument("--json", action="store_true", help="Print machine-readable JSON")
    subparsers = parser.add_subparsers(dest="command")

    # search
    search_parser = subparsers.add_parser("search", help="Search notes")
    search_parser.add_argument("query", help="Search query")
    search_parser.add_argument("--limit", type=int, default=10, help="Maximum results (1-100)")
    search_parser.add_argument("--threshold", type=float, default=0.7, help="Minimum similarity (0-1)")
    search_parser.add_argument(
        "--mode", choices=["auto", "semantic", "keyword"], default="auto", help="Search mode"
    )
    search_parser.add_argument("--depth", type=int, default=0, help="Wikilink hops to follow (0-3)")
    search_parser.add_argument("--folder", action="append", dest="folders", help="Restrict to a folder")
    search_parser.add_argument("--full", action="store_true", help="Include note text in results")

    # index
    index_parser = subparsers.add_parser("index", help="Index one note")
    index_parser.add_argument("permalink", help="Note permalink")

    # reindex
    reindex_parser = subparsers.add_parser("reindex", help="Generate embeddings for a project")
    reindex_parser.add_argument("--force", action="store_true", help="Re-embed notes that already have embeddings")
    reindex_parser.add_argument("--limit", type=int, default=100, help="Maximum notes, 0 for all")

    # forget
    forget_parser = subparsers.add_parser("forget", help="Drop the embeddings of a note")
    forget_parser.add_argument("permalink", help="Note permalink")

    # health
    subparsers.add_parser("health", help="Probe the note store and the embedding server")

    # queue
    queue_parser = subparsers.add_parser("queue", help="Show or process the embedding queue")
    queue_parser.add_argument("action", choices=["status", "process"], nargs="?", default="status")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    commands: dict[str, Callable[[Runtime, argparse.Namespace], Awaitable[Any]]] = {
        "search": cmd_search,
        "index": cmd_index,
        "reindex": cmd_reindex,
        "forget": cmd_forget,
        "health": cmd_health,
        "queue": cmd_queue,
    }

    settings = load_settings(Path(args.settings) if args.settings else None)
    if args.project:
        settings.default_project = args.project
    problems = validate_settings(settings)
    if problems:
        for problem in problems:
            print(f"Invalid setting: {problem}", file=sys.stderr)
        return 2
    configure_logging(settings.log_file, settings.log_level)

    try:
        result = asyncio.run(_run(settings, args, commands[args.command]))
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130
    except BrainSearchError as e:
        log_path = log_exception(e, f"brain-search {args.command}")
        print(f"Error: {e}", file=sys.stderr)
        print(f"Details: {log_path}", file=sys.stderr)
        return 1

    _print_result(result, as_json=args.json)
    return 0


async def _run(
    settings: BrainSettings,
    args: argparse.Namespace,
    command: Callable[[Runtime, argparse.Namespace], Awaitable[Any]],
) -> Any:
    # Availability only matters to search and health
    runtime = await Runtime.create(settings, probe=args.command in ("search", "health"))
    try:
        return await command(runtime, args)
    finally:
        await runtime.aclose()


async def cmd_search(runtime: Runtime, args: argparse.Namespace) -> list[dict[str, Any]]:
    """Search notes."""
    hits = await runtime.search_service.search({
        "query": args.query,
        "limit": args.limit,
        "threshold": args.threshold,
        "mode": args.mode,
        "depth": args.depth,
        "project": args.project,
        "folders": args.folders,
        "full_context": args.full,
    })
    return [h.model_dump(mode="json", exclude_none=True) for h in hits]


async def cmd_index(runtime: Runtime, args: argparse.Namespace) -> dict[str, Any]:
    """Index one note."""
    outcome = await runtime.indexer.index_or_enqueue(args.permalink, args.project)
    return {"permalink": outcome.permalink, "status": outcome.status, "chunks": outcome.chunks}


async def cmd_reindex(runtime: Runtime, args: argparse.Namespace) -> dict[str, Any]:
    """Generate embeddings for a project."""
    stats = await runtime.indexer.index_project(args.project, force=args.force, limit=args.limit)
    return stats.to_dict()


async def cmd_forget(runtime: Runtime, args: argparse.Namespace) -> dict[str, Any]:
    """Drop the embeddings of a note."""
    removed = await runtime.indexer.remove_note(args.permalink)
    return {"permalink": args.permalink, "removed": removed}


async def cmd_health(runtime: Runtime, args: argparse.Namespace) -> dict[str, Any]:
    """Probe services and report the index state."""
    result: dict[str, Any] = runtime.availability.to_dict()
    result["embeddings_indexed"] = await asyncio.to_thread(runtime.store.has_any)
    result["queue_size"] = await asyncio.to_thread(runtime.queue.size)
    if runtime.availability.embedding_enabled:
        result["models"] = await runtime.client.list_models()
    return result


async def cmd_queue(runtime: Runtime, args: argparse.Namespace) -> dict[str, Any]:
    """Show or drain the embedding queue."""
    if args.action == "process":
        stats = await runtime.indexer.process_queue(args.project)
        return stats.to_dict()
    return {"queue_size": await asyncio.to_thread(runtime.queue.size)}


def _print_result(result: Any, as_json: bool = False) -> None:
    if as_json:
        print(json.dumps(result, indent=2))
        return

    if isinstance(result, list):
        if not result:
            print("No results.")
        for hit in result:
            depth = f" depth={hit['depth']}" if hit.get("depth") else ""
            print(f"[{hit['source']}{depth}] {hit['title']} ({hit['permalink']})  {hit['similarity_score']:.3f}")
            if hit.get("snippet"):
                print(f"    {hit['snippet'][:120]}")
        return

    for key, value in result.items():
        print(f"{key}: {value}")


if __name__ == "__main__":
    sys.exit(main())
