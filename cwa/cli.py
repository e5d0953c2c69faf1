"""Command-line entry point for the memory engine."""

from __future__ import annotations

import argparse
import os
import sys
from dataclasses import replace
from typing import Callable, Mapping, Optional, Sequence

from cwa import __version__
from cwa.core.config import Config
from cwa.core.exceptions import CwaError
from cwa.core.logger import get_logger, project_context, setup_logging
from cwa.memory.collections import DEFAULT_COLLECTIONS
from cwa.memory.factory import MemoryEngine, create_memory_engine
from cwa.memory.hybrid_search import FusionAlgo
from cwa.memory.records import MemoryType, ObservationType

CommandHandler = Callable[[MemoryEngine, argparse.Namespace], None]

_PROJECT_ENV = "CWA_PROJECT_ID"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cwa-memory",
        description="Semantic project memory with hybrid retrieval",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  cwa-memory add "Use PostgreSQL for persistence" --type decision
  cwa-memory observe "Fixed token refresh race" --type bugfix --fact "refresh is now locked"
  cwa-memory search "authentication"
  cwa-memory compact --decay 0.9 --min-confidence 0.3
        """,
    )
    parser.add_argument(
        "--project",
        default=os.getenv(_PROJECT_ENV, "default"),
        help=f"Project id (defaults to ${_PROJECT_ENV} or 'default')",
    )
    parser.add_argument("--env-file", help="Path to a .env file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"cwa-memory {__version__}")

    commands = parser.add_subparsers(dest="command", required=True)

    add = commands.add_parser("add", help="Store a memory")
    add.add_argument("content")
    add.add_argument("--type", default=MemoryType.FACT.value, choices=[t.value for t in MemoryType])
    add.add_argument("--context")

    observe = commands.add_parser("observe", help="Record an observation")
    observe.add_argument("title")
    observe.add_argument("--type", required=True, choices=[t.value for t in ObservationType])
    observe.add_argument("--narrative")
    observe.add_argument("--fact", action="append", default=[], dest="facts")
    observe.add_argument("--concept", action="append", default=[], dest="concepts")
    observe.add_argument("--file-modified", action="append", default=[], dest="files_modified")
    observe.add_argument("--file-read", action="append", default=[], dest="files_read")
    observe.add_argument("--session")
    observe.add_argument("--confidence", type=float, default=0.8)

    search = commands.add_parser("search", help="Hybrid search across collections")
    search.add_argument("query")
    search.add_argument("--top-k", type=int, default=10)
    search.add_argument(
        "--collection",
        action="append",
        dest="collections",
        choices=list(DEFAULT_COLLECTIONS),
        help="Restrict to a collection (repeatable)",
    )
    search.add_argument("--fusion", default=FusionAlgo.RRF.value, choices=[a.value for a in FusionAlgo])
    search.add_argument("--all-projects", action="store_true", help="Do not filter by project")

    timeline = commands.add_parser("timeline", help="Show recent observations")
    timeline.add_argument("--days", type=int, default=7)
    timeline.add_argument("--limit", type=int, default=50)

    summarize = commands.add_parser("summarize", help="Summarize recent observations")
    summarize.add_argument("--count", type=int, default=20)

    compact = commands.add_parser("compact", help="Remove low-confidence records")
    compact.add_argument("--min-confidence", type=float, default=0.3)
    compact.add_argument("--decay", type=float, help="Decay observations by this factor first")
    compact.add_argument("--keep-top", type=int, help="Remove at most this many records")

    commands.add_parser("orphans", help="List rows whose vector is missing")

    return parser


def _cmd_add(engine: MemoryEngine, args: argparse.Namespace) -> None:
    result = engine.memories.add_memory(args.project, args.content, args.type, args.context)
    print(f"Memory added: {result.id} (dim {result.embedding_dim})")


def _cmd_observe(engine: MemoryEngine, args: argparse.Namespace) -> None:
    result = engine.observations.add_observation(
        args.project,
        args.type,
        args.title,
        narrative=args.narrative,
        facts=args.facts,
        concepts=args.concepts,
        files_modified=args.files_modified,
        files_read=args.files_read,
        session_id=args.session,
        confidence=args.confidence,
    )
    print(f"Observation added: {result.id} (dim {result.embedding_dim})")


def _cmd_search(engine: MemoryEngine, args: argparse.Namespace) -> None:
    outcome = engine.search.search_with_status(
        args.query,
        args.top_k,
        collections=args.collections,
        project_id=None if args.all_projects else args.project,
        fusion=FusionAlgo(args.fusion),
    )
    if not outcome.results:
        print("No results.")
    for rank, result in enumerate(outcome.results, 1):
        text = result.payload.get("title") or result.payload.get("content") or result.payload.get("name") or ""
        print(f"{rank:>2}. [{result.collection}] {result.score:.4f}  {text}")
    for collection, reason in outcome.failed_collections.items():
        print(f"warning: {collection} unavailable ({reason})", file=sys.stderr)


def _cmd_timeline(engine: MemoryEngine, args: argparse.Namespace) -> None:
    rows = engine.timeline.get_timeline(args.project, days=args.days, limit=args.limit)
    if not rows:
        print("No observations.")
    for row in rows:
        print(
            f"{row.created_at:%Y-%m-%d %H:%M}  {row.id[:8]}  "
            f"[{row.obs_type.value.upper()}] {row.title} ({row.confidence:.2f})"
        )


def _cmd_summarize(engine: MemoryEngine, args: argparse.Namespace) -> None:
    summary = engine.timeline.summarize(args.project, args.count)
    if summary is None:
        print("No observations to summarize.")
        return
    print(f"Summary created: {summary.id}")
    print(f"  {summary.observations_count} observations summarized")
    if summary.key_facts:
        print(f"  {len(summary.key_facts)} key facts extracted")
    print()
    print(summary.content)


def _cmd_compact(engine: MemoryEngine, args: argparse.Namespace) -> None:
    if args.decay is not None:
        touched = engine.lifecycle.decay(args.project, args.decay)
        print(f"Decayed {touched} observations by {args.decay}")
    report = engine.lifecycle.compact(args.project, args.min_confidence, keep_top=args.keep_top)
    print(
        f"Removed {len(report.removed_memories)} memories and "
        f"{len(report.removed_observations)} observations"
    )
    for outcome in report.failed_deletions:
        print(f"warning: vector {outcome.id} in {outcome.collection} not deleted: {outcome.error}", file=sys.stderr)


def _cmd_orphans(engine: MemoryEngine, args: argparse.Namespace) -> None:
    orphans = engine.lifecycle.find_orphans(args.project)
    if not orphans:
        print("No orphans.")
    for orphan in orphans:
        print(f"{orphan.kind:<11} {orphan.id}  missing from {orphan.collection}")


_COMMANDS: Mapping[str, CommandHandler] = {
    "add": _cmd_add,
    "observe": _cmd_observe,
    "search": _cmd_search,
    "timeline": _cmd_timeline,
    "summarize": _cmd_summarize,
    "compact": _cmd_compact,
    "orphans": _cmd_orphans,
}


def main(
    argv: Optional[Sequence[str]] = None,
    *,
    engine_factory: Callable[[Config], MemoryEngine] = create_memory_engine,
) -> int:
    """Parse arguments, build the engine, and run one command."""
    args = _build_parser().parse_args(argv)

    try:
        config = Config.load(args.env_file)
    except CwaError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1

    if args.debug:
        config = replace(config, log_level="DEBUG")
    setup_logging(config.log_level)
    logger = get_logger("cli")

    try:
        with project_context(args.project):
            engine = engine_factory(config)
            _COMMANDS[args.command](engine, args)
    except (CwaError, ValueError) as exc:
        logger.debug("Command '%s' failed", args.command, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
