"""Command-line interface for Archive Wisdom.

This module provides the main entry point for the CLI application.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from dataclasses import dataclass
from pathlib import Path

import structlog

from archive_wisdom import __version__
from archive_wisdom.ai import get_ai_provider
from archive_wisdom.config import Settings, get_settings
from archive_wisdom.exceptions import ArchiveNotFoundError, ArchiveWisdomError
from archive_wisdom.index import ArchiveRepository
from archive_wisdom.models import Archive, SearchResult, Wisdom
from archive_wisdom.sync import IngestionOrchestrator, SyncDispatcher
from archive_wisdom.vector import VectorStore, vectorize_missing
from archive_wisdom.wisdom import WisdomGenerator

logger = structlog.get_logger()


@dataclass
class _Services:
    settings: Settings
    repository: ArchiveRepository
    store: VectorStore
    orchestrator: IngestionOrchestrator


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="archive-wisdom", description="Archive Wisdom")
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="Path to the SQLite database (default: settings database_path)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # Archive commands
    archive_parser = subparsers.add_parser("archive", help="Manage mailing list archives")
    archive_sub = archive_parser.add_subparsers(dest="archive_command", required=True)

    add_parser = archive_sub.add_parser("add", help="Register a remote archive index URL")
    add_parser.add_argument("url", help="URL of the archive index page")
    add_parser.add_argument("--name", required=True, help="Display name")
    add_parser.add_argument("--sync", action="store_true", help="Sync right after adding")

    archive_sub.add_parser("list", help="List archives")

    sync_parser = archive_sub.add_parser("sync", help="Fetch and ingest every month of an archive")
    sync_parser.add_argument("archive", help="Archive id or name")
    sync_parser.add_argument(
        "--watch",
        action="store_true",
        help="Run in a background thread and print progress while it runs",
    )

    upload_parser = archive_sub.add_parser("upload", help="Ingest a local mbox file")
    upload_parser.add_argument("path", type=Path, help="Path to the mbox file")
    upload_parser.add_argument("--name", required=True, help="Archive name")

    delete_parser = archive_sub.add_parser("delete", help="Delete an archive with its messages")
    delete_parser.add_argument("archive", help="Archive id or name")

    stats_parser = archive_sub.add_parser("stats", help="Show message and vector counts")
    stats_parser.add_argument("archive", nargs="?", default=None, help="Archive id or name")

    # Query commands
    search_parser = subparsers.add_parser("search", help="Semantic search over messages")
    search_parser.add_argument("query", help="Free-text query")
    search_parser.add_argument("--limit", type=int, default=10, help="Max results")
    search_parser.add_argument(
        "--keyword",
        action="store_true",
        help="Use full-text keyword search instead of embeddings",
    )

    topics_parser = subparsers.add_parser("topics", help="Group messages under fixed topics")
    topics_parser.add_argument("--archive", default=None, help="Only messages of this archive")
    topics_parser.add_argument("--count", type=int, default=10, help="Number of topics")

    similar_parser = subparsers.add_parser("similar", help="Messages similar to a stored message")
    similar_parser.add_argument("message_id", help="Message identity (Message-ID)")
    similar_parser.add_argument("--limit", type=int, default=5, help="Max results")

    related_parser = subparsers.add_parser(
        "related",
        help="Messages from distinct threads related to a topic",
    )
    related_parser.add_argument("topic", help="Topic phrase")
    related_parser.add_argument("--limit", type=int, default=5, help="Max results")

    # Wisdom commands
    wisdom_parser = subparsers.add_parser("wisdom", help="Generate and browse wisdom")
    wisdom_sub = wisdom_parser.add_subparsers(dest="wisdom_command", required=True)

    generate_parser = wisdom_sub.add_parser("generate", help="Generate wisdom from archived messages")
    generate_parser.add_argument("--topic", default=None, help="Topic phrase to draw from")
    generate_parser.add_argument(
        "--message",
        dest="message_ids",
        type=int,
        action="append",
        default=None,
        help="Message row id to draw from (repeatable)",
    )
    generate_parser.add_argument("--max-messages", type=int, default=3, help="Max source messages")

    wisdom_list_parser = wisdom_sub.add_parser("list", help="List stored wisdom")
    wisdom_list_parser.add_argument("--limit", type=int, default=20, help="Max entries")

    wisdom_show_parser = wisdom_sub.add_parser("show", help="Show one wisdom entry")
    wisdom_show_parser.add_argument("wisdom_id", help="Wisdom id")

    wisdom_search_parser = wisdom_sub.add_parser("search", help="Semantic search over stored wisdom")
    wisdom_search_parser.add_argument("query", help="Free-text query")
    wisdom_search_parser.add_argument("--limit", type=int, default=10, help="Max results")

    subparsers.add_parser("status", help="Show provider readiness and vector counts")

    vectorize_parser = subparsers.add_parser("vectorize", help="Embed messages missing vectors")
    vectorize_parser.add_argument("--limit", type=int, default=None, help="Max vectors to create")

    return parser


def _build_services(args: argparse.Namespace) -> _Services:
    settings = get_settings()
    if args.db is not None:
        settings = settings.model_copy(update={"database_path": args.db})

    repository = ArchiveRepository(settings.database_path)
    repository.initialize()
    store = VectorStore(repository, get_ai_provider(settings), settings)
    orchestrator = IngestionOrchestrator(repository, store, settings=settings)
    return _Services(settings=settings, repository=repository, store=store, orchestrator=orchestrator)


def _find_archive(repository: ArchiveRepository, key: str) -> Archive:
    archive = repository.get_archive(key) or repository.find_archive_by_name(key)
    if archive is None:
        raise ArchiveNotFoundError(key)
    return archive


def _print_results(results: list[SearchResult]) -> None:
    if not results:
        print("No results.")
        return
    for r in results:
        score = f"{r.similarity:.3f}" if r.similarity is not None else "-"
        print(f"{score}\t{r.metadata.date.date().isoformat()}\t{r.metadata.author}\t{r.metadata.subject}")


def _cmd_archive_add(args: argparse.Namespace, services: _Services) -> int:
    archive = services.orchestrator.resolve_archive(args.url, args.name)
    print(f"Archive {archive.name} ({archive.id}) -> {archive.url}")
    if args.sync:
        report = asyncio.run(services.orchestrator.sync_remote(archive.id))
        print(
            f"Synced {report.months} months: {report.messages} messages, "
            f"{report.vectorized} vectorized, {report.failed} failed"
        )
    return 0


def _cmd_archive_list(args: argparse.Namespace, services: _Services) -> int:
    archives = services.repository.list_archives()
    if not archives:
        print("No archives.")
        return 0
    for a in archives:
        synced = a.last_synced_at.isoformat() if a.last_synced_at else "never"
        count = services.repository.count_messages(a.id)
        print(f"{a.id}\t{a.name}\t{count} messages\tsynced: {synced}\t{a.url}")
    return 0


def _cmd_archive_sync(args: argparse.Namespace, services: _Services) -> int:
    archive = _find_archive(services.repository, args.archive)

    if not args.watch:
        report = asyncio.run(services.orchestrator.sync_remote(archive.id))
        print(
            f"Synced {report.months} months: {report.messages} messages, "
            f"{report.vectorized} vectorized, {report.failed} failed"
        )
        return 0

    dispatcher = SyncDispatcher(services.orchestrator)
    thread = dispatcher.start_remote_sync(archive.id)
    last = None
    while thread.is_alive():
        status = dispatcher.tracker.get(archive.id)
        if status and status.progress:
            line = f"{status.progress.current}/{status.progress.total} {status.progress.current_label or ''}"
            if line != last:
                print(line)
                last = line
        time.sleep(1)
    thread.join()

    stats = services.repository.archive_stats(archive.id)
    print(f"{archive.name}: {stats.message_count} messages, {stats.vector_count} vectors")
    return 0


def _cmd_archive_upload(args: argparse.Namespace, services: _Services) -> int:
    data = args.path.read_bytes()
    report = asyncio.run(services.orchestrator.upload(args.name, data, args.path.name))
    print(
        f"Uploaded {args.path.name} as {args.name}: {report.messages} messages, "
        f"{report.vectorized} vectorized, {report.failed} failed"
    )
    return 0


def _cmd_archive_delete(args: argparse.Namespace, services: _Services) -> int:
    archive = _find_archive(services.repository, args.archive)
    services.orchestrator.delete_archive(archive.id)
    print(f"Deleted archive {archive.name} ({archive.id})")
    return 0


def _cmd_archive_stats(args: argparse.Namespace, services: _Services) -> int:
    if args.archive:
        archives = [_find_archive(services.repository, args.archive)]
    else:
        archives = services.repository.list_archives()

    for archive in archives:
        stats = services.repository.archive_stats(archive.id)
        print(f"{archive.name}:")
        print(f"  Messages: {stats.message_count}")
        print(f"  Vectors: {stats.vector_count}")
        if stats.min_date and stats.max_date:
            print(f"  Date range: {stats.min_date.date().isoformat()} -> {stats.max_date.date().isoformat()}")

    print(f"Total messages: {services.repository.count_messages()}")
    return 0


def _cmd_search(args: argparse.Namespace, services: _Services) -> int:
    if args.keyword:
        for m in services.repository.keyword_search(args.query, limit=args.limit):
            print(f"{m.date.date().isoformat()}\t{m.author}\t{m.subject}")
        return 0

    results = asyncio.run(services.store.search(args.query, args.limit))
    _print_results(results)
    return 0


def _cmd_topics(args: argparse.Namespace, services: _Services) -> int:
    archive_id = _find_archive(services.repository, args.archive).id if args.archive else None
    clusters = asyncio.run(services.store.cluster(archive_id=archive_id, topic_count=args.count))
    if not clusters:
        print("No topics found.")
        return 0
    for cluster in clusters:
        print(f"{cluster.topic} ({len(cluster.messages)} messages)")
        for r in cluster.messages[:3]:
            print(f"  - {r.metadata.subject}")
    return 0


def _cmd_similar(args: argparse.Namespace, services: _Services) -> int:
    results = asyncio.run(services.store.similar_to_message(args.message_id, args.limit))
    if results is None:
        print(f"No vector stored for message {args.message_id}")
        return 1
    _print_results(results)
    return 0


def _cmd_related(args: argparse.Namespace, services: _Services) -> int:
    results = asyncio.run(services.store.find_related_for_wisdom(args.topic, args.limit))
    _print_results(results)
    return 0


def _print_wisdom(wisdom: Wisdom) -> None:
    print(f"{wisdom.id}\t{wisdom.created_at.date().isoformat()}\t{wisdom.prompt}\t{wisdom.content}")


def _cmd_wisdom_generate(args: argparse.Namespace, services: _Services) -> int:
    generator = WisdomGenerator(services.repository, services.store, settings=services.settings)
    wisdom = asyncio.run(
        generator.generate(
            topic=args.topic,
            message_ids=args.message_ids,
            max_messages=args.max_messages,
        )
    )
    print(wisdom.content)
    print(f"({wisdom.id}, from {len(wisdom.message_ids)} messages)")
    return 0


def _cmd_wisdom_list(args: argparse.Namespace, services: _Services) -> int:
    entries = services.repository.list_wisdom(limit=args.limit)
    if not entries:
        print("No wisdom yet.")
        return 0
    for wisdom in entries:
        _print_wisdom(wisdom)
    return 0


def _cmd_wisdom_show(args: argparse.Namespace, services: _Services) -> int:
    wisdom = services.repository.get_wisdom(args.wisdom_id)
    if wisdom is None:
        print(f"No wisdom with id {args.wisdom_id}")
        return 1
    print(wisdom.content)
    print(f"Topic: {wisdom.prompt}")
    for message in services.repository.get_messages(wisdom.message_ids):
        print(f"  - {message.subject} ({message.author})")
    return 0


def _cmd_wisdom_search(args: argparse.Namespace, services: _Services) -> int:
    results = asyncio.run(services.store.search_wisdom(args.query, args.limit))
    if not results:
        print("No results.")
        return 0
    for r in results:
        print(f"{r.similarity:.3f}\t{r.wisdom_id}\t{r.content}")
    return 0


def _cmd_status(args: argparse.Namespace, services: _Services) -> int:
    stats = services.store.stats()
    print(f"Provider: {services.settings.ai_provider} ({'ready' if stats.is_ready else 'not ready'})")
    print(f"Message vectors: {stats.message_count}")
    print(f"Wisdom vectors: {stats.wisdom_count}")
    print(f"Messages without vectors: {services.repository.count_messages_without_vectors()}")

    running = services.orchestrator.tracker.all()
    if not running:
        print("No syncs running.")
    for archive_id, status in running.items():
        progress = ""
        if status.progress:
            progress = f" {status.progress.current}/{status.progress.total}"
        print(f"Sync running: {archive_id} since {status.started_at.isoformat()}{progress}")
    return 0


def _cmd_vectorize(args: argparse.Namespace, services: _Services) -> int:
    processed = asyncio.run(
        vectorize_missing(services.repository, services.store, services.settings, limit=args.limit)
    )
    print(f"Vectorized {processed} messages")
    return 0


_WISDOM_COMMANDS = {
    "generate": _cmd_wisdom_generate,
    "list": _cmd_wisdom_list,
    "show": _cmd_wisdom_show,
    "search": _cmd_wisdom_search,
}

_ARCHIVE_COMMANDS = {
    "add": _cmd_archive_add,
    "list": _cmd_archive_list,
    "sync": _cmd_archive_sync,
    "upload": _cmd_archive_upload,
    "delete": _cmd_archive_delete,
    "stats": _cmd_archive_stats,
}

_COMMANDS = {
    "search": _cmd_search,
    "topics": _cmd_topics,
    "similar": _cmd_similar,
    "related": _cmd_related,
    "status": _cmd_status,
    "vectorize": _cmd_vectorize,
}


def main(args: list[str] | None = None) -> int:
    """Main entry point for the Archive Wisdom CLI.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    if args is None:
        args = sys.argv[1:]

    settings = get_settings()

    # Configure logging; stdout is reserved for command output
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.log_level.upper())
        ),
        logger_factory=lambda *_: structlog.PrintLogger(sys.stderr),
    )

    logger.info("archive_wisdom_started", version=__version__, debug=settings.debug)

    parser = _build_parser()
    parsed = parser.parse_args(args)

    if parsed.command == "archive":
        handler = _ARCHIVE_COMMANDS.get(parsed.archive_command)
    elif parsed.command == "wisdom":
        handler = _WISDOM_COMMANDS.get(parsed.wisdom_command)
    else:
        handler = _COMMANDS.get(parsed.command)

    if handler is None:
        logger.error("unknown_command", command=parsed.command)
        return 2

    try:
        return handler(parsed, _build_services(parsed))
    except ArchiveWisdomError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
