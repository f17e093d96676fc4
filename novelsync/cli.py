"""Command-line interface: ingest books, build chunks, sync to Joplin."""

import argparse
import logging
from pathlib import Path

from novelsync.config import AppConfig, load_config
from novelsync.errors import NovelSyncError, RemoteError, remediation_message
from novelsync.ingestion.parser import BookParser, SourceTextProvider
from novelsync.jobs.controller import ChunkJobController
from novelsync.logging_setup import setup_logging
from novelsync.models.book import Book
from novelsync.remote.joplin import JoplinClient
from novelsync.storage.database import initialize_database
from novelsync.storage.repository import Repository
from novelsync.sync.reconciler import SyncReconciler
from novelsync.sync.service import SyncService

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="novelsync",
        description="Split Chinese novels into chapter-aligned chunks and sync them to Joplin",
    )
    parser.add_argument(
        "--config", default="config.yaml", help="Path to the YAML configuration file"
    )

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging output"
    )
    verbosity.add_argument(
        "--quiet", "-q", action="store_true",
        help="Suppress all output except warnings and errors",
    )

    subparsers = parser.add_subparsers(dest="command")
    subparsers.required = True

    subparsers.add_parser("init", help="Create the database and data directories")

    ingest_parser = subparsers.add_parser(
        "ingest", help="Register a book from a file (txt/md/html/pdf/docx) or a URL"
    )
    ingest_parser.add_argument("source", help="File path or http(s) URL")
    ingest_parser.add_argument("--title", default=None, help="Override the detected title")
    ingest_parser.add_argument("--author", default=None, help="Override the detected author")
    ingest_parser.add_argument(
        "--no-sync", action="store_true", help="Exclude the book from batch syncs"
    )

    build_cmd = subparsers.add_parser("build", help="Build a book's chunks")
    build_cmd.add_argument("book_id", type=int)
    build_cmd.add_argument(
        "--chunk-size", type=int, default=None, help="Character budget per chunk"
    )
    build_cmd.add_argument(
        "--no-wait", action="store_true",
        help=(
            "Print the job id as soon as the build is scheduled; "
            "the process still exits only after the build finishes"
        ),
    )

    status_parser = subparsers.add_parser("status", help="Show a book's chunk job status")
    status_parser.add_argument("book_id", type=int)

    rebuild_parser = subparsers.add_parser(
        "rebuild", help="Flag a book so its chunks are rebuilt on the next build or sync"
    )
    rebuild_parser.add_argument("book_id", type=int)

    sync_parser = subparsers.add_parser(
        "sync", help="Sync books to Joplin (all sync-enabled books by default)"
    )
    sync_parser.add_argument("book_ids", type=int, nargs="*")

    subparsers.add_parser("ping", help="Check the Joplin API connection")

    return parser


def _controller(
    config: AppConfig, repo: Repository, resume: bool = False
) -> ChunkJobController:
    """Create a controller; with ``resume``, reschedule jobs a previous run left behind."""
    controller = ChunkJobController(
        repo,
        SourceTextProvider(BookParser(request_timeout=config.remote.request_timeout)),
        config,
    )
    if resume:
        controller.resume_pending_jobs()
    return controller


def _joplin(config: AppConfig) -> JoplinClient:
    return JoplinClient(config.remote, config.remote_api_token)


def cmd_init(args: argparse.Namespace, config: AppConfig) -> int:
    Path(config.storage.books_dir).mkdir(parents=True, exist_ok=True)
    initialize_database(config.storage.sqlite_path)
    print(f"Database initialized at {config.storage.sqlite_path}")
    return 0


def cmd_ingest(args: argparse.Namespace, config: AppConfig) -> int:
    """Parse a source and register it as a book."""
    parser = BookParser(request_timeout=config.remote.request_timeout)
    source: str = args.source
    if source.startswith(("http://", "https://")):
        parsed = parser.parse_url(source)
    else:
        path = Path(source)
        if not path.exists():
            logger.error("File not found: %s", path)
            return 1
        parsed = parser.parse(path.resolve())

    if not parsed.raw_text.strip():
        logger.error("No text could be extracted from %s", source)
        return 1

    book = Book(
        title=args.title or parsed.title,
        author=args.author or parsed.author,
        category=parsed.category,
        description=parsed.description,
        source_path=parsed.source_path,
        file_format=parsed.file_format,
        sync_enabled=not args.no_sync,
    )
    book_id = Repository(config.storage.sqlite_path).add_book(book)
    logger.info("Ingested %r by %s as book %d", book.title, book.author or "-", book_id)
    print(f"{book_id}\t{book.title}\t{book.author}")
    return 0


def cmd_build(args: argparse.Namespace, config: AppConfig) -> int:
    """Build a book's chunks and list them.

    With ``--no-wait`` the job id is printed right away. The build runs on a
    non-daemon worker thread, so the process exits once it is done.
    """
    repo = Repository(config.storage.sqlite_path)
    controller = _controller(config, repo, resume=True)
    try:
        if args.no_wait:
            job_id = controller.start_job(args.book_id, args.chunk_size)
            print(f"Chunk job {job_id} started")
            return 0
        chunks = controller.ensure_ready(args.book_id, args.chunk_size)
    finally:
        controller.shutdown(wait=not args.no_wait)

    for chunk in chunks:
        print(
            f"#{chunk.chunk_number}/{chunk.total_chunks}\t"
            f"chapters {chunk.first_chapter}-{chunk.last_chapter}\t"
            f"lines {chunk.line_start}-{chunk.line_end}\t{len(chunk.content)} chars"
        )
    return 0


def cmd_status(args: argparse.Namespace, config: AppConfig) -> int:
    repo = Repository(config.storage.sqlite_path)
    controller = _controller(config, repo)
    try:
        progress = controller.get_status(args.book_id)
    finally:
        controller.shutdown()
    if progress is None:
        print(f"No chunk jobs for book {args.book_id}")
        return 0
    print(
        f"Job {progress.job_id}: {progress.status.value} "
        f"({progress.completed_items}/{progress.total_items}, {progress.percent}%)"
    )
    if progress.error_message:
        print(progress.error_message)
    return 0


def cmd_rebuild(args: argparse.Namespace, config: AppConfig) -> int:
    repo = Repository(config.storage.sqlite_path)
    controller = _controller(config, repo)
    try:
        controller.request_rebuild(args.book_id)
    finally:
        controller.shutdown()
    print(f"Book {args.book_id} will be rebuilt on the next build or sync")
    return 0


def cmd_sync(args: argparse.Namespace, config: AppConfig) -> int:
    repo = Repository(config.storage.sqlite_path)
    controller = _controller(config, repo, resume=True)
    try:
        client = _joplin(config)
        service = SyncService(
            repo, controller, SyncReconciler(repo, client, config), api_url=client.api_url
        )
        job_id = service.create_job(args.book_ids or None)
        job = service.run_job(job_id)
    finally:
        controller.shutdown()

    print(
        f"Sync job {job.id}: {job.status.value}, "
        f"{job.synced_books} book(s), {job.synced_chunks} chunk(s)"
    )
    for error in job.errors:
        print(f"  book {error['book_id']}: {error['error']}")
    if job.error_message:
        print(job.error_message)
    return 0 if job.status.is_success and not job.errors else 1


def cmd_ping(args: argparse.Namespace, config: AppConfig) -> int:
    client = _joplin(config)
    if client.ping():
        print(f"Joplin API reachable at {client.api_url}")
        return 0
    print(f"Joplin API not reachable at {client.api_url}")
    return 1


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()

    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else 1

    config = load_config(args.config)
    if args.verbose:
        config.logging.level = "DEBUG"
    elif args.quiet:
        config.logging.level = "WARNING"
    setup_logging(config.logging)

    if args.command != "init":
        initialize_database(config.storage.sqlite_path)

    command_handlers = {
        "init": cmd_init,
        "ingest": cmd_ingest,
        "build": cmd_build,
        "status": cmd_status,
        "rebuild": cmd_rebuild,
        "sync": cmd_sync,
        "ping": cmd_ping,
    }

    handler = command_handlers.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    try:
        return handler(args, config)
    except RemoteError as e:
        logger.error("%s", remediation_message(e, config.remote.api_url))
        return 1
    except (NovelSyncError, OSError, ValueError) as e:
        logger.error("%s", e)
        return 1
