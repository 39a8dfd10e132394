"""
Command line tool for content ingestion.

Usage:
    # Ingest all sources
    redzone-ingest run

    # Ingest one source
    redzone-ingest run --source espn-fantasy-football

    # Show module status and the next scheduled run
    redzone-ingest status

    # List configured sources with stored counts
    redzone-ingest sources

    # Delete all stored content
    redzone-ingest wipe --yes

    # Run the API server
    redzone-ingest serve
"""

import argparse
import asyncio
import json
import sys
import time

import structlog

from redzone.config import Settings, get_settings
from redzone.core.exceptions import RedzoneError
from redzone.core.logging import configure_logging
from redzone.core.sources import build_registry
from redzone.models.database import Database
from redzone.services.ingestion.orchestrator import IngestionOrchestrator, RunSummary
from redzone.services.scheduler import next_run_time
from redzone.storage.content_store import ContentStore

logger = structlog.get_logger(__name__)


def create_orchestrator(settings: Settings) -> IngestionOrchestrator:
    """Create an orchestrator wired to the configured database and sources."""
    store = ContentStore(Database(settings.database_url))
    return IngestionOrchestrator(build_registry(settings), store, settings=settings)


async def cmd_run(args, settings: Settings) -> int:
    """Ingest content from one or all sources."""
    orchestrator = create_orchestrator(settings)
    start = time.monotonic()

    try:
        if args.source:
            print(f"Ingesting source: {args.source}")
            outcomes = [await orchestrator.ingest_source(args.source)]
        else:
            print(f"Ingesting {len(orchestrator.modules)} sources...")
            outcomes = await orchestrator.ingest_all()
    except RedzoneError as e:
        print(f"Ingestion failed: {e}", file=sys.stderr)
        return 1
    finally:
        await orchestrator.store.database.close()

    summary = RunSummary.from_outcomes(outcomes, time.monotonic() - start)

    if args.json:
        print(json.dumps(
            {"summary": summary.to_dict(), "results": [o.to_dict() for o in outcomes]},
            indent=2,
        ))
        return 0 if summary.failed == 0 else 1

    print("\n" + "=" * 60)
    print("INGESTION RESULTS")
    print("=" * 60)

    for outcome in outcomes:
        print(outcome)
        for error in outcome.errors:
            print(f"    {error}")

    print("-" * 60)
    print(
        f"Sources: {summary.successful}/{summary.total_sources} succeeded, "
        f"items processed: {summary.total_processed}, saved: {summary.total_saved}"
    )

    return 0 if summary.failed == 0 else 1


async def cmd_status(args, settings: Settings) -> int:
    """Show module status."""
    orchestrator = create_orchestrator(settings)
    modules = orchestrator.get_module_status()

    print("\n" + "=" * 50)
    print("INGESTION MODULES")
    print("=" * 50)

    for module in modules:
        status = "✓ loaded" if module.enabled else "✗ not loaded"
        print(f"  {module.source_id} ({module.kind.value}): {status}")

    next_run = next_run_time(settings.schedule_cron)
    print()
    print(f"Schedule: {settings.schedule_cron} (UTC)")
    print(f"Next run: {next_run.isoformat() if next_run else 'never'}")

    return 0 if all(m.enabled for m in modules) else 1


async def cmd_sources(args, settings: Settings) -> int:
    """List configured sources and how many items each has stored."""
    registry = build_registry(settings)
    database = Database(settings.database_url)
    counts: dict[str, int] = {}

    if database.is_configured:
        try:
            counts = await ContentStore(database).count_by_source()
        except RedzoneError as e:
            print(f"Could not read source counts: {e}", file=sys.stderr)
        finally:
            await database.close()

    print("\n" + "=" * 50)
    print("SOURCE CONFIGURATION")
    print("=" * 50)
    print(f"Total sources: {len(registry)}")
    print()

    for source in registry.all():
        print(f"  {source.name}")
        print(f"    Id: {source.id}")
        print(f"    Type: {source.content_kind.value}")
        print(f"    Enabled: {source.enabled}")
        print(f"    Endpoint: {source.endpoint or '-'}")
        if database.is_configured:
            print(f"    Stored items: {counts.get(source.name, 0)}")
        print()

    return 0


async def cmd_wipe(args, settings: Settings) -> int:
    """Delete every stored content document."""
    if not args.yes:
        print("Refusing to wipe without --yes", file=sys.stderr)
        return 1

    database = Database(settings.database_url)
    if not database.is_configured:
        print("DATABASE_URL is not set", file=sys.stderr)
        return 1

    store = ContentStore(database)
    try:
        await store.create_indexes()
        deleted = await store.wipe()
    except RedzoneError as e:
        print(f"Wipe failed: {e}", file=sys.stderr)
        return 1
    finally:
        await database.close()

    print(f"Deleted {deleted} documents")
    return 0


def cmd_serve(args, settings: Settings) -> int:
    """Run the API server."""
    import uvicorn

    uvicorn.run(
        "redzone.main:app",
        host=args.host or settings.host,
        port=args.port or settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Redzone Fantasy - Content Ingestion CLI"
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Run command
    run_parser = subparsers.add_parser("run", help="Ingest content")
    run_parser.add_argument(
        "--source", "-s",
        help="Only ingest this source id"
    )
    run_parser.add_argument(
        "--json",
        action="store_true",
        help="Print results as JSON"
    )

    # Status command
    subparsers.add_parser("status", help="Show ingestion module status")

    # Sources command
    subparsers.add_parser("sources", help="List configured sources")

    # Wipe command
    wipe_parser = subparsers.add_parser("wipe", help="Delete all stored content")
    wipe_parser.add_argument(
        "--yes",
        action="store_true",
        help="Confirm deletion"
    )

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the API server")
    serve_parser.add_argument("--host", help="Bind address")
    serve_parser.add_argument("--port", "-p", type=int, help="Bind port")

    return parser


COMMANDS = {
    "run": cmd_run,
    "status": cmd_status,
    "sources": cmd_sources,
    "wipe": cmd_wipe,
}


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    settings = get_settings()
    configure_logging(settings)

    if args.command == "serve":
        return cmd_serve(args, settings)

    return asyncio.run(COMMANDS[args.command](args, settings))


if __name__ == "__main__":
    sys.exit(main())
