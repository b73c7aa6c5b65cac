"""
Standalone Congress.gov ingest worker.

Runs ``IngestorService.ingest_recent_bills`` either once (for a scheduled
job) or on a fixed interval until SIGINT/SIGTERM.

Usage:
    deltagov-ingest --single-run --limit 50
    deltagov-ingest            # every INGEST_POLL_INTERVAL_SECONDS
"""

from __future__ import annotations

import argparse
import asyncio
import signal
from collections.abc import Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from deltagov.config.logging_config import configure_logging
from deltagov.config.settings import Settings, get_settings
from deltagov.core.errors import AppError
from deltagov.db.migrations import run_migrations
from deltagov.db.session import dispose_engine, get_session_factory
from deltagov.services.ingestion.congress_client import CongressClient
from deltagov.services.ingestion.ingestor import IngestorService, IngestResult

_log = structlog.get_logger(__name__)

ClientFactory = Callable[[Settings], CongressClient]


async def run_once(
    session_factory: async_sessionmaker[AsyncSession],
    client: CongressClient,
    limit: int,
) -> IngestResult:
    """One ingestion pass on a fresh session, with a summary log line."""
    _log.info("ingest_run_started", limit=limit)
    async with session_factory() as session:
        result = await IngestorService(session, client).ingest_recent_bills(limit)
    _log.info(
        "ingest_run_summary",
        fetched=result.fetched,
        created=result.created,
        updated=result.updated,
        versions_created=result.versions_created,
        errors=len(result.errors),
    )
    for error in result.errors:
        _log.warning("ingest_run_error", error=error)
    return result


async def run_worker(
    settings: Settings,
    *,
    limit: int,
    single_run: bool = False,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    client_factory: ClientFactory = CongressClient,
    stop: asyncio.Event | None = None,
) -> int:
    """
    Run the worker and return a process exit code.

    In single-run mode a failed pass is fatal. In continuous mode it is
    logged and the next pass runs after ``ingest_poll_interval_seconds``.
    Without an explicit ``stop`` event, SIGINT and SIGTERM end the loop.

    Raises:
        ServiceUnavailableError: no Congress.gov API key is configured.
    """
    factory = session_factory or get_session_factory(settings)
    if settings.run_migrations_on_startup:
        await asyncio.to_thread(run_migrations, settings)
        _log.info("migrations_applied")

    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    if stop is None:
        stop = asyncio.Event()
        if not single_run:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, stop.set)
                installed.append(sig)

    try:
        async with client_factory(settings) as client:
            if single_run:
                _log.info("ingest_worker_single_run", limit=limit)
                await run_once(factory, client, limit)
                return 0

            interval = settings.ingest_poll_interval_seconds
            _log.info("ingest_worker_started", limit=limit, poll_interval_seconds=interval)
            while not stop.is_set():
                try:
                    await run_once(factory, client, limit)
                except AppError as exc:
                    _log.warning("ingest_run_failed", code=exc.code.value, error=exc.message)
                try:
                    await asyncio.wait_for(stop.wait(), timeout=interval)
                except TimeoutError:
                    continue
            _log.info("ingest_worker_stopped")
            return 0
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
        if session_factory is None:
            await dispose_engine()


def build_parser(default_limit: int) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="deltagov-ingest",
        description="Mirror recently updated bills from Congress.gov into the DeltaGov database",
    )
    parser.add_argument(
        "--single-run", action="store_true",
        help="Run one ingestion pass and exit",
    )
    parser.add_argument(
        "--limit", type=int, default=default_limit,
        help=f"Maximum number of bills fetched per pass (default: {default_limit})",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    settings = get_settings()
    args = build_parser(settings.ingest_default_limit).parse_args(argv)
    configure_logging(settings)

    try:
        return asyncio.run(run_worker(settings, limit=args.limit, single_run=args.single_run))
    except KeyboardInterrupt:
        _log.info("ingest_worker_interrupted")
        return 130
    except AppError as exc:
        _log.error("ingest_worker_failed", code=exc.code.value, error=exc.message)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
