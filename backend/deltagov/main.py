"""
DeltaGov FastAPI application factory.

Application lifecycle:
  startup  → configure logging, run DB migrations
  shutdown → dispose the DB engine pool

Run with ``uvicorn deltagov.main:create_app --factory``.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import sqlalchemy as sa
import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from deltagov.api.v1.router import router as v1_router
from deltagov.config.logging_config import configure_logging
from deltagov.config.settings import Environment, Settings, get_settings
from deltagov.core.errors import AppError
from deltagov.core.middleware import (
    CorrelationIDMiddleware,
    SecurityHeadersMiddleware,
    app_error_handler,
    unhandled_exception_handler,
)
from deltagov.db.migrations import run_migrations
from deltagov.db.session import dispose_engine, get_session_factory
from deltagov.services.diff.cache import DeltaCache
from deltagov.services.diff.store import SqlDeltaStore

_log = structlog.get_logger(__name__)


def _create_limiter(settings: Settings) -> Limiter:
    return Limiter(
        key_func=get_remote_address,
        default_limits=[settings.rate_limit_default],
    )


async def _startup(settings: Settings) -> None:
    configure_logging(settings)
    _log.info(
        "deltagov_starting",
        version=settings.app_version,
        environment=settings.environment.value,
    )
    if settings.run_migrations_on_startup:
        # alembic/env.py drives a sync engine; keep it off the event loop
        await asyncio.to_thread(run_migrations, settings)
        _log.info("migrations_applied")
    _log.info("deltagov_ready", host=settings.host, port=settings.port)


async def _shutdown() -> None:
    await dispose_engine()
    _log.info("deltagov_shutdown")


def create_app(
    settings: Settings | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> FastAPI:
    """
    Application factory. Returns a configured FastAPI instance.

    ``session_factory`` overrides the global engine; tests pass one bound to
    a temporary database.
    """
    settings = settings or get_settings()
    factory = session_factory or get_session_factory(settings)
    is_production = settings.environment is Environment.PRODUCTION

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        await _startup(settings)
        yield
        await _shutdown()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "DeltaGov: version history and cached diffs for U.S. legislative bills. "
            "Bill text is ingested from Congress.gov."
        ),
        docs_url=None if is_production else "/docs",
        redoc_url=None if is_production else "/redoc",
        openapi_url=None if is_production else "/openapi.json",
        lifespan=lifespan,
    )

    # ── Shared state ──────────────────────────────────────────────────── #
    # One cache per process so concurrent requests share in-flight computations
    app.state.settings = settings
    app.state.session_factory = factory
    app.state.delta_cache = DeltaCache.from_settings(settings, SqlDeltaStore(factory))

    # ── Rate Limiting ─────────────────────────────────────────────────── #
    app.state.limiter = _create_limiter(settings)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore[arg-type]
    app.add_middleware(SlowAPIMiddleware)

    # ── CORS ──────────────────────────────────────────────────────────── #
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-ID", "Retry-After"],
    )

    # ── Custom Middleware (applied in reverse order) ───────────────────── #
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(CorrelationIDMiddleware)

    # ── Exception Handlers ────────────────────────────────────────────── #
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # ── Routes ────────────────────────────────────────────────────────── #
    app.include_router(v1_router)

    # ── Health ────────────────────────────────────────────────────────── #
    @app.get("/health", tags=["health"], summary="Health check")
    async def health() -> dict[str, object]:
        """Returns service health including database reachability."""
        db_ok = False
        try:
            async with factory() as db:
                await db.execute(sa.text("SELECT 1"))
            db_ok = True
        except (SQLAlchemyError, OSError) as exc:
            _log.warning("health_database_unavailable", error=str(exc))

        return {
            "status": "healthy" if db_ok else "degraded",
            "database": "ok" if db_ok else "unavailable",
            "version": settings.app_version,
        }

    # ── Metrics (Prometheus) ──────────────────────────────────────────── #
    @app.get("/metrics", tags=["observability"], summary="Prometheus metrics")
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app
