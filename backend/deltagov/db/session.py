"""
Process-wide async engine and session factory.

The API keeps its factory on ``app.state`` (see ``deltagov.api.deps``); the
ingest worker uses :func:`get_session_factory`.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from deltagov.config.settings import Settings, get_settings

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def engine_options(settings: Settings) -> dict[str, Any]:
    """
    Engine kwargs for the configured backend.

    SQLite gets a long lock timeout: concurrent delta claims on a file
    database queue on its single write lock. PostgreSQL gets a sized,
    pre-pinged pool.
    """
    options: dict[str, Any] = {"echo": settings.db_echo}
    if make_url(settings.database_url).get_backend_name() == "sqlite":
        options["connect_args"] = {"check_same_thread": False, "timeout": 30}
    else:
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,
        )
    return options


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # objects outlive commits: the ingestor commits per bill and keeps using them
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def create_engine(settings: Settings | None = None) -> AsyncEngine:
    """Create and return the global async engine."""
    global _engine
    if _engine is None:
        cfg = settings or get_settings()
        _engine = create_async_engine(cfg.database_url, **engine_options(cfg))
    return _engine


def get_session_factory(settings: Settings | None = None) -> async_sessionmaker[AsyncSession]:
    """Return the global session factory, creating it if necessary."""
    global _session_factory
    if _session_factory is None:
        _session_factory = make_session_factory(create_engine(settings))
    return _session_factory


async def dispose_engine() -> None:
    """Dispose the engine; used on API shutdown and when the worker exits."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
