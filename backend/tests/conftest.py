"""
Shared pytest fixtures for DeltaGov backend tests.

Provides:
  - file-backed async SQLite database per test (several connections can
    contend on it, which an in-memory database cannot do across connections)
  - a FastAPI app wired to that database and an HTTP client for it
  - a seeded bill with three text versions
"""
from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import deltagov.db.models  # noqa: F401
from deltagov.config.settings import Settings
from deltagov.db.base import Base
from deltagov.db.models.bill import Bill, Version
from deltagov.db.session import make_session_factory
from deltagov.main import create_app
from deltagov.services.diff.fingerprint import fingerprint

# ─── Seed texts ───────────────────────────────────────────────────────────────

INTRODUCED_TEXT = "SECTION 1. SHORT TITLE.\nThis Act may be cited as the Example Act.\nSEC. 2. FUNDING.\n$100"
REPORTED_TEXT = "SECTION 1. SHORT TITLE.\nThis Act may be cited as the Example Act of 2026.\nSEC. 2. FUNDING.\n$150"
OTHER_BILL_TEXT = "SECTION 1. Unrelated."


def make_settings(tmp_path: Path, **overrides: object) -> Settings:
    values: dict[str, object] = {
        "database_url": f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        "environment": "testing",
        "run_migrations_on_startup": False,
        "cors_origins": ["http://localhost:4200"],
        "log_json": False,
        "diff_claim_wait_seconds": 2.0,
        "diff_claim_poll_seconds": 0.05,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)  # type: ignore[arg-type]


@pytest.fixture
def settings_factory(tmp_path: Path):
    """Build Settings for this test's database with per-test overrides."""
    return lambda **overrides: make_settings(tmp_path, **overrides)


@pytest.fixture
def settings(settings_factory) -> Settings:
    return settings_factory()


# ─── Database ─────────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def db_engine(settings: Settings):
    """Create an async file-backed SQLite engine per test function."""
    engine = create_async_engine(
        settings.database_url,
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide an async session that rolls back after each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ─── Seed data ────────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def seeded(session_factory) -> dict[str, str]:
    """One bill with versions IH → RH → EH, plus a second bill with one version."""
    async with session_factory() as session:
        bill = Bill(
            congress=119,
            bill_type="hr",
            bill_number=1,
            title="Example Appropriations Act",
            sponsor="Rep. Example",
            update_date="2026-05-01T00:00:00Z",
            is_spending_bill=True,
        )
        other = Bill(congress=119, bill_type="s", bill_number=7, title="Unrelated Act")
        session.add_all([bill, other])
        await session.flush()

        def version(owner: Bill, code: str, text: str, day: int) -> Version:
            return Version(
                bill_id=owner.id,
                version_code=code,
                content_hash=fingerprint(text),
                text_content=text,
                fetched_at=datetime(2026, 5, day, tzinfo=UTC),
            )

        ih = version(bill, "IH", INTRODUCED_TEXT, 1)
        rh = version(bill, "RH", REPORTED_TEXT, 12)
        eh = version(bill, "EH", REPORTED_TEXT + "\nSEC. 3. EFFECTIVE DATE.", 20)
        s_is = version(other, "IS", OTHER_BILL_TEXT, 2)
        session.add_all([ih, rh, eh, s_is])
        await session.commit()
        return {
            "bill_id": bill.id,
            "other_bill_id": other.id,
            "ih": ih.id,
            "rh": rh.id,
            "eh": eh.id,
            "other_version": s_is.id,
            "ih_text": INTRODUCED_TEXT,
            "rh_text": REPORTED_TEXT,
        }


# ─── App & HTTP client ────────────────────────────────────────────────────────

@pytest.fixture
def app(settings: Settings, session_factory):
    """Create a FastAPI test app bound to the per-test database."""
    return create_app(settings=settings, session_factory=session_factory)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c
