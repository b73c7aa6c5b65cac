"""
Delta persistence.

``DeltaStore`` is the boundary the delta cache talks to. ``claim`` must be
atomic: of several workers racing on one pair key exactly one gets True.
``SqlDeltaStore`` implements it with ``INSERT … ON CONFLICT DO NOTHING`` on
the unique ``pair_key`` column and fills with an update conditioned on the
row still being pending, so a ready delta is never overwritten.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from deltagov.core.errors import DeltaStoreUnavailableError
from deltagov.db.base import utcnow
from deltagov.db.models.delta import CachedDelta, DeltaStatus
from deltagov.services.diff.models import DeltaResult, PairKey, delta_to_json, json_to_delta

_log = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class StoredDelta:
    """Snapshot of one ``deltas`` row."""

    status: DeltaStatus
    delta: DeltaResult | None = None
    claim_owner: str | None = None
    claimed_at: datetime | None = None

    @property
    def is_ready(self) -> bool:
        return self.status is DeltaStatus.READY and self.delta is not None


class DeltaStore(ABC):
    """
    Persistence collaborator for the delta cache.

    Every method raises ``DeltaStoreUnavailableError`` when the backing
    store cannot be reached.
    """

    @abstractmethod
    async def get(self, key: PairKey) -> StoredDelta | None:
        """Return the row for ``key`` or None when nothing is recorded."""

    @abstractmethod
    async def claim(self, key: PairKey, owner: str, stale_after: float) -> bool:
        """
        Atomically reserve ``key`` for computation by ``owner``.

        A pending claim older than ``stale_after`` seconds may be taken over.
        """

    @abstractmethod
    async def fill(self, key: PairKey, owner: str, delta: DeltaResult) -> bool:
        """Store ``delta`` unless a ready delta already exists. True if written."""

    @abstractmethod
    async def release(self, key: PairKey, owner: str) -> None:
        """Drop a pending claim held by ``owner``."""


class SqlDeltaStore(DeltaStore):
    """``DeltaStore`` over the ``deltas`` table (SQLite or PostgreSQL)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self, key: PairKey) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session, session.begin():
                yield session
        except (SQLAlchemyError, OSError) as exc:
            _log.warning("delta_store_unavailable", pair_key=str(key), error=str(exc))
            raise DeltaStoreUnavailableError(str(key)) from exc

    @staticmethod
    def _insert(session: AsyncSession, **values: Any) -> Any:
        """Dialect-specific ``INSERT … ON CONFLICT (pair_key) DO NOTHING``."""
        dialect = session.bind.dialect.name
        if dialect == "postgresql":
            stmt = postgresql.insert(CachedDelta.__table__)
        elif dialect == "sqlite":
            stmt = sqlite.insert(CachedDelta.__table__)
        else:
            raise NotImplementedError(f"atomic claim not supported on {dialect}")
        return stmt.values(**values).on_conflict_do_nothing(index_elements=["pair_key"])

    async def get(self, key: PairKey) -> StoredDelta | None:
        async with self._session(key) as session:
            row = (
                await session.execute(select(CachedDelta).where(CachedDelta.pair_key == str(key)))
            ).scalar_one_or_none()
            if row is None:
                return None
            delta = None
            if row.status is DeltaStatus.READY and row.delta_json:
                delta = json_to_delta(row.delta_json)
            return StoredDelta(
                status=row.status,
                delta=delta,
                claim_owner=row.claim_owner,
                claimed_at=row.claimed_at,
            )

    async def claim(self, key: PairKey, owner: str, stale_after: float) -> bool:
        now = utcnow()
        async with self._session(key) as session:
            result = await session.execute(
                self._insert(
                    session,
                    id=_new_id(),
                    pair_key=str(key),
                    version_a_id=key.low,
                    version_b_id=key.high,
                    status=DeltaStatus.PENDING,
                    claim_owner=owner,
                    claimed_at=now,
                    created_at=now,
                    updated_at=now,
                )
            )
            if result.rowcount == 1:
                return True

            # Someone else holds the row; take it over only if their claim went stale
            takeover = await session.execute(
                update(CachedDelta)
                .where(
                    CachedDelta.pair_key == str(key),
                    CachedDelta.status == DeltaStatus.PENDING,
                    CachedDelta.claimed_at < now - timedelta(seconds=stale_after),
                )
                .values(claim_owner=owner, claimed_at=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if takeover.rowcount == 1:
                _log.warning("delta_claim_taken_over", pair_key=str(key), owner=owner)
                return True
            return False

    async def fill(self, key: PairKey, owner: str, delta: DeltaResult) -> bool:
        now = utcnow()
        payload = {
            "status": DeltaStatus.READY,
            "insertions": delta.insertions,
            "deletions": delta.deletions,
            "unchanged": delta.unchanged,
            "delta_json": delta_to_json(delta),
            "computed_at": now,
            "updated_at": now,
        }
        async with self._session(key) as session:
            result = await session.execute(
                update(CachedDelta)
                .where(
                    CachedDelta.pair_key == str(key),
                    CachedDelta.status == DeltaStatus.PENDING,
                )
                .values(**payload)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                return True
            # The claim row is gone (released or never written): insert the ready row directly
            inserted = await session.execute(
                self._insert(
                    session,
                    id=_new_id(),
                    pair_key=str(key),
                    version_a_id=key.low,
                    version_b_id=key.high,
                    claim_owner=owner,
                    claimed_at=now,
                    created_at=now,
                    **payload,
                )
            )
            return inserted.rowcount == 1

    async def release(self, key: PairKey, owner: str) -> None:
        async with self._session(key) as session:
            await session.execute(
                delete(CachedDelta).where(
                    CachedDelta.pair_key == str(key),
                    CachedDelta.status == DeltaStatus.PENDING,
                    CachedDelta.claim_owner == owner,
                ).execution_options(synchronize_session=False)
            )


def _new_id() -> str:
    return str(uuid.uuid4())
