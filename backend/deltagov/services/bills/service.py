"""
Bill service: listing, lookup and the ``compute_delta`` entry point.

``compute_delta`` resolves version metadata, builds the order-normalized
pair key, asks the delta cache for the canonical delta and flips it when
the caller asked for the reverse direction. Version text is only read from
the database when the cache misses.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import defer, selectinload

from deltagov.config.settings import DEFAULT_VERSION_CODE_LABELS
from deltagov.core.errors import ErrorCode, NotFoundError, ValidationError
from deltagov.db.models.bill import Bill, Version
from deltagov.services.diff.cache import DeltaCache
from deltagov.services.diff.models import DeltaResult, PairKey

_log = structlog.get_logger(__name__)


class BillService:
    """
    Read-side service over bills and versions.

    Usage:
        service = BillService(db, cache=cache, session_factory=factory)
        delta = await service.compute_delta(from_id, to_id)
    """

    def __init__(
        self,
        db: AsyncSession,
        cache: DeltaCache | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        version_labels: Mapping[str, str] | None = None,
    ) -> None:
        self._db = db
        self._cache = cache
        self._session_factory = session_factory
        self.version_labels: Mapping[str, str] = MappingProxyType(
            dict(version_labels if version_labels is not None else DEFAULT_VERSION_CODE_LABELS)
        )

    def version_label(self, code: str) -> str:
        return self.version_labels.get(code.upper(), code)

    # ── Bills ─────────────────────────────────────────────────────────── #

    async def search_bills(
        self,
        congress: int | None = None,
        sponsor: str | None = None,
        q: str | None = None,
        bill_type: str | None = None,
        is_spending_bill: bool | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Bill], int]:
        """Return one page of bills (most recently updated first) and the total match count."""
        filters = []
        if congress is not None:
            filters.append(Bill.congress == congress)
        if bill_type:
            filters.append(Bill.bill_type == bill_type.lower())
        if sponsor:
            filters.append(Bill.sponsor.ilike(f"%{sponsor}%"))
        if q:
            filters.append(or_(Bill.title.ilike(f"%{q}%"), Bill.sponsor.ilike(f"%{q}%")))
        if is_spending_bill is not None:
            filters.append(Bill.is_spending_bill.is_(is_spending_bill))

        total = (
            await self._db.execute(select(func.count()).select_from(Bill).where(*filters))
        ).scalar_one()
        rows = await self._db.execute(
            select(Bill)
            .where(*filters)
            .order_by(Bill.update_date.desc().nulls_last(), Bill.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(rows.scalars().all()), total

    async def get_bill(self, bill_id: str) -> Bill:
        """Return the bill with its versions loaded (text deferred)."""
        result = await self._db.execute(
            select(Bill)
            .options(selectinload(Bill.versions).options(defer(Version.text_content)))
            .where(Bill.id == bill_id)
            .execution_options(populate_existing=True)
        )
        bill = result.scalar_one_or_none()
        if bill is None:
            raise NotFoundError("Bill", bill_id, ErrorCode.BILL_NOT_FOUND)
        return bill

    async def list_versions(self, bill_id: str) -> list[Version]:
        bill = await self.get_bill(bill_id)
        return list(bill.versions)

    # ── Deltas ────────────────────────────────────────────────────────── #

    async def _version_bill_ids(self, *version_ids: str) -> dict[str, str]:
        rows = await self._db.execute(
            select(Version.id, Version.bill_id).where(Version.id.in_(version_ids))
        )
        return {vid: bid for vid, bid in rows.all()}

    async def compute_delta(
        self,
        from_version_id: str,
        to_version_id: str,
        bill_id: str | None = None,
    ) -> DeltaResult:
        """
        Return the delta from one version to another, cached per unordered pair.

        Raises:
            NotFoundError: either version does not exist.
            ValidationError: the versions belong to different bills, or not to ``bill_id``.
            DeltaStoreUnavailableError / DeltaPendingError: retryable cache failures.
        """
        cache, factory = self._cache, self._session_factory
        if cache is None or factory is None:
            raise RuntimeError("BillService was built without a delta cache")

        owners = await self._version_bill_ids(from_version_id, to_version_id)
        for vid in (from_version_id, to_version_id):
            if vid not in owners:
                raise NotFoundError("Version", vid, ErrorCode.VERSION_NOT_FOUND)

        if owners[from_version_id] != owners[to_version_id]:
            raise ValidationError(
                "Versions belong to different bills",
                detail={"from_version": from_version_id, "to_version": to_version_id},
                code=ErrorCode.VERSION_BILL_MISMATCH,
            )
        if bill_id is not None and owners[from_version_id] != bill_id:
            raise ValidationError(
                "Version does not belong to this bill",
                detail={"bill_id": bill_id, "from_version": from_version_id},
                code=ErrorCode.VERSION_BILL_MISMATCH,
            )

        key = cache.key_for(from_version_id, to_version_id)
        delta = await cache.get_or_compute(key, lambda: _load_texts(factory, key))
        if key.is_reversed(from_version_id):
            delta = delta.reversed()
        _log.debug(
            "delta_served",
            from_version=from_version_id,
            to_version=to_version_id,
            changed=delta.has_changes,
            approximate=delta.is_approximate,
        )
        return delta


async def _load_texts(
    session_factory: async_sessionmaker[AsyncSession], key: PairKey
) -> tuple[str, str]:
    """Read both texts in the key's canonical order, on a session of their own."""
    # the computation may outlive the request session that started it
    async with session_factory() as session:
        rows = await session.execute(
            select(Version.id, Version.text_content).where(Version.id.in_((key.low, key.high)))
        )
        texts = dict(rows.all())
    missing = [vid for vid in (key.low, key.high) if vid not in texts]
    if missing:
        raise NotFoundError("Version", missing[0], ErrorCode.VERSION_NOT_FOUND)
    return texts[key.low], texts[key.high]
