"""
Ingestor: pulls bills and their text versions from Congress.gov into the database.

Bills are upserted on (congress, bill_type, bill_number) and only rewritten
when Congress.gov reports a new ``updateDate``. Each text snapshot is
fingerprinted and inserted with ``ON CONFLICT DO NOTHING`` on
(bill_id, content_hash), so re-ingesting unchanged text never creates a
second Version.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType

import structlog
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from deltagov.config.settings import DEFAULT_VERSION_CODE_LABELS
from deltagov.core.errors import AppError
from deltagov.db.base import utcnow
from deltagov.db.models.bill import Bill, Version
from deltagov.services.diff.fingerprint import fingerprint
from deltagov.services.diff.tokenizer import ensure_text
from deltagov.services.ingestion.congress_client import (
    CongressBill,
    CongressClient,
    CongressNotFoundError,
    TextVersionWithContent,
    is_appropriation,
)

_log = structlog.get_logger(__name__)


@dataclass
class IngestResult:
    """Counters for one ingestion pass."""

    fetched: int = 0
    created: int = 0
    updated: int = 0
    versions_created: int = 0
    errors: list[str] = field(default_factory=list)


def parse_version_date(value: str | None) -> datetime | None:
    """Parse a Congress.gov text-version date (``2025-05-22`` or full ISO-8601)."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class IngestorService:
    """
    Service that mirrors Congress.gov bills into the local database.

    Usage:
        async with CongressClient(settings) as client:
            result = await IngestorService(db, client).ingest_recent_bills(limit=50)
    """

    def __init__(
        self,
        db: AsyncSession,
        client: CongressClient,
        version_labels: Mapping[str, str] | None = None,
    ) -> None:
        self._db = db
        self._client = client
        labels = version_labels if version_labels is not None else DEFAULT_VERSION_CODE_LABELS
        # label → code, for turning "Introduced in House" into "IH"
        self._codes_by_label: Mapping[str, str] = MappingProxyType(
            {label: code for code, label in labels.items()}
        )

    def version_code(self, version_type: str) -> str:
        code = self._codes_by_label.get(version_type)
        if code:
            return code
        return version_type[:2].upper() if version_type else "??"

    # ── Public operations ─────────────────────────────────────────────── #

    async def ingest_recent_bills(self, limit: int) -> IngestResult:
        """
        Fetch the most recently updated bills and record any new text.

        Each bill is its own unit of work: it is committed once its metadata
        and latest text are stored. A failure on one bill rolls back only that
        bill, is recorded in ``IngestResult.errors``, and the pass moves on.
        """
        result = IngestResult()
        bills = await self._client.fetch_recent_bills(limit)
        result.fetched = len(bills)

        for api_bill in bills:
            label = f"{api_bill.congress}-{api_bill.bill_type}-{api_bill.number}"
            try:
                bill, created, updated = await self.upsert_bill(api_bill)
                new_version = await self._store_latest_version(bill, api_bill)
                await self._db.commit()
            except AppError as exc:
                await self._db.rollback()
                _log.warning("ingest_bill_failed", bill=label, error=exc.message)
                result.errors.append(f"{label}: {exc.message}")
                continue
            except SQLAlchemyError as exc:
                await self._db.rollback()
                _log.warning("ingest_bill_failed", bill=label, error=type(exc).__name__, exc_info=True)
                result.errors.append(f"{label}: database error ({type(exc).__name__})")
                continue
            result.created += int(created)
            result.updated += int(updated)
            result.versions_created += int(new_version)

        _log.info(
            "ingest_completed",
            fetched=result.fetched,
            created=result.created,
            updated=result.updated,
            versions_created=result.versions_created,
            errors=len(result.errors),
        )
        return result

    async def fetch_bill(self, congress: int, bill_type: str, number: int) -> Bill:
        """Fetch one bill with every text version Congress.gov publishes for it."""
        detail = await self._client.get_bill_detail(congress, bill_type, number)
        bill, _, _ = await self.upsert_bill(detail)
        texts = await self._client.get_bill_text_with_content(congress, bill_type, number)
        created = 0
        for text in texts:
            if await self._record_text(bill, text):
                created += 1
        _log.info(
            "bill_fetched",
            congress=congress,
            bill_type=bill_type,
            number=number,
            versions_available=len(texts),
            versions_created=created,
        )
        return bill

    async def upsert_bill(self, api_bill: CongressBill) -> tuple[Bill, bool, bool]:
        """Return ``(bill, created, updated)``."""
        existing = (
            await self._db.execute(
                select(Bill).where(
                    Bill.congress == api_bill.congress,
                    Bill.bill_type == api_bill.bill_type,
                    Bill.bill_number == api_bill.number,
                )
            )
        ).scalar_one_or_none()

        if existing is None:
            bill = Bill(congress=api_bill.congress, bill_type=api_bill.bill_type, bill_number=api_bill.number)
            self._apply(bill, api_bill)
            self._db.add(bill)
            await self._db.flush()
            _log.info("bill_created", bill_id=bill.id, bill=bill.display_number, congress=bill.congress)
            return bill, True, False

        if existing.update_date != api_bill.update_date:
            previous = existing.update_date
            self._apply(existing, api_bill)
            await self._db.flush()
            _log.info(
                "bill_updated",
                bill_id=existing.id,
                previous_update=previous,
                update_date=api_bill.update_date,
            )
            return existing, False, True
        return existing, False, False

    async def record_version(
        self,
        bill: Bill,
        version_code: str,
        text: bytes | str,
        fetched_at: datetime | None = None,
    ) -> bool:
        """
        Store ``text`` as a new version of ``bill`` unless identical content exists.

        Returns True when a new Version row was inserted.
        """
        content = ensure_text(text)
        content_hash = fingerprint(content)
        now = utcnow()
        values = {
            "id": _new_id(),
            "bill_id": bill.id,
            "version_code": version_code,
            "content_hash": content_hash,
            "text_content": content,
            "fetched_at": fetched_at or now,
            "created_at": now,
            "updated_at": now,
        }
        dialect = self._db.bind.dialect.name
        insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
        stmt = (
            insert(Version.__table__)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["bill_id", "content_hash"])
        )
        inserted = (await self._db.execute(stmt)).rowcount == 1
        if inserted:
            _log.info(
                "version_recorded",
                bill_id=bill.id,
                version_code=version_code,
                content_hash=content_hash[:16],
            )
        else:
            _log.debug("version_duplicate_skipped", bill_id=bill.id, content_hash=content_hash[:16])
        return inserted

    # ── Internals ─────────────────────────────────────────────────────── #

    @staticmethod
    def _apply(bill: Bill, api_bill: CongressBill) -> None:
        bill.title = api_bill.title
        bill.update_date = api_bill.update_date
        bill.origin_chamber = api_bill.origin_chamber
        bill.current_status = api_bill.latest_action
        bill.is_spending_bill = is_appropriation(api_bill.title)
        if api_bill.sponsor:
            bill.sponsor = api_bill.sponsor
        bill.metadata_json = json.dumps(api_bill.raw, ensure_ascii=False, sort_keys=True)

    async def _store_latest_version(self, bill: Bill, api_bill: CongressBill) -> bool:
        try:
            versions = await self._client.get_bill_text_versions(
                api_bill.congress, api_bill.bill_type, api_bill.number
            )
        except CongressNotFoundError:
            # no text published yet
            return False
        if not versions:
            return False
        latest = versions[0]
        url = latest.preferred_url()
        if url is None:
            return False
        content = await self._client.fetch_text_content(url)
        return await self._record_text(bill, TextVersionWithContent(version=latest, content=content))

    async def _record_text(self, bill: Bill, text: TextVersionWithContent) -> bool:
        return await self.record_version(
            bill,
            self.version_code(text.version.type),
            text.content,
            fetched_at=parse_version_date(text.version.date),
        )


def _new_id() -> str:
    return str(uuid.uuid4())
