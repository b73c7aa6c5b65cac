"""Congress.gov ingestion endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Path, Query

from deltagov.api.deps import AppSettings, DbSession
from deltagov.schemas.bill import BillDetailOut, VersionOut
from deltagov.schemas.ingest import IngestResponse
from deltagov.services.bills.service import BillService
from deltagov.services.ingestion.congress_client import MAX_PAGE_SIZE, CongressClient
from deltagov.services.ingestion.ingestor import IngestorService

_log = structlog.get_logger(__name__)
router = APIRouter(tags=["ingest"])


@router.post("/ingest", response_model=IngestResponse, summary="Ingest recently updated bills")
async def ingest_recent(
    db: DbSession,
    settings: AppSettings,
    limit: int | None = Query(default=None, ge=1, le=MAX_PAGE_SIZE),
) -> IngestResponse:
    """
    Run one ingestion pass against Congress.gov.

    Returns 503 when no Congress.gov API key is configured.
    """
    async with CongressClient(settings) as client:
        ingestor = IngestorService(db, client, settings.version_code_labels)
        result = await ingestor.ingest_recent_bills(limit or settings.ingest_default_limit)
    return IngestResponse.model_validate(result)


@router.post(
    "/bills/{congress}/{bill_type}/{number}/fetch",
    response_model=BillDetailOut,
    summary="Fetch one bill and all of its text versions",
)
async def fetch_bill(
    db: DbSession,
    settings: AppSettings,
    congress: int = Path(ge=1),
    bill_type: str = Path(max_length=10),
    number: int = Path(ge=1),
) -> BillDetailOut:
    async with CongressClient(settings) as client:
        ingestor = IngestorService(db, client, settings.version_code_labels)
        bill = await ingestor.fetch_bill(congress, bill_type.lower(), number)

    service = BillService(db, version_labels=settings.version_code_labels)
    loaded = await service.get_bill(bill.id)
    return BillDetailOut.from_bill(
        loaded,
        [VersionOut.from_version(v, service.version_label(v.version_code)) for v in loaded.versions],
    )
