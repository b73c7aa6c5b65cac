"""Bill, version and diff API endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Query

from deltagov.api.deps import Bills
from deltagov.db.models.bill import Version
from deltagov.schemas.bill import BillDetailOut, BillListResponse, BillOut, VersionOut
from deltagov.schemas.diff import DeltaOut
from deltagov.services.bills.service import BillService

_log = structlog.get_logger(__name__)
router = APIRouter(prefix="/bills", tags=["bills"])


def _version_out(service: BillService, version: Version) -> VersionOut:
    return VersionOut.from_version(version, service.version_label(version.version_code))


@router.get("", response_model=BillListResponse, summary="List and search bills")
async def list_bills(
    service: Bills,
    congress: int | None = Query(default=None, ge=1),
    sponsor: str | None = Query(default=None, max_length=255),
    q: str | None = Query(default=None, max_length=255, description="Matches title or sponsor"),
    bill_type: str | None = Query(default=None, max_length=10),
    is_spending_bill: bool | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> BillListResponse:
    bills, total = await service.search_bills(
        congress=congress,
        sponsor=sponsor,
        q=q,
        bill_type=bill_type,
        is_spending_bill=is_spending_bill,
        limit=limit,
        offset=offset,
    )
    return BillListResponse(
        items=[BillOut.model_validate(b) for b in bills],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{bill_id}", response_model=BillDetailOut, summary="Get a bill with its versions")
async def get_bill(bill_id: str, service: Bills) -> BillDetailOut:
    bill = await service.get_bill(bill_id)
    return BillDetailOut.from_bill(bill, [_version_out(service, v) for v in bill.versions])


@router.get(
    "/{bill_id}/versions",
    response_model=list[VersionOut],
    summary="List a bill's text versions, oldest first",
)
async def list_versions(bill_id: str, service: Bills) -> list[VersionOut]:
    versions = await service.list_versions(bill_id)
    return [_version_out(service, v) for v in versions]


@router.get(
    "/{bill_id}/diff/{from_version}/{to_version}",
    response_model=DeltaOut,
    summary="Diff two versions of a bill",
)
async def diff_versions(
    bill_id: str,
    from_version: str,
    to_version: str,
    service: Bills,
) -> DeltaOut:
    """
    Return the delta from ``from_version`` to ``to_version``.

    Deltas are cached per unordered pair: asking for the reverse direction
    is served from the same entry. Inputs above the configured size limit
    return an approximate delta with counts only and ``isApproximate`` set.
    """
    delta = await service.compute_delta(from_version, to_version, bill_id=bill_id)
    return DeltaOut.from_delta(delta)
