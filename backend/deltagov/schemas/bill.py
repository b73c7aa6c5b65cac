"""Bill and Version Pydantic schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from deltagov.db.models.bill import Bill, Version


class VersionOut(BaseModel):
    id: str
    bill_id: str
    version_code: str
    label: str
    content_hash: str
    fetched_at: datetime

    model_config = {"from_attributes": True}

    @classmethod
    def from_version(cls, version: Version, label: str) -> VersionOut:
        return cls(
            id=version.id,
            bill_id=version.bill_id,
            version_code=version.version_code,
            label=f"{label} ({version.fetched_at:%b} {version.fetched_at.day})",
            content_hash=version.content_hash,
            fetched_at=version.fetched_at,
        )


class BillOut(BaseModel):
    id: str
    congress: int
    bill_type: str
    bill_number: int
    display_number: str
    title: str
    sponsor: str | None
    origin_chamber: str | None
    current_status: str | None
    update_date: str | None
    is_spending_bill: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BillDetailOut(BillOut):
    versions: list[VersionOut]

    @classmethod
    def from_bill(cls, bill: Bill, versions: list[VersionOut]) -> BillDetailOut:
        base = BillOut.model_validate(bill).model_dump()
        return cls(**base, versions=versions)


class BillListResponse(BaseModel):
    items: list[BillOut]
    total: int
    limit: int
    offset: int
