"""
Bill and Version database models.

A Bill is identified upstream by (congress, bill_type, bill_number). Each
distinct text snapshot of a bill is one immutable Version; the
(bill_id, content_hash) unique constraint keeps duplicate content out.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from deltagov.db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, utcnow


class Bill(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """A bill as listed by Congress.gov."""

    __tablename__ = "bills"
    __table_args__ = (
        UniqueConstraint(
            "congress", "bill_type", "bill_number", name="uq_bills_congress_type_number"
        ),
    )

    congress: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    bill_type: Mapped[str] = mapped_column(String(10), nullable=False)
    bill_number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    sponsor: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    origin_chamber: Mapped[str | None] = mapped_column(String(20), nullable=True)
    current_status: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Congress.gov updateDate, kept verbatim to detect upstream changes
    update_date: Mapped[str | None] = mapped_column(String(40), nullable=True)
    is_spending_bill: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, index=True
    )
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    versions: Mapped[list[Version]] = relationship(
        "Version",
        back_populates="bill",
        cascade="all, delete-orphan",
        order_by="Version.fetched_at",
    )

    @property
    def display_number(self) -> str:
        return f"{self.bill_type.upper()} {self.bill_number}"

    def __repr__(self) -> str:
        return f"<Bill {self.congress} {self.display_number}>"


class Version(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """One immutable text snapshot of a bill."""

    __tablename__ = "versions"
    __table_args__ = (
        UniqueConstraint("bill_id", "content_hash", name="uq_versions_bill_content_hash"),
    )

    bill_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("bills.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    version_code: Mapped[str] = mapped_column(String(10), nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    text_content: Mapped[str] = mapped_column(Text, nullable=False)
    fetched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    bill: Mapped[Bill] = relationship("Bill", back_populates="versions")

    def __repr__(self) -> str:
        return f"<Version {self.version_code} {self.content_hash[:12]}>"
