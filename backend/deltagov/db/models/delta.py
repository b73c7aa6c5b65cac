"""
Cached delta model.

One row per normalized pair key. A row starts ``pending`` when a worker
claims the pair and becomes ``ready`` once the computed delta is written.
Ready rows are never updated.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from deltagov.db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class DeltaStatus(StrEnum):
    PENDING = "pending"
    READY = "ready"


class CachedDelta(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Persisted delta for an unordered pair of versions."""

    __tablename__ = "deltas"
    __table_args__ = (UniqueConstraint("pair_key", name="uq_deltas_pair_key"),)

    pair_key: Mapped[str] = mapped_column(String(200), nullable=False)
    # canonical order: version_a_id sorts before version_b_id
    version_a_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("versions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    version_b_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("versions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[DeltaStatus] = mapped_column(
        SAEnum(
            DeltaStatus,
            name="delta_status",
            native_enum=False,
            length=16,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=DeltaStatus.PENDING,
    )
    claim_owner: Mapped[str | None] = mapped_column(String(64), nullable=True)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    insertions: Mapped[int | None] = mapped_column(Integer, nullable=True)
    deletions: Mapped[int | None] = mapped_column(Integer, nullable=True)
    unchanged: Mapped[int | None] = mapped_column(Integer, nullable=True)
    delta_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    computed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<CachedDelta {self.pair_key} [{self.status}]>"
