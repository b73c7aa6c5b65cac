"""Initial schema: bills, versions, deltas.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision: str = "0001_initial"
down_revision: str | None = None
branch_labels: str | None = None
depends_on: str | None = None


def upgrade() -> None:
    # bills
    op.create_table(
        "bills",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("congress", sa.Integer, nullable=False),
        sa.Column("bill_type", sa.String(10), nullable=False),
        sa.Column("bill_number", sa.Integer, nullable=False),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("sponsor", sa.String(255), nullable=True),
        sa.Column("origin_chamber", sa.String(20), nullable=True),
        sa.Column("current_status", sa.Text, nullable=True),
        sa.Column("update_date", sa.String(40), nullable=True),
        sa.Column("is_spending_bill", sa.Boolean, nullable=False),
        sa.Column("metadata_json", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_bills"),
        sa.UniqueConstraint("congress", "bill_type", "bill_number", name="uq_bills_congress_type_number"),
    )
    op.create_index("ix_bills_congress", "bills", ["congress"])
    op.create_index("ix_bills_sponsor", "bills", ["sponsor"])
    op.create_index("ix_bills_is_spending_bill", "bills", ["is_spending_bill"])

    # versions
    op.create_table(
        "versions",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("bill_id", sa.String(36), nullable=False),
        sa.Column("version_code", sa.String(10), nullable=False),
        sa.Column("content_hash", sa.String(64), nullable=False),
        sa.Column("text_content", sa.Text, nullable=False),
        sa.Column("fetched_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_versions"),
        sa.ForeignKeyConstraint(
            ["bill_id"], ["bills.id"], name="fk_versions_bill_id_bills", ondelete="CASCADE"
        ),
        sa.UniqueConstraint("bill_id", "content_hash", name="uq_versions_bill_content_hash"),
    )
    op.create_index("ix_versions_bill_id", "versions", ["bill_id"])
    op.create_index("ix_versions_content_hash", "versions", ["content_hash"])

    # deltas
    op.create_table(
        "deltas",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("pair_key", sa.String(200), nullable=False),
        sa.Column("version_a_id", sa.String(36), nullable=False),
        sa.Column("version_b_id", sa.String(36), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("claim_owner", sa.String(64), nullable=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("insertions", sa.Integer, nullable=True),
        sa.Column("deletions", sa.Integer, nullable=True),
        sa.Column("unchanged", sa.Integer, nullable=True),
        sa.Column("delta_json", sa.Text, nullable=True),
        sa.Column("computed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_deltas"),
        sa.ForeignKeyConstraint(
            ["version_a_id"], ["versions.id"], name="fk_deltas_version_a_id_versions", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["version_b_id"], ["versions.id"], name="fk_deltas_version_b_id_versions", ondelete="CASCADE"
        ),
        sa.UniqueConstraint("pair_key", name="uq_deltas_pair_key"),
    )
    op.create_index("ix_deltas_version_a_id", "deltas", ["version_a_id"])
    op.create_index("ix_deltas_version_b_id", "deltas", ["version_b_id"])


def downgrade() -> None:
    op.drop_table("deltas")
    op.drop_table("versions")
    op.drop_table("bills")
