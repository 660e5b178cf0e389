"""Create cases and case_links tables.

Revision ID: 001_cases_and_links
Revises: 000_enable_extensions
Create Date: 2026-10-18
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001_cases_and_links"
down_revision: str | None = "000_enable_extensions"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # Cases - one savings report, optionally keyed by a Pipedrive deal
    op.create_table(
        "cases",
        sa.Column(
            "id",
            sa.UUID(),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("pipedrive_deal_id", sa.String(64), nullable=True),
        sa.Column("company_name", sa.String(255), nullable=False),
        sa.Column("industry", sa.String(255), nullable=False),
        sa.Column(
            "status", sa.String(20), nullable=False, server_default="pending"
        ),
        sa.Column("calc_total", sa.Numeric(14, 2), nullable=False),
        sa.Column("calc_er", sa.Numeric(14, 2), nullable=False),
        sa.Column("calc_ee", sa.Numeric(14, 2), nullable=False),
        sa.Column("calc_inputs", postgresql.JSONB(), nullable=False),
        sa.Column("calc_explanation", sa.Text(), nullable=False),
        sa.Column("last_generated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("pipedrive_deal_id", name="uq_cases_pipedrive_deal_id"),
        sa.CheckConstraint(
            "status IN ('pending', 'generated')",
            name="ck_cases_status",
        ),
        sa.CheckConstraint(
            "calc_total = calc_er + calc_ee",
            name="ck_cases_calc_split",
        ),
    )

    # Case links - only peppered hashes of token and passcode are stored
    op.create_table(
        "case_links",
        sa.Column(
            "id",
            sa.UUID(),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column(
            "case_id",
            sa.UUID(),
            sa.ForeignKey("cases.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("passcode_hash", sa.String(64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "attempt_count", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("view_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_viewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("attempt_count >= 0", name="ck_case_links_attempt_count"),
    )
    op.create_index(
        "uq_case_links_token_hash", "case_links", ["token_hash"], unique=True
    )
    op.create_index("idx_case_links_case_id", "case_links", ["case_id"])


def downgrade() -> None:
    op.drop_index("idx_case_links_case_id", table_name="case_links")
    op.drop_index("uq_case_links_token_hash", table_name="case_links")
    op.drop_table("case_links")
    op.drop_table("cases")
