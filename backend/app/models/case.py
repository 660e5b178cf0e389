"""Case model - one computed savings report.

A case is created by an operator request or by a Pipedrive deal webhook
(keyed by ``pipedrive_deal_id``). Its calculation columns are denormalized
from the calculation engine and rewritten on every regeneration.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Numeric, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from app.models.case_link import CaseLink

_DEFAULT_UUID = text("gen_random_uuid()")


class Case(Base, TimestampMixin):
    """Savings report shared through case links.

    Attributes:
        id: UUID primary key.
        pipedrive_deal_id: External CRM key. NULL for operator-created cases.
        company_name: Business display name.
        industry: Business industry label.
        status: Lifecycle label (``pending`` or ``generated``).
        calc_total: Total tax reduction.
        calc_er: Employer net savings.
        calc_ee: Employee reduction.
        calc_inputs: Snapshot of count, tax year and rates used.
        calc_explanation: Human-readable rendering of the figures.
        last_generated_at: Last time a report/link was generated. Used by
            the generation idempotency window.
    """

    __tablename__ = "cases"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=_DEFAULT_UUID,
    )
    pipedrive_deal_id: Mapped[str | None] = mapped_column(
        String(64),
        unique=True,
        nullable=True,
    )
    company_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    industry: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        server_default="pending",
    )
    calc_total: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
    )
    calc_er: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
    )
    calc_ee: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
    )
    calc_inputs: Mapped[dict] = mapped_column(
        JSONB,
        nullable=False,
    )
    calc_explanation: Mapped[str] = mapped_column(
        Text(),
        nullable=False,
    )
    last_generated_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    links: Mapped[list["CaseLink"]] = relationship(
        "CaseLink",
        back_populates="case",
        cascade="all, delete-orphan",
    )
