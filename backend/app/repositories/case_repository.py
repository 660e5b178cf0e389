"""Repository for Case CRUD operations."""

import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.case import Case

# Fields written by a (re)calculation. Identity and external key are
# set only at creation.
_CALCULATION_FIELDS: frozenset[str] = frozenset(
    {
        "company_name",
        "industry",
        "status",
        "calc_total",
        "calc_er",
        "calc_ee",
        "calc_inputs",
        "calc_explanation",
        "last_generated_at",
    }
)


class CaseRepository:
    """Stateless repository for Case table operations.

    All methods are static, with no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(db: AsyncSession, case_id: uuid.UUID) -> Case | None:
        """Fetch a case by primary key."""
        return await db.get(Case, case_id)

    @staticmethod
    async def get_by_deal_id(db: AsyncSession, deal_id: str) -> Case | None:
        """Fetch a case by its Pipedrive deal id."""
        stmt = select(Case).where(Case.pipedrive_deal_id == deal_id)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        pipedrive_deal_id: str | None = None,
        **fields: object,
    ) -> Case:
        """Create a case.

        Args:
            db: Async database session.
            pipedrive_deal_id: External CRM key (None for operator cases).
            **fields: Calculation fields (see _CALCULATION_FIELDS).

        Returns:
            Created Case with database-generated fields populated.

        Raises:
            ValueError: If an unknown field name is passed.
            sqlalchemy.exc.IntegrityError: If the deal id already exists.
        """
        _check_fields(fields)
        row = Case(pipedrive_deal_id=pipedrive_deal_id, **fields)
        db.add(row)
        await db.flush()
        await db.refresh(row)
        return row

    @staticmethod
    async def upsert_by_deal_id(
        db: AsyncSession,
        *,
        deal_id: str,
        **fields: object,
    ) -> Case:
        """Create the case for a deal, or overwrite its calculation.

        Args:
            db: Async database session.
            deal_id: Pipedrive deal id.
            **fields: Calculation fields (see _CALCULATION_FIELDS).

        Returns:
            Created or updated Case.
        """
        _check_fields(fields)
        existing = await CaseRepository.get_by_deal_id(db, deal_id)
        if existing is None:
            return await CaseRepository.create(db, pipedrive_deal_id=deal_id, **fields)

        for field, value in fields.items():
            setattr(existing, field, value)
        await db.flush()
        await db.refresh(existing)
        return existing

    @staticmethod
    async def mark_generated(
        db: AsyncSession, case_id: uuid.UUID, *, at: datetime
    ) -> None:
        """Stamp last_generated_at (idempotency window anchor)."""
        row = await db.get(Case, case_id)
        if row is None:
            return
        row.last_generated_at = at
        await db.flush()


def _check_fields(fields: dict[str, object]) -> None:
    unknown = set(fields) - _CALCULATION_FIELDS
    if unknown:
        msg = f"Unknown fields: {', '.join(sorted(unknown))}"
        raise ValueError(msg)
