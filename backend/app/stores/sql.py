"""PostgreSQL-backed stores.

Thin adapters over the repositories: convert ORM rows to records and
SQLAlchemy failures to StoreUnavailableError. The session's transaction is
owned by the caller (see ``commit_or_raise``).
"""

import logging
import uuid
from collections.abc import Awaitable
from datetime import datetime
from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import StoreUnavailableError
from app.repositories.case_link_repository import CaseLinkRepository
from app.repositories.case_repository import CaseRepository
from app.stores.base import CaseRecord, CaseStore, LinkRecord, LinkStore

if TYPE_CHECKING:
    from app.services.calculation import SavingsCalculation

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _guarded(operation: str, call: Awaitable[T]) -> T:
    try:
        return await call
    except SQLAlchemyError as exc:
        logger.error("Datastore failure during %s", operation, exc_info=True)
        raise StoreUnavailableError() from exc


def _to_link(row: Any) -> LinkRecord:
    return LinkRecord(
        id=row.id,
        case_id=row.case_id,
        token_hash=row.token_hash,
        passcode_hash=row.passcode_hash,
        expires_at=row.expires_at,
        revoked_at=row.revoked_at,
        attempt_count=row.attempt_count,
        locked_until=row.locked_until,
        view_count=row.view_count,
        last_viewed_at=row.last_viewed_at,
        created_at=row.created_at,
    )


def _to_case(row: Any) -> CaseRecord:
    return CaseRecord(
        id=row.id,
        company_name=row.company_name,
        industry=row.industry,
        status=row.status,
        calc_total=row.calc_total,
        calc_er=row.calc_er,
        calc_ee=row.calc_ee,
        calc_inputs=row.calc_inputs,
        calc_explanation=row.calc_explanation,
        pipedrive_deal_id=row.pipedrive_deal_id,
        last_generated_at=row.last_generated_at,
    )


def _calculation_fields(
    company_name: str,
    industry: str,
    calculation: "SavingsCalculation",
    generated_at: datetime,
) -> dict[str, object]:
    return {
        "company_name": company_name,
        "industry": industry,
        "status": "generated",
        "calc_total": calculation.total,
        "calc_er": calculation.employer_share,
        "calc_ee": calculation.employee_share,
        "calc_inputs": calculation.inputs,
        "calc_explanation": calculation.explanation,
        "last_generated_at": generated_at,
    }


class SqlLinkStore(LinkStore):
    """LinkStore over the case_links table."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def insert(
        self,
        *,
        case_id: uuid.UUID,
        token_hash: str,
        passcode_hash: str,
        expires_at: datetime,
    ) -> LinkRecord:
        link = await _guarded(
            "link insert",
            CaseLinkRepository.create(
                self._db,
                case_id=case_id,
                token_hash=token_hash,
                passcode_hash=passcode_hash,
                expires_at=expires_at,
            ),
        )
        return _to_link(link)

    async def find_by_token(
        self, *, case_id: uuid.UUID, token_hash: str
    ) -> LinkRecord | None:
        link = await _guarded(
            "link lookup",
            CaseLinkRepository.get_by_token(
                self._db, case_id=case_id, token_hash=token_hash
            ),
        )
        return _to_link(link) if link is not None else None

    async def get(self, link_id: uuid.UUID) -> LinkRecord | None:
        link = await _guarded(
            "link fetch", CaseLinkRepository.get_by_id(self._db, link_id)
        )
        return _to_link(link) if link is not None else None

    async def revoke_active_for_case(
        self,
        case_id: uuid.UUID,
        *,
        now: datetime,
        except_link_id: uuid.UUID | None = None,
    ) -> int:
        # Savepoint: a failed revocation must not abort the transaction that
        # holds the freshly inserted successor link.
        async def _revoke() -> int:
            async with self._db.begin_nested():
                return await CaseLinkRepository.revoke_active_for_case(
                    self._db, case_id=case_id, now=now, except_link_id=except_link_id
                )

        return await _guarded("link revocation", _revoke())

    async def revoke(self, link_id: uuid.UUID, *, now: datetime) -> bool:
        return await _guarded(
            "link revocation",
            CaseLinkRepository.revoke(self._db, link_id=link_id, now=now),
        )

    async def record_failed_attempt(
        self,
        link_id: uuid.UUID,
        *,
        now: datetime,
        max_attempts: int,
        locked_until: datetime,
    ) -> LinkRecord | None:
        row = await _guarded(
            "attempt counter update",
            CaseLinkRepository.record_failed_attempt(
                self._db,
                link_id=link_id,
                now=now,
                max_attempts=max_attempts,
                locked_until=locked_until,
            ),
        )
        return _to_link(row) if row is not None else None

    async def record_success(
        self, link_id: uuid.UUID, *, now: datetime
    ) -> LinkRecord | None:
        row = await _guarded(
            "view counter update",
            CaseLinkRepository.record_success(self._db, link_id=link_id, now=now),
        )
        return _to_link(row) if row is not None else None


class SqlCaseStore(CaseStore):
    """CaseStore over the cases table."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def get(self, case_id: uuid.UUID) -> CaseRecord | None:
        row = await _guarded("case fetch", CaseRepository.get_by_id(self._db, case_id))
        return _to_case(row) if row is not None else None

    async def get_by_external_key(self, external_key: str) -> CaseRecord | None:
        row = await _guarded(
            "case lookup", CaseRepository.get_by_deal_id(self._db, external_key)
        )
        return _to_case(row) if row is not None else None

    async def create(
        self,
        *,
        company_name: str,
        industry: str,
        calculation: "SavingsCalculation",
        generated_at: datetime,
    ) -> CaseRecord:
        row = await _guarded(
            "case insert",
            CaseRepository.create(
                self._db,
                **_calculation_fields(
                    company_name, industry, calculation, generated_at
                ),
            ),
        )
        return _to_case(row)

    async def save_calculation(
        self,
        *,
        external_key: str,
        company_name: str,
        industry: str,
        calculation: "SavingsCalculation",
        generated_at: datetime,
    ) -> CaseRecord:
        row = await _guarded(
            "case upsert",
            CaseRepository.upsert_by_deal_id(
                self._db,
                deal_id=external_key,
                **_calculation_fields(
                    company_name, industry, calculation, generated_at
                ),
            ),
        )
        return _to_case(row)

    async def mark_generated(self, case_id: uuid.UUID, *, at: datetime) -> None:
        await _guarded(
            "case stamp", CaseRepository.mark_generated(self._db, case_id, at=at)
        )
