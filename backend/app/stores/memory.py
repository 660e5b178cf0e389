"""In-memory stores for tests and database-free local runs.

Safe for async/await usage on a single event loop: no mutation awaits
between reading and writing a record, so each operation is atomic with
respect to other tasks. Not safe for multi-threaded access.

Attributes on both stores let tests inject failures:
``fail_next`` makes the next call of the named operation raise
StoreUnavailableError.
"""

import dataclasses
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from app.core.errors import StoreUnavailableError
from app.stores.base import CaseRecord, CaseStore, LinkRecord, LinkStore

if TYPE_CHECKING:
    from app.services.calculation import SavingsCalculation


class _FailureInjection:
    def __init__(self) -> None:
        self.fail_next: set[str] = set()

    def _check(self, operation: str) -> None:
        if operation in self.fail_next:
            self.fail_next.discard(operation)
            raise StoreUnavailableError()


class InMemoryLinkStore(_FailureInjection, LinkStore):
    """Dict-backed LinkStore."""

    def __init__(self) -> None:
        super().__init__()
        self.links: dict[uuid.UUID, LinkRecord] = {}

    def _usable(self, link: LinkRecord, now: datetime) -> bool:
        return link.revoked_at is None and not link.is_locked(now)

    async def insert(
        self,
        *,
        case_id: uuid.UUID,
        token_hash: str,
        passcode_hash: str,
        expires_at: datetime,
    ) -> LinkRecord:
        self._check("insert")
        if any(link.token_hash == token_hash for link in self.links.values()):
            # Unique index on token_hash
            raise StoreUnavailableError()
        link = LinkRecord(
            id=uuid.uuid4(),
            case_id=case_id,
            token_hash=token_hash,
            passcode_hash=passcode_hash,
            expires_at=expires_at,
            revoked_at=None,
            attempt_count=0,
            locked_until=None,
            view_count=0,
            last_viewed_at=None,
            created_at=datetime.now(UTC),
        )
        self.links[link.id] = link
        return link

    async def find_by_token(
        self, *, case_id: uuid.UUID, token_hash: str
    ) -> LinkRecord | None:
        self._check("find_by_token")
        for link in self.links.values():
            if link.token_hash == token_hash and link.case_id == case_id:
                return link
        return None

    async def get(self, link_id: uuid.UUID) -> LinkRecord | None:
        self._check("get")
        return self.links.get(link_id)

    async def revoke_active_for_case(
        self,
        case_id: uuid.UUID,
        *,
        now: datetime,
        except_link_id: uuid.UUID | None = None,
    ) -> int:
        self._check("revoke_active_for_case")
        revoked = 0
        for link in list(self.links.values()):
            if (
                link.case_id == case_id
                and link.revoked_at is None
                and link.id != except_link_id
            ):
                self.links[link.id] = dataclasses.replace(link, revoked_at=now)
                revoked += 1
        return revoked

    async def revoke(self, link_id: uuid.UUID, *, now: datetime) -> bool:
        self._check("revoke")
        link = self.links.get(link_id)
        if link is None or link.revoked_at is not None:
            return False
        self.links[link_id] = dataclasses.replace(link, revoked_at=now)
        return True

    async def record_failed_attempt(
        self,
        link_id: uuid.UUID,
        *,
        now: datetime,
        max_attempts: int,
        locked_until: datetime,
    ) -> LinkRecord | None:
        self._check("record_failed_attempt")
        link = self.links.get(link_id)
        if link is None or not self._usable(link, now):
            return None
        new_count = link.attempt_count + 1
        updated = dataclasses.replace(
            link,
            attempt_count=new_count,
            locked_until=(
                locked_until if new_count >= max_attempts else link.locked_until
            ),
        )
        self.links[link_id] = updated
        return updated

    async def record_success(
        self, link_id: uuid.UUID, *, now: datetime
    ) -> LinkRecord | None:
        self._check("record_success")
        link = self.links.get(link_id)
        if link is None or not self._usable(link, now):
            return None
        updated = dataclasses.replace(
            link,
            attempt_count=0,
            view_count=link.view_count + 1,
            last_viewed_at=now,
        )
        self.links[link_id] = updated
        return updated


class InMemoryCaseStore(_FailureInjection, CaseStore):
    """Dict-backed CaseStore."""

    def __init__(self) -> None:
        super().__init__()
        self.cases: dict[uuid.UUID, CaseRecord] = {}

    async def get(self, case_id: uuid.UUID) -> CaseRecord | None:
        self._check("get")
        return self.cases.get(case_id)

    async def get_by_external_key(self, external_key: str) -> CaseRecord | None:
        self._check("get_by_external_key")
        for record in self.cases.values():
            if record.pipedrive_deal_id == external_key:
                return record
        return None

    async def create(
        self,
        *,
        company_name: str,
        industry: str,
        calculation: "SavingsCalculation",
        generated_at: datetime,
    ) -> CaseRecord:
        self._check("create")
        record = _build_case(
            uuid.uuid4(), None, company_name, industry, calculation, generated_at
        )
        self.cases[record.id] = record
        return record

    async def save_calculation(
        self,
        *,
        external_key: str,
        company_name: str,
        industry: str,
        calculation: "SavingsCalculation",
        generated_at: datetime,
    ) -> CaseRecord:
        self._check("save_calculation")
        existing = await self.get_by_external_key(external_key)
        case_id = existing.id if existing is not None else uuid.uuid4()
        record = _build_case(
            case_id, external_key, company_name, industry, calculation, generated_at
        )
        self.cases[case_id] = record
        return record

    async def mark_generated(self, case_id: uuid.UUID, *, at: datetime) -> None:
        self._check("mark_generated")
        record = self.cases.get(case_id)
        if record is not None:
            self.cases[case_id] = dataclasses.replace(record, last_generated_at=at)


def _build_case(
    case_id: uuid.UUID,
    external_key: str | None,
    company_name: str,
    industry: str,
    calculation: "SavingsCalculation",
    generated_at: datetime,
) -> CaseRecord:
    return CaseRecord(
        id=case_id,
        company_name=company_name,
        industry=industry,
        status="generated",
        calc_total=calculation.total,
        calc_er=calculation.employer_share,
        calc_ee=calculation.employee_share,
        calc_inputs=dict(calculation.inputs),
        calc_explanation=calculation.explanation,
        pipedrive_deal_id=external_key,
        last_generated_at=generated_at,
    )
