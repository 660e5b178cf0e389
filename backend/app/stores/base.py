"""Abstract store interfaces and record types for cases and links.

Services depend only on these interfaces. ``SqlLinkStore``/``SqlCaseStore``
back them with PostgreSQL; the in-memory variants back unit tests and
local runs without a database.

Every implementation must make ``record_failed_attempt`` and
``record_success`` atomic per link: the condition check and the counter
write happen as one operation.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from app.services.calculation import SavingsCalculation


@dataclass(frozen=True)
class LinkRecord:
    """Persisted lifecycle state of one case link.

    Attributes:
        id: Link identifier.
        case_id: Case the link opens.
        token_hash: Peppered hash of the URL token.
        passcode_hash: Peppered hash of the passcode.
        expires_at: Absolute expiry.
        revoked_at: Revocation time, None while active.
        attempt_count: Failed passcode attempts since the last success.
        locked_until: Lockout end, None if never locked.
        view_count: Successful verifications.
        last_viewed_at: Last successful verification.
        created_at: Issuance time.
    """

    id: uuid.UUID
    case_id: uuid.UUID
    token_hash: str
    passcode_hash: str
    expires_at: datetime
    revoked_at: datetime | None
    attempt_count: int
    locked_until: datetime | None
    view_count: int
    last_viewed_at: datetime | None
    created_at: datetime

    def is_locked(self, now: datetime) -> bool:
        """True while a lockout is in effect."""
        return self.locked_until is not None and self.locked_until > now


@dataclass(frozen=True)
class CaseRecord:
    """Case row as seen by services."""

    id: uuid.UUID
    company_name: str
    industry: str
    status: str
    calc_total: Decimal
    calc_er: Decimal
    calc_ee: Decimal
    calc_inputs: dict[str, Any]
    calc_explanation: str
    pipedrive_deal_id: str | None = None
    last_generated_at: datetime | None = None


class LinkStore(ABC):
    """Storage operations for case links."""

    @abstractmethod
    async def insert(
        self,
        *,
        case_id: uuid.UUID,
        token_hash: str,
        passcode_hash: str,
        expires_at: datetime,
    ) -> LinkRecord:
        """Persist a new link with zeroed counters.

        Raises:
            StoreUnavailableError: If the row could not be written.
        """
        ...

    @abstractmethod
    async def find_by_token(
        self, *, case_id: uuid.UUID, token_hash: str
    ) -> LinkRecord | None:
        """Look up a link by (token_hash, case_id)."""
        ...

    @abstractmethod
    async def get(self, link_id: uuid.UUID) -> LinkRecord | None:
        """Fetch a link by id."""
        ...

    @abstractmethod
    async def revoke_active_for_case(
        self,
        case_id: uuid.UUID,
        *,
        now: datetime,
        except_link_id: uuid.UUID | None = None,
    ) -> int:
        """Revoke all non-revoked links of a case. Returns the count."""
        ...

    @abstractmethod
    async def revoke(self, link_id: uuid.UUID, *, now: datetime) -> bool:
        """Revoke one link. False if missing or already revoked."""
        ...

    @abstractmethod
    async def record_failed_attempt(
        self,
        link_id: uuid.UUID,
        *,
        now: datetime,
        max_attempts: int,
        locked_until: datetime,
    ) -> LinkRecord | None:
        """Increment attempt_count; lock when it reaches max_attempts.

        Applies only while the link is not revoked and not locked.

        Returns:
            Updated record, or None if the condition did not hold.
        """
        ...

    @abstractmethod
    async def record_success(
        self, link_id: uuid.UUID, *, now: datetime
    ) -> LinkRecord | None:
        """Reset attempt_count, increment view_count, set last_viewed_at.

        Applies only while the link is not revoked and not locked.

        Returns:
            Updated record, or None if the condition did not hold.
        """
        ...


class CaseStore(ABC):
    """Storage operations for cases."""

    @abstractmethod
    async def get(self, case_id: uuid.UUID) -> CaseRecord | None:
        """Fetch a case by id."""
        ...

    @abstractmethod
    async def get_by_external_key(self, external_key: str) -> CaseRecord | None:
        """Fetch a case by its CRM deal id."""
        ...

    @abstractmethod
    async def create(
        self,
        *,
        company_name: str,
        industry: str,
        calculation: "SavingsCalculation",
        generated_at: datetime,
    ) -> CaseRecord:
        """Create a case without an external key."""
        ...

    @abstractmethod
    async def save_calculation(
        self,
        *,
        external_key: str,
        company_name: str,
        industry: str,
        calculation: "SavingsCalculation",
        generated_at: datetime,
    ) -> CaseRecord:
        """Create or overwrite the case for an external key."""
        ...

    @abstractmethod
    async def mark_generated(self, case_id: uuid.UUID, *, at: datetime) -> None:
        """Stamp last_generated_at."""
        ...
