"""Case link access validation.

Each request derives its state fresh from the link row; nothing is kept
between requests. Check order:

1. token hash + case id lookup    -> NOT_FOUND
2. revoked_at set                 -> REVOKED
3. expires_at in the past         -> EXPIRED
4. locked_until in the future     -> LOCKED (no attempt is counted)
5. no passcode supplied           -> AWAITING_PASSCODE
6. passcode hash compare (constant time)
7. mismatch -> attempt counted    -> WRONG_PASSCODE or LOCKED
8. match    -> counters reset     -> SUCCESS with the case report

Steps 1-5 never write. Steps 7-8 use the store's atomic conditional
updates; if a concurrent request revoked or locked the link in between,
the state is re-derived from a fresh read instead of reporting an
outcome that was never recorded.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from app.core.config import LinkPolicy
from app.core.errors import StoreUnavailableError
from app.core.hashing import hash_secret, secrets_match
from app.services.link_issuance import Clock, utc_now
from app.stores.base import CaseRecord, CaseStore, LinkRecord, LinkStore

logger = logging.getLogger(__name__)


class AccessState(str, Enum):
    """Outcome of a link verification request."""

    NOT_FOUND = "not_found"
    REVOKED = "revoked"
    EXPIRED = "expired"
    LOCKED = "locked"
    AWAITING_PASSCODE = "awaiting_passcode"
    WRONG_PASSCODE = "wrong_passcode"
    SUCCESS = "success"


@dataclass(frozen=True)
class AccessResult:
    """Verification outcome exposed to the API layer.

    Attributes:
        state: Resulting access state.
        remaining_attempts: Attempts left before lockout (WRONG_PASSCODE).
        locked_until: When the lockout ends (LOCKED).
        case: Report data (SUCCESS only).
    """

    state: AccessState
    remaining_attempts: int | None = None
    locked_until: datetime | None = None
    case: CaseRecord | None = None

    @property
    def ok(self) -> bool:
        """True only for SUCCESS."""
        return self.state is AccessState.SUCCESS


class AccessValidator:
    """Verifies (case_id, token, passcode) presentations."""

    def __init__(
        self,
        link_store: LinkStore,
        case_store: CaseStore,
        policy: LinkPolicy,
        clock: Clock = utc_now,
    ) -> None:
        self._links = link_store
        self._cases = case_store
        self._policy = policy
        self._clock = clock

    async def validate(
        self,
        case_id: uuid.UUID,
        token: str,
        passcode: str | None = None,
    ) -> AccessResult:
        """Run the verification protocol for one request.

        Args:
            case_id: Case the link claims to open.
            token: Raw URL token.
            passcode: Raw passcode, or None to only check the link.

        Returns:
            AccessResult describing the outcome.

        Raises:
            StoreUnavailableError: If the store fails or a counter update
                cannot be confirmed.
        """
        now = self._clock()
        link = await self._links.find_by_token(
            case_id=case_id,
            token_hash=hash_secret(token, self._policy.pepper),
        )
        if link is None:
            return AccessResult(state=AccessState.NOT_FOUND)

        terminal = _terminal_state(link, now)
        if terminal is not None:
            return terminal

        if not passcode:
            return AccessResult(state=AccessState.AWAITING_PASSCODE)

        supplied_hash = hash_secret(passcode, self._policy.pepper)
        if not secrets_match(supplied_hash, link.passcode_hash):
            return await self._record_failure(link, now)
        return await self._record_success(link, now)

    async def _record_failure(self, link: LinkRecord, now: datetime) -> AccessResult:
        updated = await self._links.record_failed_attempt(
            link.id,
            now=now,
            max_attempts=self._policy.max_attempts,
            locked_until=now + self._policy.lock_duration,
        )
        if updated is None:
            return await self._rederive(link.id, now)

        if updated.attempt_count >= self._policy.max_attempts:
            logger.warning(
                "Case link %s locked after %d failed attempts",
                link.id,
                updated.attempt_count,
            )
            return AccessResult(
                state=AccessState.LOCKED, locked_until=updated.locked_until
            )

        return AccessResult(
            state=AccessState.WRONG_PASSCODE,
            remaining_attempts=self._policy.max_attempts - updated.attempt_count,
        )

    async def _record_success(self, link: LinkRecord, now: datetime) -> AccessResult:
        updated = await self._links.record_success(link.id, now=now)
        if updated is None:
            return await self._rederive(link.id, now)

        case = await self._cases.get(link.case_id)
        if case is None:
            logger.error("Case %s missing for valid link %s", link.case_id, link.id)
            return AccessResult(state=AccessState.NOT_FOUND)
        return AccessResult(state=AccessState.SUCCESS, case=case)

    async def _rederive(self, link_id: uuid.UUID, now: datetime) -> AccessResult:
        """Recompute the state after a conditional update did not apply."""
        current = await self._links.get(link_id)
        if current is None:
            return AccessResult(state=AccessState.NOT_FOUND)
        terminal = _terminal_state(current, now)
        if terminal is not None:
            return terminal
        # The condition failed but the link still looks usable: the write
        # cannot be confirmed, so do not report an unrecorded outcome.
        raise StoreUnavailableError()


def _terminal_state(link: LinkRecord, now: datetime) -> AccessResult | None:
    if link.revoked_at is not None:
        return AccessResult(state=AccessState.REVOKED)
    if link.expires_at < now:
        return AccessResult(state=AccessState.EXPIRED)
    if link.is_locked(now):
        return AccessResult(state=AccessState.LOCKED, locked_until=link.locked_until)
    return None
