"""Case link issuance and rotation.

Issuing a link creates a fresh token + passcode pair for a case and
revokes every predecessor. The successor is persisted first: if the insert
fails nothing has been revoked, so a case is never left without a working
link. Revoking predecessors is best effort; a failure there leaves stale
links usable until their own expiry.
"""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from app.core.config import LinkPolicy
from app.core.errors import StoreUnavailableError
from app.core.hashing import generate_passcode, generate_token, hash_secret
from app.stores.base import LinkRecord, LinkStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock."""
    return datetime.now(UTC)


@dataclass(frozen=True)
class IssuedLink:
    """Raw credentials of a newly issued link.

    The raw values exist only here; the store keeps hashes. Callers must
    hand them to the recipient once and drop them.

    Attributes:
        link_id: Persisted link id.
        case_id: Case the link opens.
        raw_token: URL token.
        raw_passcode: Six digit passcode.
        expires_at: Absolute expiry.
    """

    link_id: uuid.UUID
    case_id: uuid.UUID
    raw_token: str
    raw_passcode: str
    expires_at: datetime

    def __repr__(self) -> str:
        # Keep raw secrets out of logs and tracebacks
        return (
            f"IssuedLink(link_id={self.link_id!s}, case_id={self.case_id!s}, "
            f"expires_at={self.expires_at.isoformat()})"
        )


def build_case_url(base_url: str, case_id: uuid.UUID, raw_token: str) -> str:
    """Render the shareable viewer URL for a case link."""
    return f"{base_url.rstrip('/')}/cases/{case_id}?t={raw_token}"


class LinkIssuer:
    """Creates credential pairs and supersedes older ones."""

    def __init__(
        self,
        link_store: LinkStore,
        policy: LinkPolicy,
        clock: Clock = utc_now,
    ) -> None:
        self._links = link_store
        self._policy = policy
        self._clock = clock

    async def issue(self, case_id: uuid.UUID) -> IssuedLink:
        """Issue a new link for a case and revoke its predecessors.

        Args:
            case_id: Case to issue the link for.

        Returns:
            IssuedLink with the raw token and passcode.

        Raises:
            StoreUnavailableError: If the new link could not be persisted.
        """
        now = self._clock()
        raw_token = generate_token()
        raw_passcode = generate_passcode()
        expires_at = now + self._policy.link_expiry

        link = await self._links.insert(
            case_id=case_id,
            token_hash=hash_secret(raw_token, self._policy.pepper),
            passcode_hash=hash_secret(raw_passcode, self._policy.pepper),
            expires_at=expires_at,
        )

        try:
            revoked = await self._links.revoke_active_for_case(
                case_id, now=now, except_link_id=link.id
            )
        except StoreUnavailableError:
            logger.warning(
                "Failed to revoke previous links for case %s; continuing", case_id
            )
        else:
            if revoked:
                logger.info("Revoked %d previous link(s) for case %s", revoked, case_id)

        return IssuedLink(
            link_id=link.id,
            case_id=case_id,
            raw_token=raw_token,
            raw_passcode=raw_passcode,
            expires_at=expires_at,
        )

    async def get(self, link_id: uuid.UUID) -> LinkRecord | None:
        """Fetch a link by id."""
        return await self._links.get(link_id)

    async def revoke(self, link_id: uuid.UUID) -> bool:
        """Administratively revoke one link.

        Returns:
            True if the link was active and is now revoked.
        """
        revoked = await self._links.revoke(link_id, now=self._clock())
        if revoked:
            logger.info("Link %s revoked by operator", link_id)
        return revoked
