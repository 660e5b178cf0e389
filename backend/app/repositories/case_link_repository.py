"""Repository for CaseLink operations.

Counter mutations are single conditional UPDATE ... RETURNING statements so
concurrent verifications against the same link cannot lose an increment.
"""

import uuid
from datetime import datetime
from typing import Any, cast

from sqlalchemy import Row, case, or_, select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.case_link import CaseLink

# Columns returned by conditional updates (mirrors the store's LinkRecord)
_RETURNED_COLUMNS = (
    CaseLink.id,
    CaseLink.case_id,
    CaseLink.token_hash,
    CaseLink.passcode_hash,
    CaseLink.expires_at,
    CaseLink.revoked_at,
    CaseLink.attempt_count,
    CaseLink.locked_until,
    CaseLink.view_count,
    CaseLink.last_viewed_at,
    CaseLink.created_at,
)


def _usable_at(now: datetime) -> list:
    """WHERE criteria: link not revoked and not currently locked."""
    return [
        CaseLink.revoked_at.is_(None),
        or_(CaseLink.locked_until.is_(None), CaseLink.locked_until <= now),
    ]


class CaseLinkRepository:
    """Stateless repository for CaseLink table operations.

    All methods are static, with no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        case_id: uuid.UUID,
        token_hash: str,
        passcode_hash: str,
        expires_at: datetime,
    ) -> CaseLink:
        """Store a new link with zeroed counters.

        Args:
            db: Async database session.
            case_id: Case the link opens.
            token_hash: Peppered hash of the raw token.
            passcode_hash: Peppered hash of the raw passcode.
            expires_at: Absolute expiry.

        Returns:
            Created CaseLink with database-generated fields populated.

        Raises:
            sqlalchemy.exc.IntegrityError: If token_hash already exists.
        """
        link = CaseLink(
            case_id=case_id,
            token_hash=token_hash,
            passcode_hash=passcode_hash,
            expires_at=expires_at,
            attempt_count=0,
            view_count=0,
        )
        db.add(link)
        await db.flush()
        await db.refresh(link)
        return link

    @staticmethod
    async def get_by_id(db: AsyncSession, link_id: uuid.UUID) -> CaseLink | None:
        """Fetch a link by primary key."""
        stmt = select(CaseLink).where(CaseLink.id == link_id)
        result = await db.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_token(
        db: AsyncSession,
        *,
        case_id: uuid.UUID,
        token_hash: str,
    ) -> CaseLink | None:
        """Look up a link by (token_hash, case_id).

        Args:
            db: Async database session.
            case_id: Case the link must belong to.
            token_hash: Peppered hash of the presented token.

        Returns:
            CaseLink if found, None otherwise.
        """
        stmt = select(CaseLink).where(
            CaseLink.token_hash == token_hash,
            CaseLink.case_id == case_id,
        )
        result = await db.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    @staticmethod
    async def revoke_active_for_case(
        db: AsyncSession,
        *,
        case_id: uuid.UUID,
        now: datetime,
        except_link_id: uuid.UUID | None = None,
    ) -> int:
        """Revoke every non-revoked link of a case.

        Args:
            db: Async database session.
            case_id: Case whose links are revoked.
            now: Revocation timestamp.
            except_link_id: Link to leave untouched (the new successor).

        Returns:
            Number of revoked rows.
        """
        stmt = update(CaseLink).where(
            CaseLink.case_id == case_id,
            CaseLink.revoked_at.is_(None),
        )
        if except_link_id is not None:
            stmt = stmt.where(CaseLink.id != except_link_id)
        result = cast(
            CursorResult[Any],
            await db.execute(
                stmt.values(revoked_at=now).execution_options(
                    synchronize_session=False
                )
            ),
        )
        row_count: int = result.rowcount
        return row_count

    @staticmethod
    async def revoke(db: AsyncSession, *, link_id: uuid.UUID, now: datetime) -> bool:
        """Revoke one link. Returns False if missing or already revoked."""
        stmt = (
            update(CaseLink)
            .where(CaseLink.id == link_id, CaseLink.revoked_at.is_(None))
            .values(revoked_at=now)
            .execution_options(synchronize_session=False)
        )
        result = cast(CursorResult[Any], await db.execute(stmt))
        rows_updated: int = result.rowcount
        return rows_updated > 0

    @staticmethod
    async def record_failed_attempt(
        db: AsyncSession,
        *,
        link_id: uuid.UUID,
        now: datetime,
        max_attempts: int,
        locked_until: datetime,
    ) -> Row | None:
        """Atomically count a wrong passcode and lock at the threshold.

        The increment and the lock decision happen in one statement, so two
        concurrent wrong attempts at attempt_count = 9 produce 10 and 11,
        never 10 twice.

        Args:
            db: Async database session.
            link_id: Link being verified.
            now: Current time (lock check).
            max_attempts: Count at which the link locks.
            locked_until: Lock end to set when the threshold is reached.

        Returns:
            Updated row, or None if the link was revoked or locked meanwhile.
        """
        new_count = CaseLink.attempt_count + 1
        stmt = (
            update(CaseLink)
            .where(CaseLink.id == link_id, *_usable_at(now))
            .values(
                attempt_count=new_count,
                locked_until=case(
                    (new_count >= max_attempts, locked_until),
                    else_=CaseLink.locked_until,
                ),
            )
            .returning(*_RETURNED_COLUMNS)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.one_or_none()

    @staticmethod
    async def record_success(
        db: AsyncSession,
        *,
        link_id: uuid.UUID,
        now: datetime,
    ) -> Row | None:
        """Atomically reset attempts and count a view.

        Args:
            db: Async database session.
            link_id: Link being verified.
            now: Current time (lock check and last_viewed_at).

        Returns:
            Updated row, or None if the link was revoked or locked meanwhile.
        """
        stmt = (
            update(CaseLink)
            .where(CaseLink.id == link_id, *_usable_at(now))
            .values(
                attempt_count=0,
                view_count=CaseLink.view_count + 1,
                last_viewed_at=now,
            )
            .returning(*_RETURNED_COLUMNS)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.one_or_none()
