"""Case link model - magic link token + passcode credential pair.

Only peppered SHA-256 hashes are stored. Rows are never deleted in normal
operation: revoked and expired links stay for audit.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, func, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base

if TYPE_CHECKING:
    from app.models.case import Case

_DEFAULT_UUID = text("gen_random_uuid()")


class CaseLink(Base):
    """Credential pair granting bearer access to one case.

    Attributes:
        id: UUID primary key.
        case_id: FK to the case this link opens.
        token_hash: Peppered hash of the URL token. Globally unique.
        passcode_hash: Peppered hash of the six digit passcode.
        expires_at: Absolute expiry, immutable after creation.
        revoked_at: Set once when superseded or revoked by an operator.
        attempt_count: Failed passcode attempts since the last success.
        locked_until: Lockout end after too many failed attempts.
        view_count: Successful verifications.
        last_viewed_at: Time of the last successful verification.
        created_at: Issuance timestamp.
    """

    __tablename__ = "case_links"
    __table_args__ = (
        Index("uq_case_links_token_hash", "token_hash", unique=True),
        Index("idx_case_links_case_id", "case_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=_DEFAULT_UUID,
    )
    case_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("cases.id", ondelete="CASCADE"),
        nullable=False,
    )
    token_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    passcode_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(
        nullable=False,
    )
    revoked_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    attempt_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        server_default=text("0"),
        default=0,
    )
    locked_until: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    view_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        server_default=text("0"),
        default=0,
    )
    last_viewed_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    case: Mapped["Case"] = relationship(
        "Case",
        back_populates="links",
    )
