"""Case link verification request/response schemas.

The viewer posts the case id and token from the magic link URL, first
without a passcode (to learn whether the link is live) and then with the
passcode the recipient typed in.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.services.access_validator import AccessResult, AccessState
from app.stores.base import CaseRecord

# Upper bounds only reject absurd payloads; a wrong length simply fails the
# hash lookup as NOT_FOUND.
_MAX_TOKEN_LENGTH = 128
_MAX_PASSCODE_LENGTH = 16


class ValidateAccessRequest(BaseModel):
    """Request body for POST /case-access/validate.

    Attributes:
        case_id: Case id from the link path.
        token: Raw token from the link query string.
        passcode: Six digit passcode; omit to only check the link.
    """

    model_config = ConfigDict(extra="forbid")

    case_id: uuid.UUID
    token: str = Field(..., min_length=1, max_length=_MAX_TOKEN_LENGTH)
    passcode: str | None = Field(default=None, max_length=_MAX_PASSCODE_LENGTH)


class CaseReport(BaseModel):
    """Report data released after a successful verification."""

    id: uuid.UUID
    company_name: str
    industry: str
    calc_total: Decimal
    calc_er: Decimal
    calc_ee: Decimal
    calc_inputs: dict[str, Any]
    calc_explanation: str

    @classmethod
    def from_record(cls, case: CaseRecord) -> "CaseReport":
        """Build the public report from a stored case."""
        return cls(
            id=case.id,
            company_name=case.company_name,
            industry=case.industry,
            calc_total=case.calc_total,
            calc_er=case.calc_er,
            calc_ee=case.calc_ee,
            calc_inputs=case.calc_inputs,
            calc_explanation=case.calc_explanation,
        )


class ValidateAccessResponse(BaseModel):
    """Verification outcome.

    Only the fields relevant to ``state`` are set: ``remaining_attempts``
    for WRONG_PASSCODE, ``locked_until`` for LOCKED, ``case`` for SUCCESS.
    """

    state: AccessState
    remaining_attempts: int | None = None
    locked_until: datetime | None = None
    case: CaseReport | None = None

    @classmethod
    def from_result(cls, result: AccessResult) -> "ValidateAccessResponse":
        """Map a validator result onto the response shape."""
        return cls(
            state=result.state,
            remaining_attempts=result.remaining_attempts,
            locked_until=result.locked_until,
            case=CaseReport.from_record(result.case) if result.case else None,
        )
