"""Operator case generation request/response schemas."""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, StrictFloat, StrictInt

from app.services.case_generation import GenerationResult
from app.services.link_issuance import IssuedLink, build_case_url


class CreateCaseRequest(BaseModel):
    """Request body for POST /cases.

    Fields are loosely typed so every bad field is reported at once:
    ``validate_case_input`` produces the field labels returned to the
    operator, so pydantic only rejects wrong JSON types.

    Attributes:
        company_name: Business name.
        industry: Industry label.
        w2_count: Number of W-2 employees (positive whole number).
    """

    model_config = ConfigDict(extra="forbid")

    company_name: str | None = None
    industry: str | None = None
    w2_count: StrictInt | StrictFloat | None = None


class LinkCredentials(BaseModel):
    """Shareable link and passcode, returned exactly once."""

    link_id: uuid.UUID
    url: str
    passcode: str
    expires_at: datetime

    @classmethod
    def from_issued(cls, link: IssuedLink, base_url: str) -> "LinkCredentials":
        """Render credentials for an issued link."""
        return cls(
            link_id=link.link_id,
            url=build_case_url(base_url, link.case_id, link.raw_token),
            passcode=link.raw_passcode,
            expires_at=link.expires_at,
        )


class CalculationSummary(BaseModel):
    """Calculated amounts for a case."""

    total: Decimal
    employer_share: Decimal
    employee_share: Decimal
    explanation: str


class CaseCreatedResponse(BaseModel):
    """Response for case generation and link regeneration."""

    case_id: uuid.UUID
    company_name: str
    industry: str
    calculation: CalculationSummary
    link: LinkCredentials

    @classmethod
    def from_result(
        cls, result: GenerationResult, base_url: str
    ) -> "CaseCreatedResponse":
        """Build the response from a non-skipped generation result.

        Raises:
            ValueError: If the result carries no link.
        """
        if result.link is None:
            msg = "Generation result has no issued link"
            raise ValueError(msg)
        case = result.case
        return cls(
            case_id=case.id,
            company_name=case.company_name,
            industry=case.industry,
            calculation=CalculationSummary(
                total=case.calc_total,
                employer_share=case.calc_er,
                employee_share=case.calc_ee,
                explanation=case.calc_explanation,
            ),
            link=LinkCredentials.from_issued(result.link, base_url),
        )


class RevokeLinkResponse(BaseModel):
    """Response for administrative link revocation."""

    link_id: uuid.UUID
    revoked: bool
