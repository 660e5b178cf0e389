"""Pydantic request/response schemas for API endpoints."""

from app.schemas.case_access import (
    CaseReport,
    ValidateAccessRequest,
    ValidateAccessResponse,
)
from app.schemas.cases import (
    CalculationSummary,
    CaseCreatedResponse,
    CreateCaseRequest,
    LinkCredentials,
    RevokeLinkResponse,
)
from app.schemas.webhooks import WebhookResult

__all__ = [
    # Case access
    "CaseReport",
    "ValidateAccessRequest",
    "ValidateAccessResponse",
    # Operator cases
    "CalculationSummary",
    "CaseCreatedResponse",
    "CreateCaseRequest",
    "LinkCredentials",
    "RevokeLinkResponse",
    # Webhooks
    "WebhookResult",
]
