"""Shared dependencies for API endpoints.

Stores are built per request on the request's database session; services
are built from the stores plus the policy objects derived from settings.
Tests swap the store, clock and policy providers through
``app.dependency_overrides``.
"""

from typing import Annotated

from fastapi import Depends, Query
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import CalculationRates, LinkPolicy, PipedriveFieldMap, settings
from app.core.database import get_db
from app.core.errors import UnauthorizedError
from app.core.hashing import secrets_match
from app.services.access_validator import AccessValidator
from app.services.case_generation import CaseGenerator
from app.services.link_issuance import Clock, LinkIssuer, utc_now
from app.stores import CaseStore, LinkStore, SqlCaseStore, SqlLinkStore

DbSession = Annotated[AsyncSession, Depends(get_db)]

_operator_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


# =============================================================================
# Configuration
# =============================================================================


def get_clock() -> Clock:
    """Clock used by services (overridden in tests)."""
    return utc_now


def get_link_policy() -> LinkPolicy:
    """Link lifecycle policy from settings."""
    return settings.link_policy()


def get_calculation_rates() -> CalculationRates:
    """Calculation multipliers from settings."""
    return settings.calculation_rates()


def get_pipedrive_fields() -> PipedriveFieldMap:
    """Pipedrive custom field keys from settings."""
    return settings.pipedrive_fields()


# =============================================================================
# Stores and services
# =============================================================================


def get_link_store(db: DbSession) -> LinkStore:
    """Link store bound to the request session."""
    return SqlLinkStore(db)


def get_case_store(db: DbSession) -> CaseStore:
    """Case store bound to the request session."""
    return SqlCaseStore(db)


def get_access_validator(
    link_store: Annotated[LinkStore, Depends(get_link_store)],
    case_store: Annotated[CaseStore, Depends(get_case_store)],
    policy: Annotated[LinkPolicy, Depends(get_link_policy)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> AccessValidator:
    """Access validator for the request."""
    return AccessValidator(link_store, case_store, policy, clock)


def get_link_issuer(
    link_store: Annotated[LinkStore, Depends(get_link_store)],
    policy: Annotated[LinkPolicy, Depends(get_link_policy)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> LinkIssuer:
    """Link issuer for the request."""
    return LinkIssuer(link_store, policy, clock)


def get_case_generator(
    case_store: Annotated[CaseStore, Depends(get_case_store)],
    issuer: Annotated[LinkIssuer, Depends(get_link_issuer)],
    rates: Annotated[CalculationRates, Depends(get_calculation_rates)],
    policy: Annotated[LinkPolicy, Depends(get_link_policy)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> CaseGenerator:
    """Case generator for the request."""
    return CaseGenerator(case_store, issuer, rates, policy, clock)


Validator = Annotated[AccessValidator, Depends(get_access_validator)]
Issuer = Annotated[LinkIssuer, Depends(get_link_issuer)]
Generator = Annotated[CaseGenerator, Depends(get_case_generator)]


# =============================================================================
# Authentication
# =============================================================================


def require_operator_key(
    api_key: Annotated[str | None, Depends(_operator_key_header)],
) -> None:
    """Require the operator API key in the X-API-Key header.

    Security: An unset OPERATOR_API_KEY disables operator endpoints rather
    than leaving them open.

    Raises:
        UnauthorizedError: If the key is missing, wrong or not configured.
    """
    expected = settings.operator_api_key.get_secret_value()
    if not expected or not api_key or not secrets_match(api_key, expected):
        raise UnauthorizedError()


def require_webhook_secret(
    secret: Annotated[str | None, Query()] = None,
) -> None:
    """Verify the shared secret Pipedrive appends to the webhook URL.

    Raises:
        UnauthorizedError: If the secret is missing, wrong or not configured.
    """
    expected = settings.pipedrive_webhook_secret.get_secret_value()
    if not expected or not secret or not secrets_match(secret, expected):
        raise UnauthorizedError("Invalid webhook secret")


OperatorKey = Depends(require_operator_key)
WebhookSecret = Depends(require_webhook_secret)
