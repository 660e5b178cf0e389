"""Validation of operator and CRM supplied case input."""

import math

BUSINESS_NAME_LABEL = "Business Name"
INDUSTRY_LABEL = "Industry"
W2_COUNT_LABEL = "W-2 Count (must be a positive whole number)"

# Keeps count * rate inside the Numeric(14, 2) calculation columns
MAX_W2_COUNT = 1_000_000


def _is_blank(value: object) -> bool:
    return not isinstance(value, str) or not value.strip()


def is_positive_whole_number(value: object) -> bool:
    """True for finite integers > 0. Rejects bools, fractions and strings."""
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return value > 0
    if isinstance(value, float):
        return math.isfinite(value) and value.is_integer() and value > 0
    return False


def is_valid_w2_count(value: object) -> bool:
    """Positive whole number no larger than MAX_W2_COUNT."""
    return is_positive_whole_number(value) and value <= MAX_W2_COUNT  # type: ignore[operator]


def validate_case_input(
    company_name: object,
    industry: object,
    w2_count: object,
) -> list[str]:
    """Return labels of the fields that failed validation.

    Args:
        company_name: Must be a non-blank string.
        industry: Must be a non-blank string.
        w2_count: Must be a whole number from 1 to MAX_W2_COUNT.

    Returns:
        Failing field labels in field order. Empty list means valid.
    """
    errors: list[str] = []
    if _is_blank(company_name):
        errors.append(BUSINESS_NAME_LABEL)
    if _is_blank(industry):
        errors.append(INDUSTRY_LABEL)
    if not is_valid_w2_count(w2_count):
        errors.append(W2_COUNT_LABEL)
    return errors
