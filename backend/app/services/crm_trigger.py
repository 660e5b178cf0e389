"""Pipedrive deal webhook parsing.

A deal update webhook carries the full ``current`` and ``previous`` deal
objects. Generation is triggered only when the configured "generate
proposal" field *changes to* the "yes" option. Writes we make back to the
deal (case URL, trigger reset) arrive as further webhooks; the change test
keeps them from re-triggering generation.
"""

import math
from dataclasses import dataclass, field
from typing import Any

from app.core.config import PipedriveFieldMap
from app.services.input_validation import MAX_W2_COUNT

DEAL_TITLE_LABEL = "Deal Title (company name)"
INDUSTRY_LABEL = "Industry"
W2_COUNT_LABEL = "W-2 Count"


@dataclass(frozen=True)
class DealTrigger:
    """Generation request extracted from a deal update.

    Attributes:
        deal_id: Pipedrive deal id.
        company_name: Deal title.
        industry: Industry field value.
        w2_count: Parsed W-2 count (0 when absent or unparseable).
        owner_id: Pipedrive user id of the deal owner.
        missing: Labels of required fields that are absent or invalid.
    """

    deal_id: int
    company_name: str
    industry: str
    w2_count: int
    owner_id: int | None = None
    missing: list[str] = field(default_factory=list)


def _field_str(deal: dict[str, Any], key: str) -> str:
    value = deal.get(key) if key else None
    return "" if value is None else str(value)


def _parse_count(raw: object) -> int:
    """Parse the W-2 count field; Pipedrive sends numbers or numeric strings."""
    if raw is None or isinstance(raw, bool):
        return 0
    try:
        value = float(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(value) or not value.is_integer():
        return 0
    return int(value)


def _owner_id(deal: dict[str, Any]) -> int | None:
    owner = deal.get("user_id")
    # Pipedrive v1 sends either an id or an expanded user object
    if isinstance(owner, dict):
        owner = owner.get("id")
    if isinstance(owner, int) and not isinstance(owner, bool):
        return owner
    return None


def parse_deal_event(
    payload: dict[str, Any], fields: PipedriveFieldMap
) -> DealTrigger | None:
    """Extract a generation trigger from a deal update payload.

    Args:
        payload: Webhook JSON body.
        fields: Custom field keys for this Pipedrive account.

    Returns:
        DealTrigger when the generate field changed to "yes", else None.
    """
    current = payload.get("current")
    previous = payload.get("previous")
    if not isinstance(current, dict) or not isinstance(previous, dict):
        return None

    yes = fields.generate_yes_option
    current_val = _field_str(current, fields.generate_proposal)
    previous_val = _field_str(previous, fields.generate_proposal)
    if not yes or current_val != yes or previous_val == yes:
        return None

    deal_id = current.get("id")
    if not isinstance(deal_id, int) or isinstance(deal_id, bool):
        return None

    company_name = _field_str(current, "title").strip()
    industry = _field_str(current, fields.industry).strip()
    w2_count = _parse_count(current.get(fields.w2_count) if fields.w2_count else None)

    missing: list[str] = []
    if not company_name:
        missing.append(DEAL_TITLE_LABEL)
    if not industry:
        missing.append(INDUSTRY_LABEL)
    if w2_count <= 0 or w2_count > MAX_W2_COUNT:
        missing.append(W2_COUNT_LABEL)

    return DealTrigger(
        deal_id=deal_id,
        company_name=company_name,
        industry=industry,
        w2_count=w2_count,
        owner_id=_owner_id(current),
        missing=missing,
    )
