"""Pipedrive webhook response schema."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class WebhookResult(BaseModel):
    """Outcome of a deal webhook.

    Pipedrive retries on non-2xx, so every handled outcome (ignored, skipped,
    missing fields, generated) is a 200 with ``ok`` describing it.

    Attributes:
        ok: False only when the triggered deal lacks required fields.
        skipped: True when nothing was generated.
        reason: Why the event was skipped.
        case_id: Generated or existing case.
        url: Case link URL (generated only).
        expires_at: When the new link expires (generated only).
        missing: Labels of missing deal fields.
    """

    ok: bool = True
    skipped: bool = False
    reason: str | None = None
    case_id: uuid.UUID | None = None
    url: str | None = None
    expires_at: datetime | None = None
    missing: list[str] = Field(default_factory=list)
