"""Pipedrive deal webhook.

Pipedrive calls ``POST /webhooks/pipedrive?secret=...`` on every deal
update. The shared secret is checked before the body is looked at.
Outbound Slack and Pipedrive calls run as background tasks after the
response, so a slow or failing third party never delays the webhook.
"""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, BackgroundTasks, Body, Depends

from app.api.deps import DbSession, Generator, WebhookSecret, get_pipedrive_fields
from app.core.config import PipedriveFieldMap, settings
from app.core.database import commit_or_raise
from app.core.notifications import announce_generated_case, reset_generate_trigger
from app.core.responses import DataResponse
from app.schemas.webhooks import WebhookResult
from app.services.crm_trigger import parse_deal_event
from app.services.link_issuance import build_case_url

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[WebhookSecret])

SKIP_REASON_NOT_TRIGGERED = "not_triggered"


@router.post("/pipedrive")
async def pipedrive_deal_webhook(
    payload: Annotated[dict[str, Any], Body()],
    fields: Annotated[PipedriveFieldMap, Depends(get_pipedrive_fields)],
    generator: Generator,
    db: DbSession,
    background_tasks: BackgroundTasks,
) -> DataResponse[WebhookResult]:
    """Generate a case when a deal's "generate proposal" field flips to yes.

    Args:
        payload: Pipedrive webhook body with ``current`` and ``previous``.
        fields: Custom field keys for this Pipedrive account.
        generator: Case generator.
        db: Database session.
        background_tasks: Notifications run after the response.

    Returns:
        WebhookResult describing what happened.
    """
    trigger = parse_deal_event(payload, fields)
    if trigger is None:
        return DataResponse(
            data=WebhookResult(skipped=True, reason=SKIP_REASON_NOT_TRIGGERED)
        )

    if trigger.missing:
        logger.warning(
            "Deal %s: missing fields %s", trigger.deal_id, ", ".join(trigger.missing)
        )
        background_tasks.add_task(reset_generate_trigger, trigger.deal_id)
        return DataResponse(
            data=WebhookResult(ok=False, skipped=True, missing=trigger.missing)
        )

    result = await generator.generate_from_crm(
        external_key=str(trigger.deal_id),
        company_name=trigger.company_name,
        industry=trigger.industry,
        w2_count=trigger.w2_count,
    )
    await commit_or_raise(db)

    if result.skipped or result.link is None:
        return DataResponse(
            data=WebhookResult(
                skipped=True, reason=result.reason, case_id=result.case.id
            )
        )

    case = result.case
    link = result.link
    url = build_case_url(settings.app_base_url, case.id, link.raw_token)
    background_tasks.add_task(
        announce_generated_case,
        deal_id=trigger.deal_id,
        owner_id=trigger.owner_id,
        text_fields={
            "company_name": case.company_name,
            "industry": case.industry,
            "w2_count": trigger.w2_count,
            "calc_total": case.calc_total,
            "calc_er": case.calc_er,
            "calc_ee": case.calc_ee,
            "case_url": url,
            "passcode": link.raw_passcode,
            "expires_at": link.expires_at,
        },
        case_url=url,
    )
    return DataResponse(
        data=WebhookResult(case_id=case.id, url=url, expires_at=link.expires_at)
    )
