"""Operator case endpoints.

All endpoints require the operator API key (X-API-Key header). The passcode
is returned to the operator only; nothing here posts to Slack.
"""

import logging
import uuid

from fastapi import APIRouter, BackgroundTasks

from app.api.deps import DbSession, Generator, Issuer, OperatorKey
from app.core.config import settings
from app.core.database import commit_or_raise
from app.core.errors import NotFoundError
from app.core.notifications import write_case_url_to_deal
from app.core.responses import DataResponse
from app.schemas.cases import CaseCreatedResponse, CreateCaseRequest, RevokeLinkResponse

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[OperatorKey])


def _deal_id(external_key: str | None) -> int | None:
    if external_key is None or not external_key.isdigit():
        return None
    return int(external_key)


@router.post("", status_code=201)
async def create_case(
    body: CreateCaseRequest,
    generator: Generator,
    db: DbSession,
) -> DataResponse[CaseCreatedResponse]:
    """Calculate a new case and issue its link.

    Args:
        body: Business name, industry and W-2 count.
        generator: Case generator.
        db: Database session.

    Returns:
        Case, calculation and the one-time link credentials.

    Raises:
        ValidationError: If any field is missing or invalid (400).
    """
    result = await generator.generate_for_operator(
        company_name=body.company_name,
        industry=body.industry,
        w2_count=body.w2_count,
    )
    await commit_or_raise(db)
    return DataResponse(
        data=CaseCreatedResponse.from_result(result, settings.app_base_url)
    )


@router.post("/{case_id}/links", status_code=201)
async def regenerate_case_link(
    case_id: uuid.UUID,
    generator: Generator,
    db: DbSession,
    background_tasks: BackgroundTasks,
) -> DataResponse[CaseCreatedResponse]:
    """Issue a fresh link for a case, revoking the previous ones.

    CRM cases get the new URL written back to their deal after the
    response, so the deal never points at a revoked link.

    Raises:
        NotFoundError: If the case does not exist (404).
    """
    result = await generator.regenerate_link(case_id)
    await commit_or_raise(db)

    response = CaseCreatedResponse.from_result(result, settings.app_base_url)
    deal_id = _deal_id(result.case.pipedrive_deal_id)
    if deal_id is not None:
        background_tasks.add_task(write_case_url_to_deal, deal_id, response.link.url)
    elif result.case.pipedrive_deal_id is not None:
        logger.warning(
            "Case %s: deal id %r is not numeric, skipping write-back",
            case_id,
            result.case.pipedrive_deal_id,
        )
    return DataResponse(data=response)


@router.post("/{case_id}/links/{link_id}/revoke")
async def revoke_case_link(
    case_id: uuid.UUID,
    link_id: uuid.UUID,
    issuer: Issuer,
    db: DbSession,
) -> DataResponse[RevokeLinkResponse]:
    """Revoke one link of a case.

    Revoking an already revoked link is a no-op reported as
    ``revoked: false``.

    Raises:
        NotFoundError: If the link does not exist or belongs to another
            case (404).
    """
    link = await issuer.get(link_id)
    if link is None or link.case_id != case_id:
        raise NotFoundError("Case link", str(link_id))

    revoked = await issuer.revoke(link_id)
    await commit_or_raise(db)
    return DataResponse(data=RevokeLinkResponse(link_id=link_id, revoked=revoked))
