"""Case link verification endpoint.

Public: the only credentials are the link token and passcode themselves.
"""

from fastapi import APIRouter, Request

from app.api.deps import DbSession, Validator
from app.core.config import settings
from app.core.database import commit_or_raise
from app.core.rate_limiting import limiter
from app.core.responses import DataResponse
from app.schemas.case_access import ValidateAccessRequest, ValidateAccessResponse

router = APIRouter()


@router.post("/validate")
@limiter.limit(settings.rate_limit_validate)
async def validate_case_access(
    request: Request,  # noqa: ARG001 - Required by rate limiter
    body: ValidateAccessRequest,
    validator: Validator,
    db: DbSession,
) -> DataResponse[ValidateAccessResponse]:
    """Verify a case link presentation.

    Every outcome (not found, revoked, expired, locked, awaiting passcode,
    wrong passcode, success) is a 200 whose ``state`` tells the viewer what
    to render. Only a datastore failure is an error (503).

    Args:
        request: HTTP request (required by rate limiter).
        body: Case id, token and optional passcode.
        validator: Access validator.
        db: Database session, committed before responding so attempt
            counters are durable.

    Returns:
        Verification state and, on success, the case report.
    """
    result = await validator.validate(body.case_id, body.token, body.passcode)
    await commit_or_raise(db)
    return DataResponse(data=ValidateAccessResponse.from_result(result))
