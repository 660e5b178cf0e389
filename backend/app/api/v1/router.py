"""API v1 router aggregator.

All v1 endpoint routers are included here under the /api/v1 prefix.
"""

from fastapi import APIRouter

from app.api.v1 import case_access, cases, webhooks

router = APIRouter()

# =============================================================================
# Public (link holders)
# =============================================================================

router.include_router(case_access.router, prefix="/case-access", tags=["case-access"])

# =============================================================================
# Operator
# =============================================================================

router.include_router(cases.router, prefix="/cases", tags=["cases"])

# =============================================================================
# Integrations
# =============================================================================

router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
