"""Case generation with a duplicate-trigger guard.

CRM webhooks are delivered at least once and staff sometimes toggle the
trigger field twice, so one logical "generate" can arrive several times.
Before recalculating a CRM case, the generator checks ``last_generated_at``
and skips when it falls inside the idempotency window. This is a coarse
de-duplication, not a lock: a second generation outside the window simply
issues a fresh link, which is exactly what an explicit regenerate does.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import cast

from app.core.config import CalculationRates, LinkPolicy
from app.core.errors import NotFoundError, ValidationError
from app.services.calculation import SavingsCalculation, calculate_savings
from app.services.input_validation import validate_case_input
from app.services.link_issuance import Clock, IssuedLink, LinkIssuer, utc_now
from app.stores.base import CaseRecord, CaseStore

logger = logging.getLogger(__name__)

SKIP_REASON_IDEMPOTENCY = "idempotency_window"


@dataclass(frozen=True)
class GenerationResult:
    """Outcome of a generation request.

    Attributes:
        case: The created, updated or (when skipped) existing case.
        link: Newly issued credentials. None when skipped.
        skipped: True when the request was a duplicate trigger.
        reason: Why the request was skipped.
    """

    case: CaseRecord
    link: IssuedLink | None = None
    skipped: bool = False
    reason: str | None = None


def _require_valid(company_name: object, industry: object, w2_count: object) -> None:
    missing = validate_case_input(company_name, industry, w2_count)
    if missing:
        raise ValidationError(
            f"Missing or invalid fields: {', '.join(missing)}",
            details=[{"field": label} for label in missing],
        )


class CaseGenerator:
    """Calculates cases and issues their links."""

    def __init__(
        self,
        case_store: CaseStore,
        issuer: LinkIssuer,
        rates: CalculationRates,
        policy: LinkPolicy,
        clock: Clock = utc_now,
    ) -> None:
        self._cases = case_store
        self._issuer = issuer
        self._rates = rates
        self._policy = policy
        self._clock = clock

    def _calculate(self, w2_count: int | float) -> SavingsCalculation:
        return calculate_savings(int(w2_count), self._rates)

    async def generate_from_crm(
        self,
        *,
        external_key: str,
        company_name: str,
        industry: str,
        w2_count: int,
    ) -> GenerationResult:
        """Generate (or regenerate) the case for a CRM deal.

        Args:
            external_key: CRM deal id.
            company_name: Deal title.
            industry: Industry label.
            w2_count: W-2 employee count.

        Returns:
            GenerationResult; ``skipped`` when a generation for the same
            deal happened inside the idempotency window.

        Raises:
            ValidationError: If any field is missing or invalid.
        """
        _require_valid(company_name, industry, w2_count)
        now = self._clock()

        existing = await self._cases.get_by_external_key(external_key)
        if existing is not None and existing.last_generated_at is not None:
            if now - existing.last_generated_at < self._policy.idempotency_window:
                logger.info(
                    "Deal %s: within idempotency window (%ss), skipping",
                    external_key,
                    int(self._policy.idempotency_window.total_seconds()),
                )
                return GenerationResult(
                    case=existing, skipped=True, reason=SKIP_REASON_IDEMPOTENCY
                )

        case = await self._cases.save_calculation(
            external_key=external_key,
            company_name=company_name.strip(),
            industry=industry.strip(),
            calculation=self._calculate(w2_count),
            generated_at=now,
        )
        link = await self._issuer.issue(case.id)
        logger.info("Deal %s: generated case %s", external_key, case.id)
        return GenerationResult(case=case, link=link)

    async def generate_for_operator(
        self,
        *,
        company_name: object,
        industry: object,
        w2_count: object,
    ) -> GenerationResult:
        """Create a new case from operator input and issue its link.

        Raises:
            ValidationError: If any field is missing or invalid.
        """
        _require_valid(company_name, industry, w2_count)

        case = await self._cases.create(
            company_name=cast(str, company_name).strip(),
            industry=cast(str, industry).strip(),
            calculation=self._calculate(cast(int, w2_count)),
            generated_at=self._clock(),
        )
        link = await self._issuer.issue(case.id)
        logger.info("Operator generated case %s", case.id)
        return GenerationResult(case=case, link=link)

    async def regenerate_link(self, case_id: uuid.UUID) -> GenerationResult:
        """Issue a fresh link for an existing case.

        Raises:
            NotFoundError: If the case does not exist.
        """
        case = await self._cases.get(case_id)
        if case is None:
            raise NotFoundError("Case", str(case_id))

        link = await self._issuer.issue(case.id)
        await self._cases.mark_generated(case.id, at=self._clock())
        logger.info("Regenerated link for case %s", case.id)
        return GenerationResult(case=case, link=link)
