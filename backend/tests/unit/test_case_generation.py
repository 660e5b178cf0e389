"""Tests for case generation and the duplicate-trigger guard."""

import uuid
from datetime import timedelta
from decimal import Decimal

import pytest

from app.core.errors import NotFoundError, ValidationError
from app.services.case_generation import SKIP_REASON_IDEMPOTENCY
from app.services.input_validation import INDUSTRY_LABEL, W2_COUNT_LABEL
from tests.conftest import FROZEN_NOW

_DEAL = "1001"


async def _generate(generator, **overrides):
    fields = {
        "external_key": _DEAL,
        "company_name": "Acme Corp",
        "industry": "Manufacturing",
        "w2_count": 20,
    }
    fields.update(overrides)
    return await generator.generate_from_crm(**fields)


class TestGenerateFromCrm:
    """Tests for CaseGenerator.generate_from_crm()."""

    async def test_creates_case_and_link(self, generator, case_store, link_store):
        result = await _generate(generator)

        assert result.skipped is False
        assert result.link is not None
        assert result.case.pipedrive_deal_id == _DEAL
        assert result.case.calc_total == Decimal("67120")
        assert result.case.last_generated_at == FROZEN_NOW
        assert result.case.id in case_store.cases
        assert result.link.link_id in link_store.links

    async def test_duplicate_inside_window_is_skipped(
        self, generator, link_store, clock
    ):
        """A second trigger within 60s returns the same case, no new link."""
        first = await _generate(generator)
        clock.advance(timedelta(seconds=59))

        second = await _generate(generator)

        assert second.skipped is True
        assert second.reason == SKIP_REASON_IDEMPOTENCY
        assert second.case.id == first.case.id
        assert second.link is None
        assert len(link_store.links) == 1

    async def test_trigger_after_window_regenerates(
        self, generator, link_store, clock
    ):
        """Outside the window the case is recalculated and a new link issued."""
        first = await _generate(generator)
        clock.advance(timedelta(seconds=60))

        second = await _generate(generator, w2_count=10)

        assert second.skipped is False
        assert second.case.id == first.case.id
        assert second.case.calc_total == Decimal("33560")
        assert link_store.links[first.link.link_id].revoked_at is not None

    async def test_invalid_input_raises_with_labels(self, generator, case_store):
        with pytest.raises(ValidationError) as exc_info:
            await _generate(generator, industry=" ", w2_count=0)

        assert exc_info.value.details == [
            {"field": INDUSTRY_LABEL},
            {"field": W2_COUNT_LABEL},
        ]
        assert case_store.cases == {}

    async def test_strips_names(self, generator):
        result = await _generate(generator, company_name="  Acme  ")
        assert result.case.company_name == "Acme"


class TestGenerateForOperator:
    """Tests for CaseGenerator.generate_for_operator()."""

    async def test_each_call_creates_a_new_case(self, generator, case_store):
        first = await generator.generate_for_operator(
            company_name="Acme", industry="Retail", w2_count=5
        )
        second = await generator.generate_for_operator(
            company_name="Acme", industry="Retail", w2_count=5
        )

        assert first.case.id != second.case.id
        assert first.case.pipedrive_deal_id is None
        assert len(case_store.cases) == 2

    async def test_accepts_integral_float(self, generator):
        result = await generator.generate_for_operator(
            company_name="Acme", industry="Retail", w2_count=5.0
        )
        assert result.case.calc_inputs["w2_count"] == 5

    async def test_rejects_fractional_count(self, generator):
        with pytest.raises(ValidationError, match="W-2 Count"):
            await generator.generate_for_operator(
                company_name="Acme", industry="Retail", w2_count=2.5
            )


class TestRegenerateLink:
    """Tests for CaseGenerator.regenerate_link()."""

    async def test_issues_new_link_and_stamps_case(
        self, generator, case_store, link_store, clock
    ):
        created = await _generate(generator)
        clock.advance(timedelta(hours=1))

        result = await generator.regenerate_link(created.case.id)

        assert result.link.link_id != created.link.link_id
        assert link_store.links[created.link.link_id].revoked_at == clock.now
        assert case_store.cases[created.case.id].last_generated_at == clock.now

    async def test_unknown_case(self, generator):
        with pytest.raises(NotFoundError):
            await generator.regenerate_link(uuid.uuid4())
