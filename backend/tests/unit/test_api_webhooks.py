"""Tests for the Pipedrive deal webhook endpoint."""

from datetime import timedelta

import pytest

from app.core import notifications
from tests.conftest import TEST_WEBHOOK_SECRET

_URL = f"/api/v1/webhooks/pipedrive?secret={TEST_WEBHOOK_SECRET}"


def _payload(**current_overrides):
    current = {
        "id": 7,
        "title": "Acme Corp",
        "industry_field": "Manufacturing",
        "w2_field": "20",
        "gen_field": "42",
        "user_id": 99,
    }
    previous = dict(current, gen_field=None)
    current.update(current_overrides)
    return {"current": current, "previous": previous, "meta": {"action": "updated"}}


@pytest.fixture
def announced(monkeypatch) -> dict[str, list]:
    """Capture background notification calls instead of making HTTP calls."""
    calls: dict[str, list] = {"announce": [], "reset": []}

    async def fake_announce(**kwargs):
        calls["announce"].append(kwargs)

    async def fake_reset(deal_id):
        calls["reset"].append(deal_id)

    monkeypatch.setattr("app.api.v1.webhooks.announce_generated_case", fake_announce)
    monkeypatch.setattr("app.api.v1.webhooks.reset_generate_trigger", fake_reset)
    return calls


class TestWebhookSecret:
    """Shared secret enforcement."""

    async def test_missing_secret_is_401(self, client):
        response = await client.post("/api/v1/webhooks/pipedrive", json=_payload())

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHORIZED"

    async def test_wrong_secret_is_401(self, client, case_store):
        response = await client.post(
            "/api/v1/webhooks/pipedrive?secret=wrong", json=_payload()
        )

        assert response.status_code == 401
        assert case_store.cases == {}


class TestPipedriveWebhook:
    """Tests for POST /api/v1/webhooks/pipedrive."""

    async def test_generates_case(self, client, case_store, announced):
        response = await client.post(_URL, json=_payload())

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["ok"] is True
        assert data["skipped"] is False
        assert data["url"].startswith("https://cases.example.com/cases/")
        assert data["expires_at"].startswith("2026-04-01T12:00:00")

        case = next(iter(case_store.cases.values()))
        assert str(case.id) == data["case_id"]
        assert case.pipedrive_deal_id == "7"

        call = announced["announce"][0]
        assert call["deal_id"] == 7
        assert call["owner_id"] == 99
        assert call["case_url"] == data["url"]
        assert len(call["text_fields"]["passcode"]) == 6

    async def test_untriggered_update_is_ignored(self, client, case_store):
        payload = _payload()
        payload["previous"]["gen_field"] = "42"

        response = await client.post(_URL, json=payload)

        data = response.json()["data"]
        assert data["skipped"] is True
        assert data["reason"] == "not_triggered"
        assert case_store.cases == {}

    async def test_missing_fields_reset_trigger(self, client, announced):
        response = await client.post(_URL, json=_payload(industry_field=None))

        data = response.json()["data"]
        assert response.status_code == 200
        assert data["ok"] is False
        assert data["missing"] == ["Industry"]
        assert announced["reset"] == [7]
        assert announced["announce"] == []

    async def test_oversized_count_is_reported_missing(
        self, client, case_store, announced
    ):
        response = await client.post(_URL, json=_payload(w2_field="1e12"))

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["ok"] is False
        assert data["missing"] == ["W-2 Count"]
        assert case_store.cases == {}
        assert announced["reset"] == [7]

    async def test_duplicate_delivery_is_skipped(
        self, client, announced, link_store, clock
    ):
        first = await client.post(_URL, json=_payload())
        clock.advance(timedelta(seconds=10))

        second = await client.post(_URL, json=_payload())

        data = second.json()["data"]
        assert data["skipped"] is True
        assert data["reason"] == "idempotency_window"
        assert data["case_id"] == first.json()["data"]["case_id"]
        assert len(link_store.links) == 1
        assert len(announced["announce"]) == 1

    async def test_retrigger_after_window_issues_new_link(
        self, client, announced, link_store, clock
    ):
        await client.post(_URL, json=_payload())
        clock.advance(timedelta(minutes=5))

        response = await client.post(_URL, json=_payload(w2_field=30))

        assert response.json()["data"]["skipped"] is False
        assert len(link_store.links) == 2
        assert len(announced["announce"]) == 2

    async def test_notification_failures_do_not_affect_response(
        self, client, monkeypatch
    ):
        """Unconfigured tokens make notifications no-ops, not errors."""
        called = []
        original = notifications.update_pipedrive_deal

        async def spy(deal_id, fields):
            called.append(deal_id)
            return await original(deal_id, fields)

        monkeypatch.setattr(notifications, "update_pipedrive_deal", spy)

        response = await client.post(_URL, json=_payload())

        assert response.status_code == 200
        assert called == [7]
