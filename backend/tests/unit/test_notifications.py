"""Tests for outbound Slack and Pipedrive notifications.

HTTP is served by httpx.MockTransport; no network access.
"""

import json
import logging
from datetime import UTC, datetime
from decimal import Decimal

import httpx
import pytest
from pydantic import SecretStr

from app.core import notifications
from app.core.config import settings
from app.core.notifications import (
    NotificationError,
    announce_generated_case,
    build_case_announcement,
    post_slack_message,
    reset_generate_trigger,
    resolve_owner_mention,
    update_pipedrive_deal,
    write_case_url_to_deal,
)

_RealAsyncClient = httpx.AsyncClient

_TEXT_FIELDS = {
    "company_name": "Acme Corp",
    "industry": "Manufacturing",
    "w2_count": 20,
    "calc_total": Decimal("67120"),
    "calc_er": Decimal("23720"),
    "calc_ee": Decimal("43400"),
    "case_url": "https://cases.example.com/cases/abc?t=tok",
    "passcode": "012345",
    "expires_at": datetime(2026, 4, 1, tzinfo=UTC),
}


class _RecordedRequests(list):
    """Requests seen by the mock transport, plus canned responses by path."""

    def __init__(self) -> None:
        super().__init__()
        self.responses: dict[str, httpx.Response] = {}


@pytest.fixture
def requests_seen(monkeypatch) -> _RecordedRequests:
    """Route all notification HTTP calls to a recording mock transport."""
    seen = _RecordedRequests()

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        for path, response in seen.responses.items():
            if request.url.path.endswith(path):
                return response
        return httpx.Response(200, json={"ok": True, "data": {}})

    def factory(*_args, **_kwargs) -> httpx.AsyncClient:
        return _RealAsyncClient(transport=httpx.MockTransport(handler))

    monkeypatch.setattr(notifications.httpx, "AsyncClient", factory)
    return seen


@pytest.fixture
def tokens(monkeypatch) -> None:
    monkeypatch.setattr(settings, "pipedrive_api_token", SecretStr("pd-token"))
    monkeypatch.setattr(settings, "slack_bot_token", SecretStr("xoxb-token"))
    monkeypatch.setattr(settings, "slack_default_channel", "#proposals")
    monkeypatch.setattr(settings, "pipedrive_field_case_page_url", "url_field")
    monkeypatch.setattr(settings, "pipedrive_field_generate_proposal", "gen_field")
    monkeypatch.setattr(settings, "pipedrive_base_url", "https://pd.test/v1")


class TestUpdatePipedriveDeal:
    """Tests for update_pipedrive_deal()."""

    async def test_puts_fields(self, requests_seen, tokens):  # noqa: ARG002
        await update_pipedrive_deal(7, {"url_field": "https://x"})

        request = requests_seen[0]
        assert request.method == "PUT"
        assert request.url.path == "/v1/deals/7"
        assert request.url.params["api_token"] == "pd-token"
        assert json.loads(request.content) == {"url_field": "https://x"}

    async def test_http_error_raises(self, requests_seen, tokens):  # noqa: ARG002
        requests_seen.responses["/deals/7"] = httpx.Response(500)

        with pytest.raises(NotificationError):
            await update_pipedrive_deal(7, {"a": 1})

    async def test_missing_token_raises(self, monkeypatch):
        monkeypatch.setattr(settings, "pipedrive_api_token", SecretStr(""))

        with pytest.raises(NotificationError, match="PIPEDRIVE_API_TOKEN"):
            await update_pipedrive_deal(7, {"a": 1})


class TestPostSlackMessage:
    """Tests for post_slack_message()."""

    async def test_posts_with_bearer_token(self, requests_seen, tokens):  # noqa: ARG002
        await post_slack_message("#proposals", "hello")

        request = requests_seen[0]
        assert request.url.path == "/api/chat.postMessage"
        assert request.headers["Authorization"] == "Bearer xoxb-token"
        assert json.loads(request.content) == {"channel": "#proposals", "text": "hello"}

    async def test_not_ok_raises(self, requests_seen, tokens):  # noqa: ARG002
        requests_seen.responses["/chat.postMessage"] = httpx.Response(
            200, json={"ok": False, "error": "channel_not_found"}
        )

        with pytest.raises(NotificationError, match="channel_not_found"):
            await post_slack_message("#missing", "hello")


class TestResolveOwnerMention:
    """Tests for resolve_owner_mention()."""

    async def test_resolves_mention(self, requests_seen, tokens):  # noqa: ARG002
        requests_seen.responses["/users/99"] = httpx.Response(
            200, json={"data": {"email": "owner@example.com"}}
        )
        requests_seen.responses["/users.lookupByEmail"] = httpx.Response(
            200, json={"ok": True, "user": {"id": "U123"}}
        )

        assert await resolve_owner_mention(99) == "<@U123>"
        assert requests_seen[1].url.params["email"] == "owner@example.com"

    async def test_no_owner(self, requests_seen, tokens):  # noqa: ARG002
        assert await resolve_owner_mention(None) == ""
        assert requests_seen == []

    async def test_slack_user_not_found(self, requests_seen, tokens):  # noqa: ARG002
        requests_seen.responses["/users/99"] = httpx.Response(
            200, json={"data": {"email": "owner@example.com"}}
        )
        requests_seen.responses["/users.lookupByEmail"] = httpx.Response(
            200, json={"ok": False, "error": "users_not_found"}
        )

        assert await resolve_owner_mention(99) == ""

    async def test_lookup_http_failure(self, requests_seen, tokens):  # noqa: ARG002
        requests_seen.responses["/users/99"] = httpx.Response(404)

        assert await resolve_owner_mention(99) == ""


class TestBuildCaseAnnouncement:
    """Tests for build_case_announcement()."""

    def test_contains_summary(self):
        text = build_case_announcement(owner_mention="<@U1>", **_TEXT_FIELDS)

        assert "*Deal Owner:* <@U1>" in text
        assert "*Company:* Acme Corp" in text
        assert "*W-2 Count:* 20" in text
        assert "$67,120.00" in text
        assert "$23,720.00" in text
        assert "$43,400.00" in text
        assert "*Passcode:* `012345`" in text
        assert "_Expires: 04/01/2026_" in text

    def test_omits_owner_line_without_mention(self):
        assert "Deal Owner" not in build_case_announcement(**_TEXT_FIELDS)


class TestAnnounceGeneratedCase:
    """Tests for announce_generated_case()."""

    async def test_posts_then_writes_back(self, requests_seen, tokens):  # noqa: ARG002
        await announce_generated_case(
            deal_id=7,
            owner_id=None,
            text_fields=_TEXT_FIELDS,
            case_url=_TEXT_FIELDS["case_url"],
        )

        paths = [r.url.path for r in requests_seen]
        assert paths == ["/api/chat.postMessage", "/v1/deals/7"]
        assert json.loads(requests_seen[1].content) == {
            "url_field": _TEXT_FIELDS["case_url"]
        }

    async def test_slack_failure_still_writes_back(
        self, requests_seen, tokens, caplog  # noqa: ARG002
    ):
        requests_seen.responses["/chat.postMessage"] = httpx.Response(500)

        with caplog.at_level(logging.WARNING):
            await announce_generated_case(
                deal_id=7,
                owner_id=None,
                text_fields=_TEXT_FIELDS,
                case_url=_TEXT_FIELDS["case_url"],
            )

        assert requests_seen[-1].url.path == "/v1/deals/7"
        assert "Slack post failed" in caplog.text

    async def test_operator_case_skips_write_back(
        self, requests_seen, tokens  # noqa: ARG002
    ):
        await announce_generated_case(
            deal_id=None,
            owner_id=None,
            text_fields=_TEXT_FIELDS,
            case_url=_TEXT_FIELDS["case_url"],
        )

        assert [r.url.path for r in requests_seen] == ["/api/chat.postMessage"]

    async def test_unconfigured_channel_skips_slack(
        self, requests_seen, tokens, monkeypatch  # noqa: ARG002
    ):
        monkeypatch.setattr(settings, "slack_default_channel", "")

        await announce_generated_case(
            deal_id=7,
            owner_id=None,
            text_fields=_TEXT_FIELDS,
            case_url=_TEXT_FIELDS["case_url"],
        )

        assert [r.url.path for r in requests_seen] == ["/v1/deals/7"]

    async def test_write_back_failure_is_swallowed(
        self, requests_seen, tokens  # noqa: ARG002
    ):
        requests_seen.responses["/deals/7"] = httpx.Response(503)

        await announce_generated_case(
            deal_id=7,
            owner_id=None,
            text_fields=_TEXT_FIELDS,
            case_url=_TEXT_FIELDS["case_url"],
        )



class TestWriteCaseUrlToDeal:
    """Tests for write_case_url_to_deal()."""

    async def test_puts_url_without_slack(self, requests_seen, tokens):  # noqa: ARG002
        await write_case_url_to_deal(7, "https://cases.example.com/cases/abc?t=new")

        assert [r.url.path for r in requests_seen] == ["/v1/deals/7"]
        assert json.loads(requests_seen[0].content) == {
            "url_field": "https://cases.example.com/cases/abc?t=new"
        }

    async def test_unconfigured_field_skips(
        self, requests_seen, tokens, monkeypatch  # noqa: ARG002
    ):
        monkeypatch.setattr(settings, "pipedrive_field_case_page_url", "")

        await write_case_url_to_deal(7, "https://cases.example.com/cases/abc?t=new")

        assert list(requests_seen) == []


class TestResetGenerateTrigger:
    """Tests for reset_generate_trigger()."""

    async def test_clears_trigger_field(self, requests_seen, tokens):  # noqa: ARG002
        await reset_generate_trigger(7)

        assert json.loads(requests_seen[0].content) == {"gen_field": ""}

    async def test_failure_is_swallowed(self, requests_seen, tokens):  # noqa: ARG002
        requests_seen.responses["/deals/7"] = httpx.Response(500)
        await reset_generate_trigger(7)
