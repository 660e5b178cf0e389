"""Outbound notifications to Pipedrive and Slack.

Fire-and-forget HTTP calls made after a case link has been created. They
run as background tasks; every failure is logged and swallowed because the
case and link already exist and the response has been sent.
"""

import logging
from datetime import datetime
from typing import Any

import httpx

from app.core.config import settings
from app.services.calculation import format_usd

logger = logging.getLogger(__name__)

_SLACK_API_URL = "https://slack.com/api"
_HTTP_TIMEOUT = 10.0


class NotificationError(Exception):
    """Raised by the HTTP helpers; caught by announce_* callers."""


async def update_pipedrive_deal(deal_id: int, fields: dict[str, Any]) -> None:
    """PUT custom field values onto a Pipedrive deal.

    Raises:
        NotificationError: On HTTP failure or missing API token.
    """
    token = settings.pipedrive_api_token.get_secret_value()
    if not token:
        raise NotificationError("PIPEDRIVE_API_TOKEN is not set")

    url = f"{settings.pipedrive_base_url.rstrip('/')}/deals/{deal_id}"
    try:
        async with httpx.AsyncClient() as client:
            resp = await client.put(
                url,
                params={"api_token": token},
                json=fields,
                timeout=_HTTP_TIMEOUT,
            )
            resp.raise_for_status()
    except httpx.HTTPError as exc:
        raise NotificationError(f"Pipedrive PUT /deals/{deal_id} failed") from exc


async def post_slack_message(channel: str, text: str) -> None:
    """Post a message with chat.postMessage.

    Raises:
        NotificationError: On HTTP failure or a Slack ``ok: false`` reply.
    """
    token = settings.slack_bot_token.get_secret_value()
    if not token:
        raise NotificationError("SLACK_BOT_TOKEN is not set")

    try:
        async with httpx.AsyncClient() as client:
            resp = await client.post(
                f"{_SLACK_API_URL}/chat.postMessage",
                headers={"Authorization": f"Bearer {token}"},
                json={"channel": channel, "text": text},
                timeout=_HTTP_TIMEOUT,
            )
            resp.raise_for_status()
            body = resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        raise NotificationError("Slack chat.postMessage failed") from exc

    if not body.get("ok"):
        raise NotificationError(f"Slack API error: {body.get('error')}")


async def resolve_owner_mention(owner_id: int | None) -> str:
    """Turn a Pipedrive deal owner into a Slack ``<@U...>`` mention.

    Looks up the owner's email in Pipedrive, then the Slack user with that
    email (requires the ``users:read.email`` scope).

    Returns:
        Mention string, or "" when any lookup step fails.
    """
    pipedrive_token = settings.pipedrive_api_token.get_secret_value()
    slack_token = settings.slack_bot_token.get_secret_value()
    if owner_id is None or not pipedrive_token or not slack_token:
        return ""

    try:
        async with httpx.AsyncClient() as client:
            user_resp = await client.get(
                f"{settings.pipedrive_base_url.rstrip('/')}/users/{owner_id}",
                params={"api_token": pipedrive_token},
                timeout=_HTTP_TIMEOUT,
            )
            user_resp.raise_for_status()
            email = (user_resp.json().get("data") or {}).get("email")
            if not email:
                logger.warning("No email for Pipedrive user %s", owner_id)
                return ""

            slack_resp = await client.get(
                f"{_SLACK_API_URL}/users.lookupByEmail",
                headers={"Authorization": f"Bearer {slack_token}"},
                params={"email": email},
                timeout=_HTTP_TIMEOUT,
            )
            slack_resp.raise_for_status()
            body = slack_resp.json()
    except (httpx.HTTPError, ValueError):
        logger.warning("Owner lookup failed for Pipedrive user %s", owner_id)
        return ""

    if not body.get("ok") or not body.get("user"):
        logger.warning("Slack user not found for Pipedrive user %s", owner_id)
        return ""
    return f"<@{body['user']['id']}>"


def build_case_announcement(
    *,
    company_name: str,
    industry: str,
    w2_count: int,
    calc_total: Any,
    calc_er: Any,
    calc_ee: Any,
    case_url: str,
    passcode: str,
    expires_at: datetime,
    owner_mention: str = "",
) -> str:
    """Render the Slack summary for a newly generated case."""
    owner_line = f"*Deal Owner:* {owner_mention}\n" if owner_mention else ""
    return (
        "*New Proposal Generated*\n"
        f"{owner_line}"
        f"*Company:* {company_name}\n"
        f"*Industry:* {industry}\n"
        f"*W-2 Count:* {w2_count}\n"
        f"*Total Tax Reduction:* {format_usd(calc_total)}\n"
        f"*Employer Net Savings:* {format_usd(calc_er)}\n"
        f"*Employee Reduction:* {format_usd(calc_ee)}\n\n"
        f"*Link:* {case_url}\n"
        f"*Passcode:* `{passcode}`\n"
        f"_Expires: {expires_at.strftime('%m/%d/%Y')}_"
    )


async def announce_generated_case(
    *,
    deal_id: int | None,
    owner_id: int | None,
    text_fields: dict[str, Any],
    case_url: str,
) -> None:
    """Post the Slack summary, then write the case URL back to the deal.

    Slack goes first so the team sees the passcode even when the CRM
    write-back fails.

    Args:
        deal_id: Pipedrive deal to update (None skips the write-back).
        owner_id: Pipedrive deal owner for the Slack mention.
        text_fields: Keyword arguments for build_case_announcement
            (without owner_mention).
        case_url: Shareable case URL.
    """
    channel = settings.slack_default_channel
    if channel:
        try:
            mention = await resolve_owner_mention(owner_id)
            await post_slack_message(
                channel, build_case_announcement(owner_mention=mention, **text_fields)
            )
        except NotificationError:
            logger.warning("Slack post failed (non-fatal)", exc_info=True)
    else:
        logger.warning("No SLACK_DEFAULT_CHANNEL set, skipping Slack post")

    if deal_id is not None:
        await write_case_url_to_deal(deal_id, case_url)


async def write_case_url_to_deal(deal_id: int, case_url: str) -> None:
    """Store the current case URL in the deal's case page field."""
    url_field = settings.pipedrive_field_case_page_url
    if not url_field:
        logger.warning("No PIPEDRIVE_FIELD_CASE_PAGE_URL set, skipping write-back")
        return
    try:
        await update_pipedrive_deal(deal_id, {url_field: case_url})
    except NotificationError:
        logger.warning("Pipedrive update failed (non-fatal)", exc_info=True)


async def reset_generate_trigger(deal_id: int) -> None:
    """Clear the deal's "generate proposal" field so staff can retry."""
    trigger_field = settings.pipedrive_field_generate_proposal
    if not trigger_field:
        return
    try:
        await update_pipedrive_deal(deal_id, {trigger_field: ""})
    except NotificationError:
        logger.warning("Failed to reset generate trigger on deal %s", deal_id)
