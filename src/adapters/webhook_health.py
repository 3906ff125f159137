"""Webhook health checks.

A GET on a webhook URL reports whether the webhook still exists. The result
is combined with recent delivery history so a flaky check alone does not mark
a working webhook as broken.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import enum
import ssl
from typing import Optional

import httpx

RECENT_SUCCESS_WINDOW = timedelta(days=7)


class HealthLevel(enum.Enum):
    OK = "ok"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class WebhookHealth:
    url: str
    level: HealthLevel
    effective_level: HealthLevel
    status_code: Optional[int] = None
    message: str = ""
    channel_name: str = ""
    guild_id: str = ""


def effective_level(
    level: HealthLevel,
    last_success_at: Optional[datetime],
    now: Optional[datetime] = None,
) -> HealthLevel:
    """Soften the checked level when the URL delivered within the last week."""

    if level is HealthLevel.OK or last_success_at is None:
        return level
    now = now or datetime.now(timezone.utc)
    if now - last_success_at > RECENT_SUCCESS_WINDOW:
        return level
    return HealthLevel.WARNING if level is HealthLevel.ERROR else HealthLevel.OK


def describe_transport_error(exc: httpx.HTTPError) -> str:
    if isinstance(exc, httpx.TimeoutException):
        return "timeout: no response from server"
    if isinstance(exc, httpx.ConnectError):
        cause = exc.__cause__ or exc.__context__
        if isinstance(cause, ssl.SSLError) or "ssl" in str(exc).lower() or "certificate" in str(exc).lower():
            return "TLS error: secure connection failed"
        if "name or service not known" in str(exc).lower() or "nodename" in str(exc).lower():
            return "DNS error: host not found"
        return "connection error: could not reach server"
    return f"network error: {exc}"


def _classify(response: httpx.Response) -> tuple[HealthLevel, str]:
    code = response.status_code
    if response.is_success:
        return HealthLevel.OK, "webhook is valid"
    if code == 429:
        return HealthLevel.WARNING, "rate limited, try again later"
    if code == 401:
        return HealthLevel.ERROR, "401 Unauthorized: webhook token is invalid"
    if code == 404:
        return HealthLevel.ERROR, "404 Not Found: webhook does not exist"
    return HealthLevel.WARNING, f"check returned an error ({code})"


async def check_webhook(
    client: httpx.AsyncClient,
    url: str,
    last_success_at: Optional[datetime] = None,
) -> WebhookHealth:
    """GET the webhook and report its health."""

    if not url.strip():
        return WebhookHealth(
            url=url,
            level=HealthLevel.ERROR,
            effective_level=HealthLevel.ERROR,
            message="webhook URL is not set",
        )

    try:
        response = await client.get(url)
    except httpx.HTTPError as exc:
        return WebhookHealth(
            url=url,
            level=HealthLevel.WARNING,
            effective_level=effective_level(HealthLevel.WARNING, last_success_at),
            message=describe_transport_error(exc),
        )

    level, message = _classify(response)
    channel_name = ""
    guild_id = ""
    if level is HealthLevel.OK:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if isinstance(body, dict):
            channel_name = str(body.get("name") or "")
            guild_id = str(body.get("guild_id") or "")

    return WebhookHealth(
        url=url,
        level=level,
        effective_level=effective_level(level, last_success_at),
        status_code=response.status_code,
        message=message,
        channel_name=channel_name,
        guild_id=guild_id,
    )
