"""Webhook HTTP delivery adapter.

Posts one delivery job and classifies the outcome so the worker knows
whether to drop the job or retry it later.
"""

from __future__ import annotations

from dataclasses import dataclass
import enum
import logging
from pathlib import Path
from typing import Optional

import httpx

from core.models import DeliveryJob

LOGGER = logging.getLogger(__name__)


class DeliveryOutcome(enum.Enum):
    SUCCESS = "success"
    PERMANENT_FAILURE = "permanent_failure"
    RETRY = "retry"


@dataclass(frozen=True)
class DeliveryResult:
    outcome: DeliveryOutcome
    status_code: Optional[int]
    message: str


def classify_status(status_code: int) -> DeliveryOutcome:
    """2xx succeeds, 4xx other than 429 is a config problem, the rest retries."""

    if 200 <= status_code < 300:
        return DeliveryOutcome.SUCCESS
    if 400 <= status_code < 500 and status_code != 429:
        return DeliveryOutcome.PERMANENT_FAILURE
    return DeliveryOutcome.RETRY


class WebhookSender:
    """Delivery executor backed by a shared ``httpx.AsyncClient``."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def send(self, job: DeliveryJob) -> DeliveryResult:
        if not job.destination_url.strip() or not job.payload:
            return DeliveryResult(DeliveryOutcome.PERMANENT_FAILURE, None, "missing webhook URL or payload")

        try:
            response = await self._post(job)
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as exc:
            LOGGER.error("Webhook URL cannot be used: %s", exc)
            return DeliveryResult(DeliveryOutcome.PERMANENT_FAILURE, None, f"invalid webhook URL: {exc}")
        except httpx.HTTPError as exc:
            LOGGER.warning("Transport error posting to webhook: %s", exc)
            return DeliveryResult(DeliveryOutcome.RETRY, None, f"transport error: {exc}")

        outcome = classify_status(response.status_code)
        if outcome is DeliveryOutcome.SUCCESS:
            message = "delivered"
        elif outcome is DeliveryOutcome.PERMANENT_FAILURE:
            message = f"rejected: {response.status_code}"
        else:
            message = f"temporary failure: {response.status_code}"
        return DeliveryResult(outcome, response.status_code, message)

    async def _post(self, job: DeliveryJob) -> httpx.Response:
        attachment = job.attachment
        if attachment is not None:
            path = Path(attachment.file_path)
            try:
                content = path.read_bytes()
            except OSError as exc:
                LOGGER.info("Attachment %s is unreadable (%s), sending without it", attachment.file_path, exc)
            else:
                files = {
                    "files[0]": (
                        attachment.file_name or path.name,
                        content,
                        attachment.content_type or "application/octet-stream",
                    )
                }
                data = {"payload_json": job.payload.decode("utf-8")}
                return await self._client.post(job.destination_url, data=data, files=files)

        return await self._client.post(
            job.destination_url,
            content=job.payload,
            headers={"Content-Type": "application/json; charset=utf-8"},
        )
