"""Serial delivery worker.

The worker always handles the oldest queued job. A job waiting for its
backoff blocks the jobs behind it, which keeps delivery in strict FIFO order.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
import logging
from typing import Awaitable, Callable, Optional

from adapters.webhook_sender import DeliveryOutcome, WebhookSender
from core.ports import DeliveryStorePort

LOGGER = logging.getLogger(__name__)

BACKOFF_BASE_SECONDS = 10
MAX_BACKOFF_SECONDS = 5 * 60 * 60
IDLE_POLL_SECONDS = 1.0
MAX_SLEEP_SECONDS = 30.0


def backoff_delay(attempts: int, base: float = BACKOFF_BASE_SECONDS, ceiling: float = MAX_BACKOFF_SECONDS) -> float:
    """Exponential backoff for the given number of failed attempts."""

    if attempts < 1:
        return 0.0
    return min(ceiling, base * (2 ** min(attempts - 1, 32)))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeliveryWorker:
    def __init__(
        self,
        store: DeliveryStorePort,
        sender: WebhookSender,
        backoff_base: float = BACKOFF_BASE_SECONDS,
        max_backoff: float = MAX_BACKOFF_SECONDS,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._sender = sender
        self._backoff_base = backoff_base
        self._max_backoff = max_backoff
        self._clock = clock
        self._sleep = sleep

    async def run_once(self) -> Optional[float]:
        """Deliver due jobs in order until the queue is empty or blocked.

        Returns None when the queue is empty, otherwise the number of seconds
        until the head job may be retried.
        """

        while True:
            queued = self._store.peek_job()
            if queued is None:
                return None

            wait = (queued.next_attempt_at - self._clock()).total_seconds()
            if wait > 0:
                return wait

            result = await self._sender.send(queued.job)
            url = queued.job.destination_url
            self._store.record_delivery_result(
                url,
                success=result.outcome is DeliveryOutcome.SUCCESS,
                status_code=result.status_code,
                message=result.message,
            )

            if result.outcome is DeliveryOutcome.SUCCESS:
                self._store.complete_job(queued.id)
                LOGGER.info("Delivered job %s", queued.id)
            elif result.outcome is DeliveryOutcome.PERMANENT_FAILURE:
                self._store.complete_job(queued.id)
                LOGGER.error("Dropping job %s: %s", queued.id, result.message)
            else:
                attempts = queued.attempts + 1
                delay = backoff_delay(attempts, self._backoff_base, self._max_backoff)
                self._store.reschedule_job(queued.id, attempts, self._clock() + timedelta(seconds=delay))
                LOGGER.warning(
                    "Job %s failed (%s), retry %s in %.0fs",
                    queued.id,
                    result.message,
                    attempts,
                    delay,
                )

    async def run_forever(self) -> None:
        """Drain the queue, sleeping while it is empty or backing off."""

        while True:
            try:
                wait = await self.run_once()
            except Exception:
                LOGGER.exception("Delivery worker iteration failed")
                wait = None
            await self._sleep(IDLE_POLL_SECONDS if wait is None else min(wait, MAX_SLEEP_SECONDS))
