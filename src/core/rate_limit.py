"""Per-source send rate limiter."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from core.config import RateLimitConfig
from core.state import PipelineState

LOGGER = logging.getLogger(__name__)


class RateLimiter:
    """Sliding-window cap on dispatches per source."""

    def __init__(self, state: PipelineState) -> None:
        self._state = state

    def allow(self, config: RateLimitConfig, source_id: str, now: datetime) -> bool:
        """Record a send and return True, or return False without recording."""

        if not config.enabled:
            return True

        window = timedelta(seconds=max(1, config.window_seconds))
        limit = max(1, config.max_per_window)

        with self._state.locks.hold(source_id):
            sent = self._state.sent_deque(source_id)
            while sent and now - sent[0] > window:
                sent.popleft()
            if len(sent) >= limit:
                LOGGER.info("Rate limit hit for %s (%s sends in %ss)", source_id, len(sent), int(window.total_seconds()))
                return False
            sent.append(now)
            return True
