"""Burst aggregation.

The first event of a burst is sent immediately and opens a window. Events
arriving inside the window are held and merged; once the window has expired
the next pipeline invocation flushes one summary for the whole burst.
Flushing is driven by incoming events only, there is no background timer.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
import enum
import logging
from typing import List, Sequence

from core.config import RateLimitConfig
from core.models import Event
from core.state import AggregateState, PipelineState

LOGGER = logging.getLogger(__name__)


class AggregateDecision(enum.Enum):
    SEND_NOW = "send_now"
    HOLD = "hold"


@dataclass(frozen=True)
class AggregateFlush:
    """A closed burst ready to be dispatched as a single summary."""

    event: Event
    destinations: tuple[str, ...]
    count: int


def aggregation_enabled(config: RateLimitConfig) -> bool:
    return config.enabled and config.aggregate_window_seconds > 0


def _window(config: RateLimitConfig) -> timedelta:
    return timedelta(seconds=max(1, config.aggregate_window_seconds))


class Aggregator:
    def __init__(self, state: PipelineState) -> None:
        self._state = state

    def flush_expired(self, config: RateLimitConfig, now: datetime) -> List[AggregateFlush]:
        """Remove expired windows and return the ones worth a summary."""

        if not aggregation_enabled(config):
            return []

        window = _window(config)
        flushed: List[AggregateFlush] = []
        for key in self._state.aggregate_keys():
            with self._state.locks.hold(key):
                entry = self._state.aggregates.get(key)
                if entry is None or now - entry.window_start < window:
                    continue
                self._state.pop_aggregate(key)
            if entry.count > 1:
                flushed.append(
                    AggregateFlush(
                        event=entry.latest_event,
                        destinations=tuple(entry.destinations),
                        count=entry.count,
                    )
                )
                LOGGER.info("Flushing %s aggregated events for %s", entry.count, key)
        return flushed

    def register(
        self,
        config: RateLimitConfig,
        event: Event,
        destinations: Sequence[str],
        now: datetime,
    ) -> AggregateDecision:
        """Decide whether the event is sent now or merged into a live window."""

        if not aggregation_enabled(config):
            return AggregateDecision.SEND_NOW

        window = _window(config)
        key = event.source_id
        with self._state.locks.hold(key):
            entry = self._state.aggregates.get(key)
            if entry is not None and entry.count < 1:
                LOGGER.warning("Resetting corrupt aggregate entry for %s (count=%s)", key, entry.count)
                entry = None

            if entry is None or now - entry.window_start > window:
                self._state.aggregates[key] = AggregateState(
                    window_start=now,
                    count=1,
                    latest_event=event,
                    destinations=list(destinations),
                )
                return AggregateDecision.SEND_NOW

            entry.merge(event, list(destinations))
            return AggregateDecision.HOLD
