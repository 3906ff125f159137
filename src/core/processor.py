"""Core notification dispatch pipeline.

This module is integration-agnostic. It only relies on ports for the delivery
queue, the quiet-hours buffer and attachment extraction.

The pipeline enforces a strict order for every incoming event:
1) Flush aggregation windows that expired since the last event
2) Resolve destinations (empty: drop)
3) Global filter
4) Quiet hours (active: park the event and stop)
5) Flush the quiet-hours queue once quiet hours have ended
6) Deduplication
7) Aggregation (hold, or send now)
8) Rate limit, render, encode and enqueue one job per destination
"""

from __future__ import annotations

from datetime import datetime
import logging
import threading
from typing import Any, Callable, List, Mapping, Optional, Sequence

from core import template_engine
from core.aggregator import AggregateDecision, Aggregator
from core.config import ForwardingConfig
from core.dedup import DedupGuard
from core.destinations import resolve_destinations
from core.embed_builder import build_embed
from core.models import DeliveryJob, Event, RenderedMessage
from core.payload import encode_payload
from core.ports import AttachmentExtractorPort, DeliveryQueuePort, QuietQueuePort
from core.quiet_hours import QUIET_QUEUE_LIMIT, is_quiet, summarize_queue, to_pending_item
from core.rate_limit import RateLimiter
from core.rules_engine import passes_filter
from core.state import PipelineState

LOGGER = logging.getLogger(__name__)


def local_now() -> datetime:
    return datetime.now().astimezone()


class DispatchPipeline:
    """Turns one incoming event into zero or more delivery jobs."""

    def __init__(
        self,
        queue: DeliveryQueuePort,
        quiet_store: QuietQueuePort,
        attachment_extractor: Optional[AttachmentExtractorPort] = None,
        state: Optional[PipelineState] = None,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        self._queue = queue
        self._quiet_store = quiet_store
        self._extractor = attachment_extractor
        self._state = state or PipelineState()
        self._clock = clock
        self._dedup = DedupGuard(self._state)
        self._rate_limiter = RateLimiter(self._state)
        self._aggregator = Aggregator(self._state)
        self._quiet_lock = threading.Lock()

    @property
    def state(self) -> PipelineState:
        return self._state

    def process(
        self,
        config: ForwardingConfig,
        event: Event,
        raw: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """Run one event through the pipeline.

        Returns True when the event was handled (sent, held for aggregation
        or parked for quiet hours) and False when it was dropped.
        """

        now = self._clock()

        for flush in self._aggregator.flush_expired(config.rate_limit, now):
            self._dispatch(config, flush.event, flush.destinations, now, raw=None, aggregate_count=flush.count)

        destinations = resolve_destinations(config, event)
        if not destinations:
            LOGGER.debug("No destination for %s", event.source_id)
            return False

        if not passes_filter(config.filter, event):
            LOGGER.debug("Filtered out event from %s", event.source_id)
            return False

        if is_quiet(config.quiet_hours, now):
            self._quiet_store.append_quiet_item(to_pending_item(event, destinations), QUIET_QUEUE_LIMIT)
            LOGGER.info("Quiet hours: queued event from %s", event.source_id)
            return True

        self._flush_quiet_queue(config, now)

        if self._dedup.should_drop(config.dedupe, event, now):
            return False

        decision = self._aggregator.register(config.rate_limit, event, destinations, now)
        if decision is AggregateDecision.HOLD:
            LOGGER.debug("Holding event from %s for aggregation", event.source_id)
            return True

        self._dispatch(config, event, destinations, now, raw=raw, aggregate_count=1)
        return True

    def _flush_quiet_queue(self, config: ForwardingConfig, now: datetime) -> None:
        # Serialized so concurrent callers cannot send the same summary twice.
        with self._quiet_lock:
            if not self._quiet_store.has_quiet_items():
                return
            items = self._quiet_store.drain_quiet_items()

        flushes = summarize_queue(items)
        LOGGER.info("Quiet hours ended: flushing %s queued events as %s summaries", len(items), len(flushes))
        for flush in flushes:
            self._dispatch(config, flush.event, flush.destinations, now, raw=None, aggregate_count=flush.count)

    def render(
        self,
        config: ForwardingConfig,
        event: Event,
        raw: Optional[Mapping[str, Any]] = None,
        aggregate_count: int = 1,
    ) -> RenderedMessage:
        """Render content, embeds and the optional attachment for an event."""

        template = config.source_templates.get(event.source_id, "")
        if not template.strip():
            template = config.default_template

        full = template_engine.render(template, event)
        if config.embed.enabled:
            content = template_engine.render_short_summary(event, aggregate_count)
            embeds = [build_embed(event, config.embed, config.device_name, aggregate_count)]
        elif aggregate_count > 1:
            content = f"{full}\n{template_engine.aggregate_note(aggregate_count)}"
            embeds = []
        else:
            content = full
            embeds = []

        attachment = None
        if aggregate_count <= 1 and raw is not None and self._extractor is not None:
            payload_id = str(int(event.timestamp.timestamp() * 1000))
            attachment = self._extractor.extract(raw, payload_id)

        return RenderedMessage(content=content, embeds=embeds, attachment=attachment)

    def _dispatch(
        self,
        config: ForwardingConfig,
        event: Event,
        destinations: Sequence[str],
        now: datetime,
        raw: Optional[Mapping[str, Any]],
        aggregate_count: int,
    ) -> List[DeliveryJob]:
        if not destinations:
            return []
        if not self._rate_limiter.allow(config.rate_limit, event.source_id, now):
            return []

        message = self.render(config, event, raw=raw, aggregate_count=aggregate_count)
        payload = encode_payload(message)

        jobs = [
            DeliveryJob(destination_url=url, payload=payload, attachment=message.attachment)
            for url in destinations
        ]
        for job in jobs:
            self._queue.enqueue(job)
        LOGGER.info(
            "Queued %s delivery job(s) for %s (aggregate=%s)",
            len(jobs),
            event.source_id,
            aggregate_count,
        )
        return jobs
