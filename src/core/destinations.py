"""Destination resolution.

Destinations are resolved by an ordered list of strategies. The first
strategy that yields a non-empty result wins, which keeps the priority
contract (per-source override, then default + routing rules) explicit.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Sequence

from core.config import ForwardingConfig
from core.models import Event
from core.rules_engine import match_rules

LOGGER = logging.getLogger(__name__)

Strategy = Callable[[ForwardingConfig, Event], List[str]]


def _dedupe_urls(urls: Iterable[str]) -> List[str]:
    seen: dict[str, None] = {}
    for url in urls:
        cleaned = url.strip()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


def source_override(config: ForwardingConfig, event: Event) -> List[str]:
    """A per-source webhook replaces every other destination."""

    override = config.source_webhooks.get(event.source_id, "").strip()
    return [override] if override else []


def default_and_rules(config: ForwardingConfig, event: Event) -> List[str]:
    """Default webhook followed by every matching routing rule's webhooks."""

    urls: List[str] = [config.webhook_url]
    for match in match_rules(event, config.routing_rules):
        LOGGER.debug("Routing rule %s matched %s (%s)", match.rule_name, event.source_id, match.reason)
        urls.extend(match.destination_urls)
    return _dedupe_urls(urls)


DEFAULT_STRATEGIES: Sequence[Strategy] = (source_override, default_and_rules)


def resolve_destinations(
    config: ForwardingConfig,
    event: Event,
    strategies: Sequence[Strategy] = DEFAULT_STRATEGIES,
) -> List[str]:
    """Return the ordered destination set for an event (possibly empty)."""

    for strategy in strategies:
        urls = strategy(config, event)
        if urls:
            return urls
    return []
