"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely. Every
snapshot is frozen: the pipeline reads them and never mutates them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Tuple

DEFAULT_TEMPLATE = "[{app}]\nTitle: {title}\nText: {text}\nReceived: {time}"


@dataclass(frozen=True)
class EmbedConfig:
    """Embed rendering settings."""

    enabled: bool = True
    include_source_field: bool = True
    include_time_field: bool = True
    max_field_length: int = 900


@dataclass(frozen=True)
class FilterConfig:
    """Global filter applied to every event before quiet hours and dedup."""

    enabled: bool = False
    keywords: Tuple[str, ...] = ()
    use_regex: bool = False
    regex_pattern: str = ""
    channel_ids: FrozenSet[str] = frozenset()
    min_importance: int = -(2**31)
    exclude_summary: bool = True


@dataclass(frozen=True)
class DedupeConfig:
    """Deduplication settings for the core pipeline."""

    enabled: bool = True
    content_hash_enabled: bool = True
    title_latest_only: bool = True
    window_seconds: int = 45


@dataclass(frozen=True)
class RateLimitConfig:
    """Send-rate cap and burst aggregation settings."""

    enabled: bool = True
    max_per_window: int = 5
    window_seconds: int = 30
    aggregate_window_seconds: int = 10


@dataclass(frozen=True)
class QuietHoursConfig:
    """Daily quiet period; an empty day set means every day.

    Days use 1=Sunday ... 7=Saturday.
    """

    enabled: bool = False
    start_hour: int = 22
    start_minute: int = 0
    end_hour: int = 7
    end_minute: int = 0
    days_of_week: FrozenSet[int] = frozenset()


@dataclass(frozen=True)
class RoutingRule:
    """Route matching events to extra webhooks."""

    id: str
    name: str
    enabled: bool = True
    source_ids: FrozenSet[str] = frozenset()
    keywords: Tuple[str, ...] = ()
    use_regex: bool = False
    regex_pattern: str = ""
    destination_urls: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ForwardingConfig:
    """Full configuration snapshot handed to the pipeline per event."""

    webhook_url: str = ""
    forwarding_enabled: bool = True
    selected_sources: FrozenSet[str] = frozenset()
    source_webhooks: Dict[str, str] = field(default_factory=dict)
    default_template: str = DEFAULT_TEMPLATE
    source_templates: Dict[str, str] = field(default_factory=dict)
    embed: EmbedConfig = field(default_factory=EmbedConfig)
    filter: FilterConfig = field(default_factory=FilterConfig)
    dedupe: DedupeConfig = field(default_factory=DedupeConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    quiet_hours: QuietHoursConfig = field(default_factory=QuietHoursConfig)
    routing_rules: Tuple[RoutingRule, ...] = ()
    device_name: str = "notifyrelay"
