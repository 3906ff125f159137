"""Static configuration for notifyrelay.

All user-editable settings (webhooks, routing rules, filters, dedup, rate
limits, quiet hours, rendering) live in a single JSON file for quick edits
without touching Python. ``.env`` may override the config path and the
device name shown in embed footers.
"""

from __future__ import annotations

import json
import logging
import os
import socket
from typing import Any, Dict, Iterable, Tuple

from dotenv import load_dotenv

from core.config import (
    DEFAULT_TEMPLATE,
    DedupeConfig,
    EmbedConfig,
    FilterConfig,
    ForwardingConfig,
    QuietHoursConfig,
    RateLimitConfig,
    RoutingRule,
)

load_dotenv()

LOGGER = logging.getLogger(__name__)

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# Where to store the SQLite database (queues, history, delivery results).
DB_PATH = os.getenv("NOTIFYRELAY_DB", os.path.join(PROJECT_ROOT, "notifyrelay.db"))

CONFIG_PATH = os.getenv("NOTIFYRELAY_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def load_json_config(path: str = CONFIG_PATH) -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(path):
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _strings(values: Iterable[Any]) -> Tuple[str, ...]:
    cleaned = (str(value).strip() for value in values or [])
    return tuple(value for value in cleaned if value)


def parse_hhmm(value: str) -> Tuple[int, int]:
    """Parse ``HH:MM`` into (hour, minute)."""

    try:
        hour_text, minute_text = str(value).split(":")
        hour, minute = int(hour_text), int(minute_text)
    except ValueError as exc:
        raise ValueError(f"Invalid time {value!r}, expected HH:MM") from exc
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")
    return hour, minute


def _embed(raw: Dict[str, Any]) -> EmbedConfig:
    return EmbedConfig(
        enabled=bool(raw.get("enabled", True)),
        include_source_field=bool(raw.get("include_source_field", True)),
        include_time_field=bool(raw.get("include_time_field", True)),
        max_field_length=int(raw.get("max_field_length", 900)),
    )


def _filter(raw: Dict[str, Any]) -> FilterConfig:
    defaults = FilterConfig()
    return FilterConfig(
        enabled=bool(raw.get("enabled", False)),
        keywords=_strings(raw.get("keywords", [])),
        use_regex=bool(raw.get("use_regex", False)),
        regex_pattern=str(raw.get("regex_pattern", "")),
        channel_ids=frozenset(_strings(raw.get("channel_ids", []))),
        min_importance=int(raw.get("min_importance", defaults.min_importance)),
        exclude_summary=bool(raw.get("exclude_summary", True)),
    )


def _dedupe(raw: Dict[str, Any]) -> DedupeConfig:
    return DedupeConfig(
        enabled=bool(raw.get("enabled", True)),
        content_hash_enabled=bool(raw.get("content_hash", True)),
        title_latest_only=bool(raw.get("title_latest_only", True)),
        window_seconds=int(raw.get("window_seconds", 45)),
    )


def _rate_limit(raw: Dict[str, Any]) -> RateLimitConfig:
    return RateLimitConfig(
        enabled=bool(raw.get("enabled", True)),
        max_per_window=int(raw.get("max_per_window", 5)),
        window_seconds=int(raw.get("window_seconds", 30)),
        aggregate_window_seconds=int(raw.get("aggregate_window_seconds", 10)),
    )


def _quiet_hours(raw: Dict[str, Any]) -> QuietHoursConfig:
    start_hour, start_minute = parse_hhmm(raw.get("start", "22:00"))
    end_hour, end_minute = parse_hhmm(raw.get("end", "07:00"))
    days = frozenset(int(day) for day in raw.get("days_of_week", []) or [])
    if any(day < 1 or day > 7 for day in days):
        raise ValueError("quiet_hours.days_of_week uses 1=Sunday ... 7=Saturday")
    return QuietHoursConfig(
        enabled=bool(raw.get("enabled", False)),
        start_hour=start_hour,
        start_minute=start_minute,
        end_hour=end_hour,
        end_minute=end_minute,
        days_of_week=days,
    )


def _routing_rules(raw_rules: Iterable[Dict[str, Any]]) -> Tuple[RoutingRule, ...]:
    rules = []
    for index, raw in enumerate(raw_rules or []):
        name = str(raw.get("name") or f"rule-{index + 1}")
        rules.append(
            RoutingRule(
                id=str(raw.get("id") or name),
                name=name,
                enabled=bool(raw.get("enabled", True)),
                source_ids=frozenset(_strings(raw.get("source_ids", []))),
                keywords=_strings(raw.get("keywords", [])),
                use_regex=bool(raw.get("use_regex", False)),
                regex_pattern=str(raw.get("regex_pattern", "")),
                destination_urls=_strings(raw.get("webhooks", [])),
            )
        )
    return tuple(rules)


def default_device_name() -> str:
    return os.getenv("DEVICE_NAME") or socket.gethostname() or "notifyrelay"


def build_forwarding_config(config: Dict[str, Any]) -> ForwardingConfig:
    """Turn the raw JSON dict into the frozen snapshot the core expects."""

    forwarding = config.get("forwarding", {})
    templates = config.get("templates", {})
    return ForwardingConfig(
        webhook_url=str(forwarding.get("webhook_url", "")).strip(),
        forwarding_enabled=bool(forwarding.get("enabled", True)),
        selected_sources=frozenset(_strings(forwarding.get("selected_sources", []))),
        source_webhooks={
            str(key): str(value).strip()
            for key, value in (forwarding.get("source_webhooks") or {}).items()
        },
        default_template=str(templates.get("default") or DEFAULT_TEMPLATE),
        source_templates={str(k): str(v) for k, v in (templates.get("per_source") or {}).items()},
        embed=_embed(config.get("embed", {})),
        filter=_filter(config.get("filter", {})),
        dedupe=_dedupe(config.get("dedupe", {})),
        rate_limit=_rate_limit(config.get("rate_limit", {})),
        quiet_hours=_quiet_hours(config.get("quiet_hours", {})),
        routing_rules=_routing_rules(config.get("routing_rules", [])),
        device_name=str(forwarding.get("device_name") or default_device_name()),
    )


def all_webhook_urls(forwarding: ForwardingConfig) -> set[str]:
    """Every configured webhook URL, used for log redaction."""

    urls = {forwarding.webhook_url, *forwarding.source_webhooks.values()}
    for rule in forwarding.routing_rules:
        urls.update(rule.destination_urls)
    return {url for url in urls if url}


def history_retention_days(config: Dict[str, Any]) -> int:
    # -1 keeps history forever.
    return int(config.get("history", {}).get("retention_days", 30))


def delivery_settings(config: Dict[str, Any]) -> Dict[str, float]:
    delivery = config.get("delivery", {})
    return {
        "backoff_base_seconds": float(delivery.get("backoff_base_seconds", 10)),
        "max_backoff_seconds": float(delivery.get("max_backoff_seconds", 5 * 60 * 60)),
        "timeout_seconds": float(delivery.get("timeout_seconds", 10)),
    }


class SettingsProvider:
    """Yield the current snapshot, reloading config.json when it changes.

    A broken edit keeps the last good snapshot so a typo does not stop
    forwarding.
    """

    def __init__(self, path: str = CONFIG_PATH) -> None:
        self._path = path
        self._mtime: float | None = None
        self.raw: Dict[str, Any] = {}
        self._snapshot: ForwardingConfig | None = None

    def snapshot(self) -> ForwardingConfig:
        mtime = os.path.getmtime(self._path) if os.path.exists(self._path) else None
        if self._snapshot is not None and mtime == self._mtime:
            return self._snapshot
        try:
            raw = load_json_config(self._path)
            snapshot = build_forwarding_config(raw)
        except (OSError, ValueError):
            if self._snapshot is None:
                raise
            LOGGER.exception("Config reload failed, keeping previous settings")
            self._mtime = mtime
            return self._snapshot
        self.raw = raw
        self._snapshot = snapshot
        self._mtime = mtime
        LOGGER.info("Loaded config from %s (%s routing rules)", self._path, len(snapshot.routing_rules))
        return snapshot
