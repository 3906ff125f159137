"""Quiet-hours window checks and queue summarisation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Sequence

from core.config import QuietHoursConfig
from core.models import Event, PendingQuietItem

QUIET_QUEUE_LIMIT = 500

# Summary events outrank any importance threshold.
SUMMARY_IMPORTANCE = 2**31 - 1


@dataclass(frozen=True)
class QuietFlush:
    event: Event
    destinations: tuple[str, ...]
    count: int


def day_index(moment: datetime) -> int:
    """Return 1=Sunday ... 7=Saturday."""

    return (moment.weekday() + 1) % 7 + 1


def is_quiet(config: QuietHoursConfig, now: datetime) -> bool:
    """Return True when ``now`` (local wall clock) is inside quiet hours."""

    if not config.enabled:
        return False
    if config.days_of_week and day_index(now) not in config.days_of_week:
        return False

    now_minute = now.hour * 60 + now.minute
    start = config.start_hour * 60 + config.start_minute
    end = config.end_hour * 60 + config.end_minute

    if start <= end:
        return start <= now_minute < end
    # Spans midnight, e.g. 22:00-07:00.
    return now_minute >= start or now_minute < end


def to_pending_item(event: Event, destinations: Sequence[str]) -> PendingQuietItem:
    return PendingQuietItem(
        source_id=event.source_id,
        source_name=event.source_name,
        title=event.title,
        text=event.text,
        timestamp=event.timestamp,
        destination_urls=tuple(destinations),
    )


def summary_text(count: int, latest_text: str) -> str:
    return f"{count} notifications arrived during quiet hours. Latest: {latest_text}"


def summarize_queue(items: Iterable[PendingQuietItem]) -> List[QuietFlush]:
    """Group queued items by source into one summary event each.

    Groups keep first-seen order. Groups without any destination are skipped.
    """

    groups: Dict[str, List[PendingQuietItem]] = {}
    for item in items:
        groups.setdefault(item.source_id, []).append(item)

    flushes: List[QuietFlush] = []
    for source_id, group in groups.items():
        latest = max(group, key=lambda item: item.timestamp)
        destinations: Dict[str, None] = {}
        for url in latest.destination_urls:
            destinations.setdefault(url, None)
        for item in group:
            for url in item.destination_urls:
                destinations.setdefault(url, None)
        if not destinations:
            continue

        event = Event(
            source_id=source_id,
            source_name=latest.source_name,
            title=latest.title,
            text=summary_text(len(group), latest.text),
            timestamp=latest.timestamp,
            category_id="",
            importance=SUMMARY_IMPORTANCE,
            is_summary=False,
        )
        flushes.append(QuietFlush(event=event, destinations=tuple(destinations), count=len(group)))
    return flushes
