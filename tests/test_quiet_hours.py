from __future__ import annotations

from datetime import datetime, timezone

from core.config import QuietHoursConfig
from core.models import PendingQuietItem
from core.quiet_hours import SUMMARY_IMPORTANCE, day_index, is_quiet, summarize_queue


def _at(day: int, hour: int, minute: int = 0) -> datetime:
    # 2024-01-07 is a Sunday.
    return datetime(2024, 1, day, hour, minute, tzinfo=timezone.utc)


def _item(source_id: str, minute: int, text: str, urls: tuple[str, ...]) -> PendingQuietItem:
    return PendingQuietItem(
        source_id=source_id,
        source_name=source_id.title(),
        title=f"title {minute}",
        text=text,
        timestamp=_at(7, 23, minute),
        destination_urls=urls,
    )


def test_day_index_starts_on_sunday() -> None:
    assert day_index(_at(7, 12)) == 1
    assert day_index(_at(8, 12)) == 2
    assert day_index(_at(13, 12)) == 7


def test_disabled_is_never_quiet() -> None:
    assert not is_quiet(QuietHoursConfig(enabled=False), _at(7, 23))


def test_window_spanning_midnight() -> None:
    config = QuietHoursConfig(enabled=True, start_hour=22, end_hour=7)
    assert is_quiet(config, _at(7, 22))
    assert is_quiet(config, _at(7, 23, 59))
    assert is_quiet(config, _at(8, 6, 59))
    assert not is_quiet(config, _at(8, 7))
    assert not is_quiet(config, _at(8, 12))


def test_same_day_window() -> None:
    config = QuietHoursConfig(enabled=True, start_hour=9, start_minute=30, end_hour=17)
    assert not is_quiet(config, _at(8, 9, 29))
    assert is_quiet(config, _at(8, 9, 30))
    assert not is_quiet(config, _at(8, 17))


def test_days_of_week_restricts_window() -> None:
    config = QuietHoursConfig(enabled=True, start_hour=22, end_hour=7, days_of_week=frozenset({1}))
    assert is_quiet(config, _at(7, 23))
    assert not is_quiet(config, _at(8, 23))


def test_summarize_queue_groups_by_source() -> None:
    items = [
        _item("chat", 0, "first", ("https://a",)),
        _item("mail", 5, "only mail", ()),
        _item("chat", 30, "second", ("https://b", "https://a")),
    ]
    flushes = summarize_queue(items)

    assert len(flushes) == 1
    flush = flushes[0]
    assert flush.count == 2
    assert flush.destinations == ("https://b", "https://a")
    assert flush.event.source_id == "chat"
    assert flush.event.title == "title 30"
    assert flush.event.text == "2 notifications arrived during quiet hours. Latest: second"
    assert flush.event.importance == SUMMARY_IMPORTANCE
    assert not flush.event.is_summary
