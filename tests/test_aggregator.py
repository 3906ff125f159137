from __future__ import annotations

from datetime import datetime, timedelta, timezone
import threading

from core.aggregator import AggregateDecision, Aggregator
from core.config import RateLimitConfig
from core.models import Event
from core.state import AggregateState, KeyedLocks, PipelineState

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
CONFIG = RateLimitConfig(aggregate_window_seconds=10)


def _event(title: str = "hi", source_id: str = "app") -> Event:
    return Event(source_id=source_id, source_name="App", title=title, text="x", timestamp=T0)


def test_lone_event_window_expires_silently() -> None:
    state = PipelineState()
    aggregator = Aggregator(state)

    assert aggregator.register(CONFIG, _event(), ["https://a"], T0) is AggregateDecision.SEND_NOW
    assert aggregator.flush_expired(CONFIG, T0 + timedelta(seconds=10)) == []
    assert state.aggregates == {}


def test_flush_uses_union_of_destinations() -> None:
    aggregator = Aggregator(PipelineState())

    aggregator.register(CONFIG, _event("one"), ["https://a"], T0)
    assert aggregator.register(CONFIG, _event("two"), ["https://b", "https://a"], T0 + timedelta(seconds=1)) is (
        AggregateDecision.HOLD
    )
    aggregator.register(CONFIG, _event("three"), ["https://c"], T0 + timedelta(seconds=2))

    assert aggregator.flush_expired(CONFIG, T0 + timedelta(seconds=9)) == []
    flushes = aggregator.flush_expired(CONFIG, T0 + timedelta(seconds=10))
    assert len(flushes) == 1
    assert flushes[0].count == 3
    assert flushes[0].event.title == "three"
    assert flushes[0].destinations == ("https://a", "https://b", "https://c")


def test_corrupt_entry_is_reset() -> None:
    state = PipelineState()
    state.aggregates["app"] = AggregateState(window_start=T0, count=0, latest_event=_event("stale"), destinations=[])
    aggregator = Aggregator(state)

    decision = aggregator.register(CONFIG, _event("fresh"), ["https://a"], T0 + timedelta(seconds=1))

    assert decision is AggregateDecision.SEND_NOW
    entry = state.aggregates["app"]
    assert entry.count == 1
    assert entry.latest_event.title == "fresh"
    assert entry.window_start == T0 + timedelta(seconds=1)


def test_expired_window_is_replaced_on_register() -> None:
    state = PipelineState()
    aggregator = Aggregator(state)
    aggregator.register(CONFIG, _event("one"), ["https://a"], T0)

    assert aggregator.register(CONFIG, _event("two"), ["https://a"], T0 + timedelta(seconds=11)) is (
        AggregateDecision.SEND_NOW
    )
    assert state.aggregates["app"].count == 1


def test_aggregation_disabled_always_sends() -> None:
    config = RateLimitConfig(aggregate_window_seconds=0)
    aggregator = Aggregator(PipelineState())
    assert all(
        aggregator.register(config, _event(), ["https://a"], T0) is AggregateDecision.SEND_NOW for _ in range(3)
    )
    assert aggregator.flush_expired(config, T0 + timedelta(hours=1)) == []


def test_locks_for_different_keys_are_independent() -> None:
    locks = KeyedLocks()
    acquired = []

    def other_key() -> None:
        lock = locks.lock_for("b")
        acquired.append(lock.acquire(timeout=1))
        lock.release()

    with locks.hold("a"):
        worker = threading.Thread(target=other_key)
        worker.start()
        worker.join(timeout=2)

    assert acquired == [True]
    assert locks.lock_for("a") is locks.lock_for("a")
    assert not locks.lock_for("a").locked()
