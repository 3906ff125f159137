from __future__ import annotations

from datetime import datetime, timedelta, timezone

from adapters.sqlite_storage import SQLiteStorage
from core.models import Attachment, DeliveryJob, Event, PendingQuietItem

TS = datetime(2024, 1, 3, 23, 0, tzinfo=timezone.utc)


def _storage(tmp_path) -> SQLiteStorage:
    storage = SQLiteStorage(str(tmp_path / "relay.db"))
    storage.init_db()
    return storage


def _quiet(index: int) -> PendingQuietItem:
    return PendingQuietItem(
        source_id="chat",
        source_name="Chat",
        title=f"t{index}",
        text=f"body {index}",
        timestamp=TS + timedelta(minutes=index),
        destination_urls=("https://a", "https://b"),
    )


def test_jobs_are_fifo_and_keep_attachment(tmp_path) -> None:
    storage = _storage(tmp_path)
    attachment = Attachment(file_path="/tmp/x.png", file_name="x.png", content_type="image/png")
    storage.enqueue(DeliveryJob("https://a", b'{"content": "1"}', attachment))
    storage.enqueue(DeliveryJob("https://b", b'{"content": "2"}'))

    head = storage.peek_job()
    assert head is not None
    assert head.job.destination_url == "https://a"
    assert head.job.payload == b'{"content": "1"}'
    assert head.job.attachment == attachment
    assert head.attempts == 0

    storage.complete_job(head.id)
    head = storage.peek_job()
    assert head.job.destination_url == "https://b"
    assert head.job.attachment is None
    assert storage.count_jobs() == 1


def test_reschedule_keeps_position(tmp_path) -> None:
    storage = _storage(tmp_path)
    storage.enqueue(DeliveryJob("https://a", b"1"))
    storage.enqueue(DeliveryJob("https://b", b"2"))
    first = storage.peek_job()

    later = datetime(2030, 1, 1, tzinfo=timezone.utc)
    storage.reschedule_job(first.id, 3, later)

    head = storage.peek_job()
    assert head.id == first.id
    assert head.attempts == 3
    assert head.next_attempt_at == later


def test_quiet_queue_is_capped_and_drained_atomically(tmp_path) -> None:
    storage = _storage(tmp_path)
    assert not storage.has_quiet_items()
    for index in range(5):
        storage.append_quiet_item(_quiet(index), limit=3)

    assert storage.has_quiet_items()
    assert [item.title for item in storage.list_quiet_items()] == ["t2", "t3", "t4"]

    drained = storage.drain_quiet_items()
    assert [item.title for item in drained] == ["t2", "t3", "t4"]
    assert drained[0].destination_urls == ("https://a", "https://b")
    assert drained[0].timestamp == TS + timedelta(minutes=2)
    assert not storage.has_quiet_items()
    assert storage.drain_quiet_items() == []


def test_history_cleanup(tmp_path) -> None:
    storage = _storage(tmp_path)
    storage.save_history(Event("chat", "Chat", "hi", "there", TS))
    assert storage.count_history() == 1

    assert storage.cleanup_history(-1) == 0
    assert storage.cleanup_history(30) == 0
    assert storage.cleanup_history(0) == 1
    assert storage.count_history() == 0


def test_delivery_result_keeps_last_success(tmp_path) -> None:
    storage = _storage(tmp_path)
    storage.record_delivery_result("https://a", True, 204, "delivered")
    first = storage.get_delivery_record("https://a")
    assert first.last_success_at is not None

    storage.record_delivery_result("https://a", False, 404, "rejected: 404")
    record = storage.get_delivery_record("https://a")
    assert record.last_status_code == 404
    assert record.message == "rejected: 404"
    assert record.last_success_at == first.last_success_at


def test_blank_url_result_is_ignored(tmp_path) -> None:
    storage = _storage(tmp_path)
    storage.record_delivery_result("  ", False, None, "missing")
    assert storage.get_delivery_record("  ") is None
