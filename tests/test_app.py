from __future__ import annotations

import asyncio
import io
import logging
import threading
from datetime import datetime, timezone
from typing import List

import pytest

import app
from core.config import ForwardingConfig
from core.models import Event


class FakeProvider:
    def __init__(self, config: ForwardingConfig) -> None:
        self.config = config

    def snapshot(self) -> ForwardingConfig:
        return self.config


class FakePipeline:
    def __init__(self, accept: bool = True) -> None:
        self.accept = accept
        self.events: List[Event] = []

    def process(self, config, event, raw=None) -> bool:
        self.events.append(event)
        return self.accept


class FakeHistory:
    def __init__(self) -> None:
        self.saved: List[Event] = []

    def save_history(self, event: Event) -> None:
        self.saved.append(event)


def _event(source_id: str) -> Event:
    return Event(source_id, source_id, "t", "x", datetime(2024, 1, 1, tzinfo=timezone.utc))


def test_forwarding_target() -> None:
    assert app.is_forwarding_target(ForwardingConfig(), _event("a"))
    assert not app.is_forwarding_target(ForwardingConfig(forwarding_enabled=False), _event("a"))
    selected = ForwardingConfig(selected_sources=frozenset({"a"}))
    assert app.is_forwarding_target(selected, _event("a"))
    assert not app.is_forwarding_target(selected, _event("b"))


def test_handler_saves_history_for_accepted_records() -> None:
    pipeline = FakePipeline()
    history = FakeHistory()
    handler = app.EventHandler(FakeProvider(ForwardingConfig()), pipeline, history)

    assert handler.handle_line('{"source_id": "com.a", "title": "Hi", "text": "there"}\n')
    assert not handler.handle_line("   \n")
    assert [event.source_id for event in history.saved] == ["com.a"]


def test_handler_skips_unselected_sources() -> None:
    pipeline = FakePipeline()
    history = FakeHistory()
    config = ForwardingConfig(selected_sources=frozenset({"com.b"}))
    handler = app.EventHandler(FakeProvider(config), pipeline, history)

    assert not handler.handle_record({"source_id": "com.a"})
    assert pipeline.events == []


def test_dropped_record_is_not_saved() -> None:
    history = FakeHistory()
    handler = app.EventHandler(FakeProvider(ForwardingConfig()), FakePipeline(accept=False), history)

    assert not handler.handle_record({"source_id": "com.a"})
    assert history.saved == []


def test_non_object_line_is_rejected() -> None:
    handler = app.EventHandler(FakeProvider(ForwardingConfig()), FakePipeline(), FakeHistory())
    with pytest.raises(ValueError):
        handler.handle_line("[1, 2]")


def test_redacting_formatter_masks_webhook_urls(monkeypatch) -> None:
    monkeypatch.setenv("RELAY_SECRET", "s3cret")
    secrets = app._collect_redaction_values(
        {"redact": {"patterns": ["RELAY_SECRET"]}},
        ["https://hook/s3cret"],
    )
    assert secrets[0] == "https://hook/s3cret"

    formatter = app._RedactingFormatter(secrets, fmt="%(message)s")
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "post to %s", ("https://hook/s3cret",), None)
    assert formatter.format(record) == "post to ***"

    record = logging.LogRecord("x", logging.INFO, __file__, 1, "token s3cret", (), None)
    assert formatter.format(record) == "token ***"


def test_redaction_can_be_disabled() -> None:
    assert app._collect_redaction_values({"redact": {"enabled": False}}, ["https://hook"]) == []


class RecordingHandler:
    def __init__(self) -> None:
        self.threads: List[int] = []

    def handle_line(self, line: str) -> bool:
        self.threads.append(threading.get_ident())
        if line.startswith("bad"):
            raise ValueError("broken record")
        return bool(line.strip())


def test_ingest_handles_records_off_the_event_loop_thread() -> None:
    handler = RecordingHandler()
    loop_threads: List[int] = []

    async def _main() -> int:
        loop_threads.append(threading.get_ident())
        return await app._ingest(handler, io.StringIO("one\nbad\n\ntwo\n"))

    assert asyncio.run(_main()) == 2
    assert len(handler.threads) == 4
    assert loop_threads[0] not in handler.threads
