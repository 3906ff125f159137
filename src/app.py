"""Application entry point for the notifyrelay forwarder."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Any, Iterable, Optional, TextIO

from art import tprint
from dotenv import load_dotenv

import settings
from adapters.delivery_worker import DeliveryWorker
from adapters.event_mapper import FileAttachmentExtractor, build_event
from adapters.sqlite_storage import SQLiteStorage
from adapters.webhook_health import HealthLevel, check_webhook
from adapters.webhook_sender import WebhookSender
from client import build_client
from core.config import ForwardingConfig
from core.models import Event
from core.processor import DispatchPipeline

NAME = "NOTIFYRELAY"
FONT = "tarty-1"

LOGGER = logging.getLogger(__name__)


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict, webhook_urls: Iterable[str]) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", True):
        return []
    values = set(webhook_urls)
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.add(value)
    # Longest first so a URL is masked before any secret embedded in it.
    return sorted(values, key=len, reverse=True)


def _configure_logging(config: dict, webhook_urls: Iterable[str] = ()) -> None:
    config = config or {}
    if not config.get("enabled", True):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    secrets = _collect_redaction_values(config, webhook_urls)
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/notifyrelay.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers, force=True)


def is_forwarding_target(config: ForwardingConfig, event: Event) -> bool:
    """Forwarding switch plus source allow-list (empty means every source)."""

    if not config.forwarding_enabled:
        return False
    return not config.selected_sources or event.source_id in config.selected_sources


class EventHandler:
    """Glue between raw records, the pipeline and history storage."""

    def __init__(
        self,
        provider: settings.SettingsProvider,
        pipeline: DispatchPipeline,
        storage: SQLiteStorage,
    ) -> None:
        self._provider = provider
        self._pipeline = pipeline
        self._storage = storage

    def handle_line(self, line: str) -> bool:
        line = line.strip()
        if not line:
            return False
        raw = json.loads(line)
        if not isinstance(raw, dict):
            raise ValueError("notification record must be a JSON object")
        return self.handle_record(raw)

    def handle_record(self, raw: dict[str, Any]) -> bool:
        config = self._provider.snapshot()
        event = build_event(raw)
        if not is_forwarding_target(config, event):
            return False

        accepted = self._pipeline.process(config, event, raw=raw)
        if accepted:
            self._storage.save_history(event)
        return accepted


async def _ingest(handler: EventHandler, stream: TextIO) -> int:
    handled = 0
    while True:
        line = await asyncio.to_thread(stream.readline)
        if not line:
            return handled
        try:
            if await asyncio.to_thread(handler.handle_line, line):
                handled += 1
        except Exception:
            # One bad record must not stop ingestion.
            LOGGER.exception("Error while processing notification record")


def _build_storage() -> SQLiteStorage:
    storage = SQLiteStorage(settings.DB_PATH)
    storage.init_db()
    return storage


def _build_worker(storage: SQLiteStorage, client, raw_config: dict) -> DeliveryWorker:
    delivery = settings.delivery_settings(raw_config)
    return DeliveryWorker(
        storage,
        WebhookSender(client),
        backoff_base=delivery["backoff_base_seconds"],
        max_backoff=delivery["max_backoff_seconds"],
    )


def _load_provider() -> settings.SettingsProvider:
    provider = settings.SettingsProvider(settings.CONFIG_PATH)
    forwarding = provider.snapshot()
    _configure_logging(provider.raw.get("logging", {}), settings.all_webhook_urls(forwarding))
    return provider


def _run(input_path: Optional[str]) -> None:
    _print_banner()
    provider = _load_provider()
    LOGGER.info("Starting notifyrelay")

    storage = _build_storage()
    removed = storage.cleanup_history(settings.history_retention_days(provider.raw))
    LOGGER.info("History cleanup removed %s records, %s kept", removed, storage.count_history())
    parked = storage.list_quiet_items()
    if parked:
        LOGGER.info("%s event(s) parked from quiet hours, oldest from %s", len(parked), parked[0].source_id)

    pipeline = DispatchPipeline(
        queue=storage,
        quiet_store=storage,
        attachment_extractor=FileAttachmentExtractor(),
    )
    handler = EventHandler(provider, pipeline, storage)

    async def _main() -> None:
        async with build_client(settings.delivery_settings(provider.raw)["timeout_seconds"]) as client:
            worker = _build_worker(storage, client, provider.raw)
            worker_task = asyncio.create_task(worker.run_forever())
            try:
                if input_path:
                    with open(input_path, "r", encoding="utf-8") as stream:
                        handled = await _ingest(handler, stream)
                else:
                    handled = await _ingest(handler, sys.stdin)
                LOGGER.info("Input finished: %s notifications handled", handled)
            finally:
                worker_task.cancel()
                try:
                    await worker_task
                except asyncio.CancelledError:
                    pass
            # Deliver whatever is already due before exiting.
            await worker.run_once()
        LOGGER.info("%s delivery job(s) left in the queue", storage.count_jobs())

    asyncio.run(_main())


def _drain() -> None:
    provider = _load_provider()
    storage = _build_storage()

    async def _main() -> None:
        async with build_client(settings.delivery_settings(provider.raw)["timeout_seconds"]) as client:
            wait = await _build_worker(storage, client, provider.raw).run_once()
        if wait is not None:
            LOGGER.info("Head job is backing off for %.0fs; %s job(s) queued", wait, storage.count_jobs())

    asyncio.run(_main())


def _check_webhook(url: str) -> int:
    storage = _build_storage()
    record = storage.get_delivery_record(url)

    async def _main():
        async with build_client() as client:
            return await check_webhook(client, url, record.last_success_at if record else None)

    health = asyncio.run(_main())
    print(f"{health.effective_level.value.upper()}: {health.message}")
    if health.channel_name:
        print(f"channel: {health.channel_name} (guild {health.guild_id or '-'})")
    if record is not None:
        print(f"last delivery: {record.message} (status {record.last_status_code})")
    return 0 if health.effective_level is HealthLevel.OK else 1


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="notifyrelay")
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Forward notifications read as JSON lines")
    run_parser.add_argument("--input", help="Read records from a file instead of stdin")
    subparsers.add_parser("drain", help="Deliver every due queued job and exit")
    check_parser = subparsers.add_parser("check-webhook", help="Check that a webhook URL is valid")
    check_parser.add_argument("url")

    args = parser.parse_args(argv)
    if args.command == "drain":
        _drain()
        return
    if args.command == "check-webhook":
        sys.exit(_check_webhook(args.url))
    _run(getattr(args, "input", None))


if __name__ == "__main__":
    main()
