"""Deduplication guard (core domain)."""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timedelta

from core.config import DedupeConfig
from core.models import Event
from core.state import PipelineState

LOGGER = logging.getLogger(__name__)


def compute_fingerprint(title: str, text: str) -> str:
    """Return the SHA-256 content hash used for repeat detection."""

    return hashlib.sha256(f"{title}\n{text}".encode("utf-8")).hexdigest()


def title_key(source_id: str, title: str) -> str:
    return f"{source_id}::{title.lower()}"


class DedupGuard:
    """Suppress repeats of the same content or title within a window.

    Both checks always run and always refresh their cache entry, so a steady
    stream of repeats keeps being suppressed until it pauses for a window.
    """

    def __init__(self, state: PipelineState) -> None:
        self._state = state

    def should_drop(self, config: DedupeConfig, event: Event, now: datetime) -> bool:
        if not config.enabled:
            return False

        window = timedelta(seconds=max(1, config.window_seconds))
        key = event.source_id
        suppressed = False

        with self._state.locks.hold(key):
            if config.content_hash_enabled:
                fingerprint = compute_fingerprint(event.title, event.text)
                previous = self._state.content_hashes.get(key)
                if previous is not None and previous[0] == fingerprint and now - previous[1] <= window:
                    suppressed = True
                self._state.content_hashes[key] = (fingerprint, now)

            if config.title_latest_only and event.title.strip():
                tkey = title_key(key, event.title)
                previous_time = self._state.title_seen.get(tkey)
                if previous_time is not None and now - previous_time <= window:
                    suppressed = True
                self._state.title_seen[tkey] = now

        if suppressed:
            LOGGER.info("Dedup skip for %s (repeat within %ss)", key, int(window.total_seconds()))
        return suppressed
