"""Mutable caches owned by one pipeline instance.

Dedup maps, rate-limit deques and aggregate windows are keyed by source id.
Each key has its own lock so different sources never block each other while
read-modify-write on the same source stays atomic.
"""

from __future__ import annotations

from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
import threading
from typing import Deque, Dict, Iterator, List, Optional, Tuple

from core.models import Event


class KeyedLocks:
    """Lazily created lock per key, guarded by a single map lock."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self.lock_for(key):
            yield


@dataclass
class AggregateState:
    """Burst window for one source."""

    window_start: datetime
    count: int
    latest_event: Event
    destinations: List[str]

    def merge(self, event: Event, destinations: List[str]) -> None:
        self.count += 1
        self.latest_event = event
        for url in destinations:
            if url not in self.destinations:
                self.destinations.append(url)


@dataclass
class PipelineState:
    """Process-wide caches, injected into the pipeline and owned by it."""

    content_hashes: Dict[str, Tuple[str, datetime]] = field(default_factory=dict)
    title_seen: Dict[str, datetime] = field(default_factory=dict)
    sent_at: Dict[str, Deque[datetime]] = field(default_factory=dict)
    aggregates: Dict[str, AggregateState] = field(default_factory=dict)
    locks: KeyedLocks = field(default_factory=KeyedLocks)

    def sent_deque(self, source_id: str) -> Deque[datetime]:
        return self.sent_at.setdefault(source_id, deque())

    def aggregate_keys(self) -> List[str]:
        # Snapshot so a concurrent insert does not break iteration.
        return list(self.aggregates.keys())

    def pop_aggregate(self, source_id: str) -> Optional[AggregateState]:
        return self.aggregates.pop(source_id, None)
