"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class Event:
    """One incoming notification, immutable once created."""

    source_id: str
    source_name: str
    title: str
    text: str
    timestamp: datetime
    category_id: str = ""
    importance: int = 0
    is_summary: bool = False


@dataclass(frozen=True)
class PendingQuietItem:
    """Event parked while quiet hours are active."""

    source_id: str
    source_name: str
    title: str
    text: str
    timestamp: datetime
    destination_urls: Tuple[str, ...]


@dataclass(frozen=True)
class Attachment:
    """A single file sent alongside a webhook message."""

    file_path: str
    file_name: str
    content_type: str


@dataclass(frozen=True)
class EmbedField:
    name: str
    value: str
    inline: bool = False


@dataclass(frozen=True)
class Embed:
    """Structured message block rendered by the embed builder."""

    title: str
    description: str
    color: int
    fields: List[EmbedField]
    footer_text: str

    def total_length(self) -> int:
        """Return the character count that counts toward the embed ceiling."""

        total = len(self.title) + len(self.description) + len(self.footer_text)
        return total + sum(len(f.name) + len(f.value) for f in self.fields)


@dataclass(frozen=True)
class RenderedMessage:
    content: str
    embeds: List[Embed] = field(default_factory=list)
    attachment: Optional[Attachment] = None


@dataclass(frozen=True)
class DeliveryJob:
    """Unit of work handed to the delivery queue."""

    destination_url: str
    payload: bytes
    attachment: Optional[Attachment] = None


@dataclass(frozen=True)
class QueuedJob:
    """A delivery job as stored in the durable queue."""

    id: int
    job: DeliveryJob
    attempts: int
    next_attempt_at: datetime
