"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for storage, delivery and attachment
adapters so that the core can be reused with different backends.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Mapping, Optional, Protocol

from core.models import Attachment, DeliveryJob, PendingQuietItem, QueuedJob


class DeliveryQueuePort(Protocol):
    """Single strictly ordered outbound queue."""

    def enqueue(self, job: DeliveryJob) -> None:
        ...


class QuietQueuePort(Protocol):
    """Durable buffer for events parked during quiet hours."""

    def append_quiet_item(self, item: PendingQuietItem, limit: int) -> None:
        ...

    def has_quiet_items(self) -> bool:
        ...

    def drain_quiet_items(self) -> List[PendingQuietItem]:
        """Return every queued item and clear the queue in one step."""
        ...


class AttachmentExtractorPort(Protocol):
    def extract(self, raw: Mapping[str, Any], payload_id: str) -> Optional[Attachment]:
        ...


class DeliveryStorePort(DeliveryQueuePort, Protocol):
    """Queue operations the delivery worker needs on top of ``enqueue``."""

    def peek_job(self) -> Optional[QueuedJob]:
        """Return the oldest queued job without removing it."""
        ...

    def complete_job(self, job_id: int) -> None:
        ...

    def reschedule_job(self, job_id: int, attempts: int, next_attempt_at: datetime) -> None:
        ...

    def record_delivery_result(
        self,
        url: str,
        success: bool,
        status_code: Optional[int],
        message: str,
    ) -> None:
        ...
