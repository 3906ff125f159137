"""SQLite storage adapter.

Implements the core delivery-queue and quiet-queue ports, plus notification
history and per-webhook delivery records, using a simple SQLite database.
"""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from core.models import Attachment, DeliveryJob, Event, PendingQuietItem, QueuedJob


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DeliveryRecord:
    """Latest delivery outcome for one webhook URL."""

    url: str
    last_status_code: Optional[int]
    last_success_at: Optional[datetime]
    message: str
    updated_at: datetime


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the queue and quiet-store ports."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - delivery_jobs: FIFO of outbound webhook posts
        - quiet_queue: events parked during quiet hours
        - history: append-only log of accepted notifications
        - delivery_results: last delivery outcome per webhook URL
        """

        with self._connect() as conn:
            # delivery_jobs is strictly ordered by its autoincrement id; the
            # worker only ever looks at the lowest id.
            # Fields:
            # - destination_url: webhook to POST to
            # - payload: encoded JSON body
            # - attachment_*: optional file sent as multipart
            # - attempts: failed attempts so far
            # - next_attempt_at: earliest time the job may run again
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS delivery_jobs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    destination_url TEXT NOT NULL,
                    payload BLOB NOT NULL,
                    attachment_path TEXT,
                    attachment_name TEXT,
                    attachment_content_type TEXT,
                    attempts INTEGER NOT NULL DEFAULT 0,
                    next_attempt_at TIMESTAMP NOT NULL,
                    created_at TIMESTAMP NOT NULL
                )
                """
            )
            # quiet_queue survives restarts so nothing parked overnight is lost.
            # destination_urls is a JSON array.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS quiet_queue (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    source_id TEXT NOT NULL,
                    source_name TEXT NOT NULL,
                    title TEXT NOT NULL,
                    text TEXT NOT NULL,
                    timestamp TIMESTAMP NOT NULL,
                    destination_urls TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    source_id TEXT,
                    source_name TEXT,
                    title TEXT,
                    text TEXT,
                    timestamp TIMESTAMP,
                    created_at TIMESTAMP
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS delivery_results (
                    url TEXT PRIMARY KEY,
                    last_status_code INTEGER,
                    last_success_at TIMESTAMP,
                    message TEXT NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                )
                """
            )

    # Delivery queue

    def enqueue(self, job: DeliveryJob) -> None:
        """Append a job after every previously queued job."""

        now = _utcnow().isoformat()
        attachment = job.attachment
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO delivery_jobs (
                    destination_url,
                    payload,
                    attachment_path,
                    attachment_name,
                    attachment_content_type,
                    attempts,
                    next_attempt_at,
                    created_at
                ) VALUES (?, ?, ?, ?, ?, 0, ?, ?)
                """,
                (
                    job.destination_url,
                    job.payload,
                    attachment.file_path if attachment else None,
                    attachment.file_name if attachment else None,
                    attachment.content_type if attachment else None,
                    now,
                    now,
                ),
            )

    def peek_job(self) -> Optional[QueuedJob]:
        """Return the oldest queued job, if any."""

        with self._connect() as conn:
            row = conn.execute("SELECT * FROM delivery_jobs ORDER BY id LIMIT 1").fetchone()
        if row is None:
            return None

        attachment = None
        if row["attachment_path"]:
            attachment = Attachment(
                file_path=row["attachment_path"],
                file_name=row["attachment_name"] or "",
                content_type=row["attachment_content_type"] or "",
            )
        return QueuedJob(
            id=int(row["id"]),
            job=DeliveryJob(
                destination_url=row["destination_url"],
                payload=bytes(row["payload"]),
                attachment=attachment,
            ),
            attempts=int(row["attempts"]),
            next_attempt_at=datetime.fromisoformat(row["next_attempt_at"]),
        )

    def complete_job(self, job_id: int) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM delivery_jobs WHERE id = ?", (job_id,))

    def reschedule_job(self, job_id: int, attempts: int, next_attempt_at: datetime) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE delivery_jobs SET attempts = ?, next_attempt_at = ? WHERE id = ?",
                (attempts, next_attempt_at.isoformat(), job_id),
            )

    def count_jobs(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS n FROM delivery_jobs").fetchone()
        return int(row["n"])

    # Quiet-hours queue

    def append_quiet_item(self, item: PendingQuietItem, limit: int) -> None:
        """Append an item and drop the oldest ones beyond ``limit``."""

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO quiet_queue (
                    source_id, source_name, title, text, timestamp, destination_urls
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    item.source_id,
                    item.source_name,
                    item.title,
                    item.text,
                    item.timestamp.isoformat(),
                    json.dumps(list(item.destination_urls)),
                ),
            )
            conn.execute(
                """
                DELETE FROM quiet_queue WHERE id NOT IN (
                    SELECT id FROM quiet_queue ORDER BY id DESC LIMIT ?
                )
                """,
                (limit,),
            )

    def has_quiet_items(self) -> bool:
        with self._connect() as conn:
            row = conn.execute("SELECT 1 FROM quiet_queue LIMIT 1").fetchone()
        return row is not None

    def list_quiet_items(self) -> List[PendingQuietItem]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM quiet_queue ORDER BY id").fetchall()
        return [self._row_to_quiet_item(row) for row in rows]

    def drain_quiet_items(self) -> List[PendingQuietItem]:
        """Read and clear the quiet queue inside one transaction."""

        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            rows = conn.execute("SELECT * FROM quiet_queue ORDER BY id").fetchall()
            conn.execute("DELETE FROM quiet_queue")
        return [self._row_to_quiet_item(row) for row in rows]

    @staticmethod
    def _row_to_quiet_item(row: sqlite3.Row) -> PendingQuietItem:
        return PendingQuietItem(
            source_id=row["source_id"],
            source_name=row["source_name"],
            title=row["title"],
            text=row["text"],
            timestamp=datetime.fromisoformat(row["timestamp"]),
            destination_urls=tuple(json.loads(row["destination_urls"])),
        )

    # History

    def save_history(self, event: Event) -> None:
        """Persist an accepted notification to the append-only history."""

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO history (source_id, source_name, title, text, timestamp, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    event.source_id,
                    event.source_name,
                    event.title,
                    event.text,
                    event.timestamp.isoformat(),
                    _utcnow().isoformat(),
                ),
            )

    def count_history(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS n FROM history").fetchone()
        return int(row["n"])

    def cleanup_history(self, retention_days: int) -> int:
        """Delete history older than ``retention_days``; -1 keeps everything."""

        if retention_days < 0:
            return 0
        cutoff = _utcnow() - timedelta(days=retention_days)
        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM history WHERE created_at < ?",
                (cutoff.isoformat(),),
            )
            return cur.rowcount

    # Delivery results

    def record_delivery_result(
        self,
        url: str,
        success: bool,
        status_code: Optional[int],
        message: str,
    ) -> None:
        """Upsert the latest delivery outcome, keeping the last success time."""

        if not url.strip():
            return
        now = _utcnow().isoformat()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO delivery_results (url, last_status_code, last_success_at, message, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(url) DO UPDATE SET
                    last_status_code = excluded.last_status_code,
                    last_success_at = COALESCE(excluded.last_success_at, delivery_results.last_success_at),
                    message = excluded.message,
                    updated_at = excluded.updated_at
                """,
                (url, status_code, now if success else None, message, now),
            )

    def get_delivery_record(self, url: str) -> Optional[DeliveryRecord]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM delivery_results WHERE url = ?",
                (url,),
            ).fetchone()
        if row is None:
            return None
        return DeliveryRecord(
            url=row["url"],
            last_status_code=row["last_status_code"],
            last_success_at=datetime.fromisoformat(row["last_success_at"]) if row["last_success_at"] else None,
            message=row["message"],
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
