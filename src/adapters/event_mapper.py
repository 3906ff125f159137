"""Raw notification record to core Event mapping adapter.

Notification collectors emit one JSON object per notification. This keeps the
record layout out of the core pipeline.

Recognised keys: ``source_id`` (or ``package``), ``source_name`` (or
``app``), ``title``, ``text``, ``big_text``, ``text_lines``, ``sub_text``,
``messages`` (``[{"sender", "text", "data_path", "data_mime_type"}]``),
``timestamp`` (ISO 8601 or epoch milliseconds), ``category_id``,
``importance``, ``is_summary``, ``picture_path`` and ``large_icon_path``.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from pathlib import Path
from typing import Any, List, Mapping, Optional

from core.models import Attachment, Event

LOGGER = logging.getLogger(__name__)


def _as_str(value: Any) -> str:
    return "" if value is None else str(value)


def _messaging_lines(raw: Mapping[str, Any]) -> List[str]:
    lines: List[str] = []
    for message in raw.get("messages") or []:
        if not isinstance(message, Mapping):
            continue
        body = _as_str(message.get("text")).strip()
        if not body:
            continue
        sender = _as_str(message.get("sender")).strip()
        lines.append(f"{sender}: {body}" if sender else body)
    return lines


def extract_text(raw: Mapping[str, Any]) -> str:
    """Pick the richest text: messaging lines, big text, text lines, text, sub text."""

    messaging = "\n".join(_messaging_lines(raw))
    if messaging.strip():
        return messaging

    big_text = _as_str(raw.get("big_text"))
    if big_text.strip():
        return big_text

    text_lines = [_as_str(line).strip() for line in raw.get("text_lines") or []]
    text_lines = [line for line in text_lines if line]
    if text_lines:
        return "\n".join(text_lines)

    text = _as_str(raw.get("text"))
    if text.strip():
        return text

    return _as_str(raw.get("sub_text"))


def parse_timestamp(value: Any) -> datetime:
    """Accept epoch milliseconds or ISO 8601; default to now."""

    if value is None or value == "":
        return datetime.now().astimezone()
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc).astimezone()
    text = str(value).strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def build_event(raw: Mapping[str, Any]) -> Event:
    """Build a core Event from a raw notification record."""

    source_id = _as_str(raw.get("source_id") or raw.get("package")).strip()
    if not source_id:
        raise ValueError("notification record has no source_id")

    source_name = _as_str(raw.get("source_name") or raw.get("app")).strip() or source_id

    return Event(
        source_id=source_id,
        source_name=source_name,
        title=_as_str(raw.get("title")),
        text=extract_text(raw),
        timestamp=parse_timestamp(raw.get("timestamp")),
        category_id=_as_str(raw.get("category_id")),
        importance=int(raw.get("importance") or 0),
        is_summary=bool(raw.get("is_summary", False)),
    )


def _guess_content_type(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix == ".png":
        return "image/png"
    if suffix in {".jpg", ".jpeg"}:
        return "image/jpeg"
    if suffix == ".webp":
        return "image/webp"
    return "application/octet-stream"


class FileAttachmentExtractor:
    """Pick at most one attachment referenced by a raw record.

    Preference: big picture, latest message attachment, large icon. Files
    that no longer exist are skipped.
    """

    def extract(self, raw: Mapping[str, Any], payload_id: str) -> Optional[Attachment]:
        candidates: List[tuple[str, str, Optional[str]]] = []

        picture = _as_str(raw.get("picture_path"))
        if picture:
            candidates.append((picture, f"big_picture_{payload_id}", None))

        messages = [m for m in raw.get("messages") or [] if isinstance(m, Mapping) and m.get("data_path")]
        if messages:
            latest = messages[-1]
            candidates.append(
                (_as_str(latest["data_path"]), f"message_{payload_id}", latest.get("data_mime_type"))
            )

        icon = _as_str(raw.get("large_icon_path"))
        if icon:
            candidates.append((icon, f"large_icon_{payload_id}", None))

        for file_path, base_name, mime_type in candidates:
            path = Path(file_path)
            if not path.is_file():
                LOGGER.debug("Attachment candidate %s does not exist", file_path)
                continue
            content_type = _as_str(mime_type) or _guess_content_type(path)
            return Attachment(
                file_path=str(path),
                file_name=f"{base_name}{path.suffix}",
                content_type=content_type,
            )
        return None
