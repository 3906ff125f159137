"""Size-bounded embed construction.

Limits are applied in a fixed order so the result always fits the webhook
embed ceiling: title, then description, then continuation fields, which stop
at the first one that would push the embed past the total limit.
"""

from __future__ import annotations

import hashlib
import logging
from typing import List

from core.config import EmbedConfig
from core.models import Embed, EmbedField, Event
from core.template_engine import format_time, safe_title, safe_text

TITLE_LIMIT = 256
DESCRIPTION_LIMIT = 4096
EMBED_TOTAL_LIMIT = 6000
MIN_FIELD_LENGTH = 200
MAX_FIELD_LENGTH = 1000

LOGGER = logging.getLogger(__name__)


def aggregate_prefix(aggregate_count: int) -> str:
    return f"{aggregate_count} recent notifications aggregated\n" if aggregate_count > 1 else ""


def clamp_field_length(value: int) -> int:
    return max(MIN_FIELD_LENGTH, min(MAX_FIELD_LENGTH, value))


def split_to_field_chunks(text: str, max_len: int) -> List[str]:
    """Split text into chunks of at most ``max_len``, preferring newlines."""

    chunks: List[str] = []
    cursor = text
    while cursor.strip():
        if len(cursor) <= max_len:
            chunks.append(cursor)
            break
        split_at = cursor.rfind("\n", 0, max_len + 1)
        if split_at < 1:
            split_at = max_len
        chunks.append(cursor[:split_at].rstrip())
        cursor = cursor[split_at:].lstrip("\n")
    return chunks


def stable_color(source_id: str) -> int:
    """Derive a mid-brightness RGB colour from the source id."""

    digest = hashlib.sha256(source_id.encode("utf-8")).digest()
    red, green, blue = ((b & 0x7F) + 64 for b in digest[:3])
    return (red << 16) | (green << 8) | blue


def build_embed(event: Event, config: EmbedConfig, device_name: str, aggregate_count: int = 1) -> Embed:
    """Build one embed for an event, enforcing every size limit."""

    max_len = clamp_field_length(config.max_field_length)
    body = safe_text(event)
    prefix = aggregate_prefix(aggregate_count)

    available = max(0, DESCRIPTION_LIMIT - len(prefix))
    description_body = body[:available]
    description = f"{prefix}{description_body}"
    remainder = body[len(description_body):].lstrip()

    title = safe_title(event)[:TITLE_LIMIT]
    timestamp = format_time(event.timestamp)
    footer_text = f"{device_name} • {timestamp}"

    fields: List[EmbedField] = [EmbedField(name="Source", value=event.source_name or event.source_id, inline=True)]
    if config.include_time_field:
        fields.append(EmbedField(name="Received", value=timestamp, inline=True))
    if config.include_source_field:
        fields.append(EmbedField(name="Source ID", value=event.source_id, inline=False))

    consumed = len(title) + len(description) + len(footer_text)
    consumed += sum(len(f.name) + len(f.value) for f in fields)

    for index, part in enumerate(split_to_field_chunks(remainder, max_len), start=1):
        if not part.strip():
            continue
        name = f"Text (cont. {index})"
        if consumed + len(name) + len(part) > EMBED_TOTAL_LIMIT:
            break
        fields.append(EmbedField(name=name, value=part, inline=False))
        consumed += len(name) + len(part)

    embed = Embed(
        title=title,
        description=description,
        color=stable_color(event.source_id),
        fields=fields,
        footer_text=footer_text,
    )
    LOGGER.debug("Embed for %s: %s fields, %s chars", event.source_id, len(fields), embed.total_length())
    return embed
