"""Wire payload encoding for webhook messages."""

from __future__ import annotations

import json
from typing import Any, Dict

from core.models import Embed, RenderedMessage


def embed_to_dict(embed: Embed) -> Dict[str, Any]:
    return {
        "title": embed.title,
        "description": embed.description,
        "color": embed.color,
        "fields": [{"name": f.name, "value": f.value, "inline": f.inline} for f in embed.fields],
        "footer": {"text": embed.footer_text},
    }


def build_payload(message: RenderedMessage) -> Dict[str, Any]:
    """Return the JSON-ready payload; ``embeds`` is omitted when empty."""

    payload: Dict[str, Any] = {"content": message.content}
    if message.embeds:
        payload["embeds"] = [embed_to_dict(embed) for embed in message.embeds]
    return payload


def encode_payload(message: RenderedMessage) -> bytes:
    return json.dumps(build_payload(message), ensure_ascii=False).encode("utf-8")
