"""Template substitution and short summary lines."""

from __future__ import annotations

from datetime import datetime

from core.models import Event

TIME_FORMAT = "%Y/%m/%d %H:%M:%S"
CONTENT_LIMIT = 1900
NO_TITLE = "(no title)"
NO_TEXT = "(no text)"


def format_time(moment: datetime) -> str:
    """Format a timestamp in local time."""

    return moment.astimezone().strftime(TIME_FORMAT)


def safe_title(event: Event) -> str:
    return event.title if event.title.strip() else NO_TITLE


def safe_text(event: Event) -> str:
    return event.text if event.text.strip() else NO_TEXT


def render(template: str, event: Event) -> str:
    """Replace the ``{app} {title} {text} {time} {package}`` tokens verbatim.

    Other braces in a user template are left untouched.
    """

    return (
        template.replace("{app}", event.source_name)
        .replace("{title}", safe_title(event))
        .replace("{text}", safe_text(event))
        .replace("{time}", format_time(event.timestamp))
        .replace("{package}", event.source_id)
    )


def render_short_summary(event: Event, aggregate_count: int = 1) -> str:
    """One line for the message content when embeds carry the body."""

    title = safe_title(event)
    if aggregate_count > 1:
        raw = f"📬 {event.source_name}: {aggregate_count} notifications (latest: {title})"
    else:
        raw = f"📩 {event.source_name}: {title}"
    return raw[:CONTENT_LIMIT]


def aggregate_note(aggregate_count: int) -> str:
    return f"({aggregate_count} recent notifications aggregated)"
