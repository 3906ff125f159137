"""Keyword/regex matching shared by the global filter and routing rules."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import logging
import re
from typing import Iterable, List, Optional, Sequence

from core.config import FilterConfig, RoutingRule
from core.models import Event

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuleMatch:
    """A single routing rule match with a human-readable reason."""

    rule_name: str
    reason: str
    destination_urls: tuple[str, ...]


def build_search_source(event: Event) -> str:
    """Join the searchable parts of an event, one per line."""

    return "\n".join([event.source_name, event.title, event.text, event.source_id])


@lru_cache(maxsize=128)
def compile_pattern(pattern: str) -> Optional[re.Pattern]:
    """Compile a case-insensitive pattern, returning None when it is invalid."""

    if not pattern.strip():
        return None
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        LOGGER.warning("Ignoring invalid regex %r: %s", pattern, exc)
        return None


def _keyword_hits(keywords: Sequence[str], text: str) -> List[str]:
    lowered = text.lower()
    return [k for k in keywords if k and k.lower() in lowered]


def _regex_hit(use_regex: bool, pattern: str, text: str) -> bool:
    if not use_regex:
        return False
    compiled = compile_pattern(pattern)
    return bool(compiled and compiled.search(text))


def matches_text(keywords: Sequence[str], use_regex: bool, pattern: str, text: str) -> bool:
    """Evaluate the keyword/regex table.

    - No keywords and no regex: match unconditionally.
    - No keywords, regex on: regex search result.
    - Keywords, regex off: any keyword appears (case-insensitive).
    - Keywords and regex: keyword OR regex.
    """

    if not keywords and not use_regex:
        return True
    if not keywords:
        return _regex_hit(use_regex, pattern, text)
    return bool(_keyword_hits(keywords, text)) or _regex_hit(use_regex, pattern, text)


def passes_filter(config: FilterConfig, event: Event) -> bool:
    """Return True when the event survives the global filter."""

    if not config.enabled:
        return True
    if config.exclude_summary and event.is_summary:
        return False
    if config.channel_ids and event.category_id not in config.channel_ids:
        return False
    if event.importance < config.min_importance:
        return False
    return matches_text(config.keywords, config.use_regex, config.regex_pattern, build_search_source(event))


def matches_routing_rule(rule: RoutingRule, event: Event) -> bool:
    """Routing rules only check sources and the keyword/regex table."""

    if rule.source_ids and event.source_id not in rule.source_ids:
        return False
    return matches_text(rule.keywords, rule.use_regex, rule.regex_pattern, build_search_source(event))


def match_rules(event: Event, rules: Iterable[RoutingRule]) -> List[RuleMatch]:
    """Return every enabled rule that matches, in configured order.

    Reasons include the specific keywords and/or the regex that matched, or
    note that the rule only filters on sources.
    """

    text = build_search_source(event)
    matches: List[RuleMatch] = []

    for rule in rules:
        if not rule.enabled or not matches_routing_rule(rule, event):
            continue

        keyword_hits = _keyword_hits(rule.keywords, text)
        reason_parts: List[str] = []
        if keyword_hits:
            reason_parts.append(f"keyword(s): {', '.join(sorted(set(keyword_hits)))}")
        if _regex_hit(rule.use_regex, rule.regex_pattern, text):
            reason_parts.append(f"regex: {rule.regex_pattern}")
        if not reason_parts:
            reason_parts.append("source filter")

        matches.append(
            RuleMatch(
                rule_name=rule.name,
                reason="; ".join(reason_parts),
                destination_urls=rule.destination_urls,
            )
        )

    return matches
