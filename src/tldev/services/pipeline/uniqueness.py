from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field

from tldev.services.llm import GeneratedTip

logger = logging.getLogger(__name__)

HEADLINE_PATTERN_WORDS = 3


def _slug(value: str | None) -> str | None:
    if not value:
        return None
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug or None


def topic_key(tip: GeneratedTip) -> str | None:
    return _slug(tip.topic_slug)


def technology_key(tip: GeneratedTip) -> str | None:
    return _slug(tip.technology)


def headline_pattern(tip: GeneratedTip) -> str | None:
    """Opening words of the headline with numbers masked.

    "Uber cut latency 40% with..." and "Uber cut latency 25% by..." share a
    pattern; so do "Stop writing X" and "Stop writing Y" style openers.
    """
    words = re.findall(r"[a-z0-9]+", tip.headline.lower())
    if not words:
        return None
    masked = ["#" if w.isdigit() else w for w in words[:HEADLINE_PATTERN_WORDS]]
    return " ".join(masked)


UNIQUENESS_KEYS: dict[str, Callable[[GeneratedTip], str | None]] = {
    "topic": topic_key,
    "technology": technology_key,
    "headline_pattern": headline_pattern,
}


@dataclass
class DroppedTip:
    tip: GeneratedTip
    key: str
    value: str


@dataclass
class UniquenessReport:
    kept: list[GeneratedTip] = field(default_factory=list)
    dropped: list[DroppedTip] = field(default_factory=list)


def enforce_uniqueness(
    tips: list[GeneratedTip], excluded_topics: list[str] | None = None
) -> UniquenessReport:
    """Drop tips that repeat a topic, technology or headline pattern.

    First occurrence wins. Topics in ``excluded_topics`` (already published)
    count as seen before the batch starts. Missing keys never collide.
    """
    seen: dict[str, set[str]] = {name: set() for name in UNIQUENESS_KEYS}
    seen["topic"].update(s for s in map(_slug, excluded_topics or []) if s)
    report = UniquenessReport()

    for tip in tips:
        keys = {name: fn(tip) for name, fn in UNIQUENESS_KEYS.items()}
        clash = next(
            ((name, value) for name, value in keys.items() if value and value in seen[name]),
            None,
        )
        if clash:
            name, value = clash
            logger.info("Dropping duplicate tip %r: repeated %s %r", tip.headline, name, value)
            report.dropped.append(DroppedTip(tip=tip, key=name, value=value))
            continue

        for name, value in keys.items():
            if value:
                seen[name].add(value)
        report.kept.append(tip)

    return report
