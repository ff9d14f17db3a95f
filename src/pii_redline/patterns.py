"""Stage 1: regex patterns for structured PII.

These run BEFORE the model and are near-zero cost.  Every rule is scanned
over the whole text independently; overlapping matches from different rules
are kept here and resolved by the merger.
"""

from __future__ import annotations
import re
from typing import Iterable

from .types import Category, PatternRule, Source, Span

_MONTHS = (
    "January|February|March|April|May|June|July|August|September|"
    "October|November|December"
)

# Each rule: (category, compiled_regex, confidence)
DEFAULT_RULES: tuple[PatternRule, ...] = (
    # Email
    PatternRule(Category.EMAIL, re.compile(
        r"\b[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}\b"
    ), 0.95),

    # SSN (xxx-xx-xxxx)
    PatternRule(Category.SSN, re.compile(
        r"\b\d{3}-\d{2}-\d{4}\b"
    ), 0.95),

    # Phone: US formats with optional country code
    PatternRule(Category.PHONE, re.compile(
        r"(?:\+?1[\-.\s]?)?\(?\d{3}\)?[\-.\s]?\d{3}[\-.\s]?\d{4}\b"
    ), 0.9),

    # Card-like numbers: 13-19 digits with optional separators
    PatternRule(Category.FINANCIAL, re.compile(
        r"\b(?:\d[ \-]*?){13,19}\b"
    ), 0.7),

    # Dates (MM/DD/YYYY, YYYY-MM-DD, Month DD, YYYY)
    PatternRule(Category.DATE, re.compile(
        r"\b(?:\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4}"
        r"|\d{4}[/\-]\d{1,2}[/\-]\d{1,2}"
        rf"|(?:{_MONTHS})\s+\d{{1,2}},?\s*\d{{4}})\b",
        re.IGNORECASE,
    ), 0.85),

    # URL
    PatternRule(Category.ID, re.compile(
        r"\b(?:https?://|www\.)[\w\-]+\.[\w\-.~:/?#\[\]@!$&'()*+,;=]+(?:\b|$)",
        re.IGNORECASE,
    ), 0.85),

    # MAC address
    PatternRule(Category.ID, re.compile(
        r"\b(?:[0-9A-Fa-f]{2}[:\-]){5}[0-9A-Fa-f]{2}\b"
    ), 0.9),

    # UUID
    PatternRule(Category.ID, re.compile(
        r"\b[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\b",
        re.IGNORECASE,
    ), 0.9),

    # IPv6 in brackets
    PatternRule(Category.ID, re.compile(
        r"\[(?:[0-9a-fA-F]{1,4}:){7}[0-9a-fA-F]{1,4}\]"
    ), 0.9),

    # IPv4
    PatternRule(Category.ID, re.compile(
        r"\b(?:(?:25[0-5]|2[0-4]\d|[01]?\d\d?)\.){3}"
        r"(?:25[0-5]|2[0-4]\d|[01]?\d\d?)\b"
    ), 0.9),
)


def scan_patterns(
    text: str,
    rules: Iterable[PatternRule] = DEFAULT_RULES,
) -> list[Span]:
    """Run every rule against text.  Returns all matches, sorted by start."""
    matches: list[Span] = []
    for rule in rules:
        for m in rule.pattern.finditer(text):
            if m.end() == m.start():
                continue
            matches.append(Span(
                category=rule.category,
                text=m.group(),
                start=m.start(),
                end=m.end(),
                confidence=rule.confidence,
                source=Source.PATTERN,
            ))
    # stable: rule order is kept for equal starts
    return sorted(matches, key=lambda s: s.start)
