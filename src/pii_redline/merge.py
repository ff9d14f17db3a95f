"""Cross-stage merge: pattern + model spans → one non-overlapping list.

Greedy longest-span selection.  Longer spans are more specific (a full
address beats the street number inside it), and on equal length the
deterministic pattern match beats the probabilistic model.  This is a
heuristic: it does not maximise total coverage.
"""

from __future__ import annotations
from typing import Any, Iterable

from .logging import get_logger
from .types import Category, Source, Span

logger = get_logger(__name__)

_SOURCE_RANK = {Source.PATTERN: 0, Source.MODEL: 1, Source.MANUAL: 2}
_CATEGORY_RANK = {c: i for i, c in enumerate(Category)}


def _rank(span: Span) -> tuple:
    # The last two keys only separate spans that are equal on length,
    # source and start.  They are an arbitrary but stable choice.
    return (
        -span.length,
        _SOURCE_RANK[span.source],
        span.start,
        -span.confidence,
        _CATEGORY_RANK[span.category],
    )


def _valid_offsets(span: Any) -> bool:
    start, end = getattr(span, "start", None), getattr(span, "end", None)
    return (
        isinstance(start, int) and not isinstance(start, bool)
        and isinstance(end, int) and not isinstance(end, bool)
        and 0 <= start < end
    )


def merge_spans(*groups: Iterable[Span]) -> list[Span]:
    """Merge span groups into a chronologically sorted, non-overlapping list.

    Args:
        groups: Any number of span iterables (pattern spans, model spans).
    """
    candidates: list[Span] = []
    for group in groups:
        for span in group:
            if not _valid_offsets(span):
                logger.warning(
                    "Skipping span with unusable offsets %(start)s-%(end)s",
                    {"start": getattr(span, "start", None), "end": getattr(span, "end", None)},
                )
                continue
            candidates.append(span)

    taken: list[Span] = []
    for span in sorted(candidates, key=_rank):
        if not any(span.overlaps(t) for t in taken):
            taken.append(span)
    return sorted(taken, key=lambda s: s.start)
