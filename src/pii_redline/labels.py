"""Replacement-label allocation.

Each finalized span gets a token ``[CATEGORY_n]`` where ``n`` counts that
category in document order.  Counters live in a ``RunCounters`` created for
one run, so two runs never interleave their numbering.
"""

from __future__ import annotations
from collections import defaultdict
from typing import Iterable

from .types import Category, Entity, Span

# Label format: [TYPE_N]
_LABEL_FMT = "[{token}]"


class RunCounters:
    """Per-category counters, scoped to a single pipeline run."""

    __slots__ = ("_counters",)

    def __init__(self) -> None:
        self._counters: dict[Category, int] = defaultdict(int)

    def next_token(self, category: Category) -> str:
        """``EMAIL_1``, ``EMAIL_2``, ... one sequence per category."""
        self._counters[category] += 1
        return f"{category.value.upper()}_{self._counters[category]}"

    def count(self, category: Category) -> int:
        return self._counters[category]

    def snapshot(self) -> dict[str, int]:
        return {c.value: n for c, n in self._counters.items() if n}


def allocate_labels(
    spans: Iterable[Span],
    counters: RunCounters | None = None,
) -> list[Entity]:
    """Turn merged spans into pending entities with sequential labels.

    ``spans`` must already be in document order.  A fresh ``RunCounters``
    is created when none is given.
    """
    counters = counters if counters is not None else RunCounters()
    return [
        Entity.from_span(
            span,
            id=str(i),
            replacement_label=_LABEL_FMT.format(token=counters.next_token(span.category)),
        )
        for i, span in enumerate(spans, start=1)
    ]
