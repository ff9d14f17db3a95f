"""Redacted text rendering."""

from __future__ import annotations
from typing import Iterable

from .types import Acceptance, Entity


def render_redacted(text: str, entities: Iterable[Entity]) -> str:
    """Replace every non-rejected entity with its replacement label.

    Replacements are applied right-to-left so earlier offsets stay valid.
    Neither ``text`` nor ``entities`` is modified; call again whenever the
    review state changes.
    """
    active = [e for e in entities if e.acceptance is not Acceptance.REJECTED]
    result = text
    for entity in sorted(active, key=lambda e: e.start, reverse=True):
        result = result[:entity.start] + entity.replacement_label + result[entity.end:]
    return result
