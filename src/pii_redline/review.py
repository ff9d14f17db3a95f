"""Review session, the consumer side of a detection run.

A reviewer accepts or rejects detected entities, adds manual redactions and
asks for the redacted text at any time:

    session = ReviewSession(text, result.entities)
    session.set_acceptance("2", Acceptance.REJECTED)
    session.add_manual(120, 134, "[CLIENT]")
    print(session.render())

Manual entities replace any existing entity they overlap, so the entity
list stays non-overlapping.
"""

from __future__ import annotations
import uuid
from collections import Counter

from .render import render_redacted
from .types import Acceptance, Category, Entity, Source

MANUAL_LABEL = "[MANUAL_REDACTION]"


class ReviewSession:
    """Mutable review state over an immutable document."""

    __slots__ = ("_text", "_entities")

    def __init__(self, text: str, entities: list[Entity]) -> None:
        self._text = text
        self._entities: list[Entity] = list(entities)

    @property
    def text(self) -> str:
        return self._text

    @property
    def entities(self) -> list[Entity]:
        """Entities in document order (a copy)."""
        return sorted(self._entities, key=lambda e: e.start)

    def get(self, entity_id: str) -> Entity:
        for entity in self._entities:
            if entity.id == entity_id:
                return entity
        raise KeyError(entity_id)

    # ------------------------------------------------------------------
    # Acceptance
    # ------------------------------------------------------------------

    def set_acceptance(self, entity_id: str, acceptance: Acceptance | str) -> Entity:
        """Change one entity's review state.  Raises KeyError if unknown."""
        for i, entity in enumerate(self._entities):
            if entity.id == entity_id:
                updated = entity.with_acceptance(Acceptance(acceptance))
                self._entities[i] = updated
                return updated
        raise KeyError(entity_id)

    def accept_all(self) -> None:
        self._set_all(Acceptance.ACCEPTED)

    def reject_all(self) -> None:
        self._set_all(Acceptance.REJECTED)

    def reset_all(self) -> None:
        self._set_all(Acceptance.PENDING)

    def _set_all(self, acceptance: Acceptance) -> None:
        self._entities = [e.with_acceptance(acceptance) for e in self._entities]

    # ------------------------------------------------------------------
    # Manual redactions
    # ------------------------------------------------------------------

    def add_manual(
        self,
        start: int,
        end: int,
        replacement_label: str | None = None,
        *,
        category: Category = Category.ID,
        replace_all: bool = False,
    ) -> list[Entity]:
        """Redact ``text[start:end]`` (or every occurrence of it).

        Returns the new entities.  Existing entities overlapping any of them
        are dropped.
        """
        if not 0 <= start < end <= len(self._text):
            raise ValueError(
                f"invalid range [{start}, {end}) for text of length {len(self._text)}"
            )
        label = (replacement_label or "").strip() or MANUAL_LABEL
        selected = self._text[start:end]

        if replace_all:
            ranges = []
            idx = self._text.find(selected)
            while idx != -1:
                ranges.append((idx, idx + len(selected)))
                idx = self._text.find(selected, idx + len(selected))
        else:
            ranges = [(start, end)]

        batch = uuid.uuid4().hex[:12]
        added = [
            Entity(
                id=f"manual-{batch}-{s}",
                category=Category(category),
                text=selected,
                start=s,
                end=e,
                confidence=1.0,
                source=Source.MANUAL,
                replacement_label=label,
                acceptance=Acceptance.ACCEPTED,
            )
            for s, e in ranges
        ]

        self._entities = [
            existing for existing in self._entities
            if not any(existing.start < new.end and existing.end > new.start for new in added)
        ]
        self._entities.extend(added)
        return added

    def remove(self, entity_id: str) -> Entity:
        entity = self.get(entity_id)
        self._entities.remove(entity)
        return entity

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def render(self) -> str:
        return render_redacted(self._text, self._entities)

    def summary(self) -> dict[str, int]:
        """Entity count per category value, e.g. ``{"email": 2, "name": 1}``."""
        return dict(Counter(e.category.value for e in self._entities))

    def to_dict(self) -> dict:
        return {
            "text": self._text,
            "redacted": self.render(),
            "summary": self.summary(),
            "entities": [e.to_dict() for e in self.entities],
        }
