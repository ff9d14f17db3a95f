"""Core types."""

from __future__ import annotations
import re
from dataclasses import dataclass, field, replace
from enum import Enum


class Category(str, Enum):
    """Closed set of PII categories.  Declaration order is also the final
    tie-break order used by the merger."""
    NAME = "name"
    EMAIL = "email"
    PHONE = "phone"
    SSN = "ssn"
    ADDRESS = "address"
    DATE = "date"
    FINANCIAL = "financial"
    ID = "id"


class Source(str, Enum):
    PATTERN = "pattern"
    MODEL = "model"
    MANUAL = "manual"     # only created by the review layer


class Acceptance(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass(frozen=True, slots=True)
class Span:
    """A half-open ``[start, end)`` range of the document."""
    category: Category
    text: str
    start: int
    end: int
    confidence: float      # 0.0–1.0
    source: Source

    @property
    def length(self) -> int:
        return self.end - self.start

    def overlaps(self, other: Span) -> bool:
        return self.start < other.end and other.start < self.end


@dataclass(frozen=True, slots=True)
class Entity:
    """A finalized span with its redaction token and review state."""
    id: str
    category: Category
    text: str
    start: int
    end: int
    confidence: float
    source: Source
    replacement_label: str                      # e.g. "[EMAIL_1]"
    acceptance: Acceptance = Acceptance.PENDING

    @classmethod
    def from_span(cls, span: Span, *, id: str, replacement_label: str) -> Entity:
        return cls(
            id=id,
            category=span.category,
            text=span.text,
            start=span.start,
            end=span.end,
            confidence=span.confidence,
            source=span.source,
            replacement_label=replacement_label,
        )

    def with_acceptance(self, acceptance: Acceptance) -> Entity:
        """Copy with a new review state; everything else is fixed."""
        return replace(self, acceptance=Acceptance(acceptance))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category.value,
            "text": self.text,
            "start": self.start,
            "end": self.end,
            "confidence": self.confidence,
            "source": self.source.value,
            "replacement_label": self.replacement_label,
            "acceptance": self.acceptance.value,
        }


@dataclass(frozen=True, slots=True)
class PatternRule:
    category: Category
    pattern: re.Pattern
    confidence: float


@dataclass(frozen=True, slots=True)
class ChunkDescriptor:
    text_slice: str
    global_offset: int

    @property
    def end(self) -> int:
        return self.global_offset + len(self.text_slice)


@dataclass(slots=True)
class PipelineStats:
    pattern_count: int = 0
    model_count: int = 0
    total_count: int = 0
    duration_ms: int = 0
    model_used: bool = False


@dataclass(slots=True)
class PipelineResult:
    """Result of one detection run."""
    pattern_spans: list[Span] = field(default_factory=list)
    model_spans: list[Span] = field(default_factory=list)
    entities: list[Entity] = field(default_factory=list)
    stats: PipelineStats = field(default_factory=PipelineStats)
