"""Tests for replacement-label allocation."""

from pii_redline.labels import RunCounters, allocate_labels
from pii_redline.types import Acceptance, Category, Source, Span


def _spans(*categories):
    return [
        Span(c, f"v{i}", i * 10, i * 10 + 5, 0.9, Source.PATTERN)
        for i, c in enumerate(categories)
    ]


def test_counters_per_category():
    counters = RunCounters()
    tokens = [counters.next_token(c) for c in (Category.EMAIL, Category.NAME, Category.EMAIL)]
    assert tokens == ["EMAIL_1", "NAME_1", "EMAIL_2"]
    assert counters.snapshot() == {"email": 2, "name": 1}


def test_allocation_order():
    entities = allocate_labels(_spans(Category.EMAIL, Category.NAME, Category.EMAIL), RunCounters())
    assert [e.replacement_label for e in entities] == ["[EMAIL_1]", "[NAME_1]", "[EMAIL_2]"]
    assert [e.id for e in entities] == ["1", "2", "3"]
    assert all(e.acceptance is Acceptance.PENDING for e in entities)


def test_allocation_is_idempotent_with_fresh_counters():
    spans = _spans(Category.PHONE, Category.SSN, Category.PHONE, Category.DATE)
    first = allocate_labels(spans, RunCounters())
    second = allocate_labels(spans, RunCounters())
    assert first == second


def test_shared_counters_continue_numbering():
    counters = RunCounters()
    allocate_labels(_spans(Category.EMAIL), counters)
    again = allocate_labels(_spans(Category.EMAIL), counters)
    assert again[0].replacement_label == "[EMAIL_2]"


def test_entities_keep_span_fields():
    span = Span(Category.ADDRESS, "42 Main St", 3, 13, 0.7, Source.MODEL)
    (entity,) = allocate_labels([span])
    assert (entity.category, entity.text, entity.start, entity.end) == (
        Category.ADDRESS, "42 Main St", 3, 13,
    )
    assert entity.confidence == 0.7
    assert entity.source is Source.MODEL
