"""Tests for the model adapter: labels, predictions, chunk offsets, stitching."""

import threading

import pytest

from conftest import FakeClassifier
from pii_redline.errors import (
    DetectionCancelled,
    MalformedPredictionError,
    ModelNotLoadedError,
    ModelUnavailableError,
)
from pii_redline.model import (
    CLASSIFY_CONFIG,
    ModelHandle,
    Prediction,
    chunk_spans,
    detect_with_model,
    normalize_label,
    resolve_category,
    stitch_spans,
)
from pii_redline.types import Category, ChunkDescriptor, Source, Span


def _model_span(category, start, end, text, confidence=0.8):
    return Span(category, text[start:end], start, end, confidence, Source.MODEL)


# ── Label mapping ────────────────────────────────────────────────────

def test_normalize_label():
    assert normalize_label("B-street_address") == ("STREETADDRESS", "STREET_ADDRESS")
    assert normalize_label("i-FirstName") == ("FIRSTNAME", "FIRSTNAME")
    assert normalize_label("IPV4") == ("IPV", "IPV4")


def test_resolve_category_defaults():
    assert resolve_category("B-FIRSTNAME") is Category.NAME
    assert resolve_category("I-LASTNAME") is Category.NAME
    assert resolve_category("b-email") is Category.EMAIL
    assert resolve_category("EMAIL_ADDRESS") is Category.EMAIL
    assert resolve_category("US_SSN") is Category.SSN
    assert resolve_category("PII") is Category.ID
    assert resolve_category("B-MISC") is None


def test_resolve_category_precedence():
    stripped_only = {"STREET_ADDRESS": Category.ADDRESS}
    assert resolve_category("B-street_address", stripped_only) is Category.ADDRESS

    raw_only = {"weird-tag": Category.ID}
    assert resolve_category("weird-tag", raw_only) is Category.ID

    both = {"STREETADDRESS": Category.ADDRESS, "STREET_ADDRESS": Category.ID}
    assert resolve_category("STREET_ADDRESS", both) is Category.ADDRESS


# ── Prediction schema ────────────────────────────────────────────────

def test_prediction_label_sources():
    assert Prediction.from_raw({"entity": "B-PER", "score": 0.5}).label == "B-PER"
    assert Prediction.from_raw({"label": "EMAIL", "score": 0.5}).label == "EMAIL"


@pytest.mark.parametrize("raw", [
    "B-PER",
    {"score": 0.9, "word": "Bob"},
    {"entity_group": "PER", "score": "high"},
    {"entity_group": "PER", "score": 1.5},
    {"entity_group": "PER"},
])
def test_malformed_predictions(raw):
    with pytest.raises(MalformedPredictionError):
        Prediction.from_raw(raw)


def test_non_numeric_offsets_become_none():
    pred = Prediction.from_raw({"entity_group": "PER", "score": 0.9, "word": "Bob",
                                "start": "abc", "end": None})
    assert pred.start is None and pred.end is None
    assert pred.offsets_within(10) is None


def test_offsets_outside_chunk_are_unusable():
    pred = Prediction.from_raw({"entity_group": "PER", "score": 0.9, "start": 5, "end": 50})
    assert pred.offsets_within(10) is None


# ── Chunk → spans ────────────────────────────────────────────────────

def test_chunk_spans_globalizes_offsets():
    chunk = ChunkDescriptor("Hi John Smith!", 100)
    spans = chunk_spans(
        [{"entity_group": "FIRSTNAME", "score": 0.9, "word": "John", "start": 3, "end": 7}],
        chunk,
    )
    assert len(spans) == 1
    assert (spans[0].start, spans[0].end) == (103, 107)
    assert spans[0].text == "John"
    assert spans[0].source is Source.MODEL
    assert spans[0].confidence == 0.9


def test_fallback_search_is_monotonic():
    chunk = ChunkDescriptor("Bob met Bob", 0)
    raw = [
        {"entity_group": "FIRSTNAME", "score": 0.9, "word": "Bob"},
        {"entity_group": "FIRSTNAME", "score": 0.8, "word": "Bob"},
    ]
    spans = chunk_spans(raw, chunk)
    assert [(s.start, s.end) for s in spans] == [(0, 3), (8, 11)]


def test_fallback_strips_subword_marker():
    chunk = ChunkDescriptor("Mr Jackson", 0)
    raw = [{"entity_group": "LASTNAME", "score": 0.9, "word": "##son", "start": None}]
    spans = chunk_spans(raw, chunk)
    assert [(s.text, s.start) for s in spans] == [("son", 7)]


def test_fallback_retries_from_chunk_start():
    chunk = ChunkDescriptor("Ann and Bob", 0)
    raw = [
        {"entity_group": "FIRSTNAME", "score": 0.9, "word": "Bob"},
        {"entity_group": "FIRSTNAME", "score": 0.9, "word": "Ann"},
    ]
    spans = chunk_spans(raw, chunk)
    assert [(s.start, s.end) for s in spans] == [(8, 11), (0, 3)]


def test_unmapped_unlocatable_and_malformed_are_dropped():
    chunk = ChunkDescriptor("Alice lives here", 0)
    raw = [
        {"entity_group": "MISC", "score": 0.9, "word": "Alice", "start": 0, "end": 5},
        {"entity_group": "FIRSTNAME", "score": 0.9, "word": "Zed"},
        {"entity_group": "FIRSTNAME", "score": "nan?"},
        42,
        {"entity_group": "FIRSTNAME", "score": 0.7, "word": "Alice", "start": 0, "end": 5},
    ]
    spans = chunk_spans(raw, chunk)
    assert len(spans) == 1
    assert spans[0].category is Category.NAME


# ── Stitching ────────────────────────────────────────────────────────

TEXT = "John Smith met Jane Doe at 42 Main Street"


def test_stitch_merges_same_category_adjacent():
    spans = [
        _model_span(Category.NAME, 0, 4, TEXT, 0.7),
        _model_span(Category.NAME, 5, 10, TEXT, 0.9),
    ]
    out = stitch_spans(spans, TEXT)
    assert len(out) == 1
    assert (out[0].start, out[0].end, out[0].text) == (0, 10, "John Smith")
    assert out[0].confidence == 0.9


def test_stitch_merges_overlapping_truncations():
    spans = [
        _model_span(Category.NAME, 0, 7, TEXT, 0.6),   # "John Sm"
        _model_span(Category.NAME, 0, 10, TEXT, 0.8),
    ]
    out = stitch_spans(spans, TEXT)
    assert [(s.start, s.end) for s in out] == [(0, 10)]


def test_stitch_different_category_overlap_keeps_longer():
    spans = [
        _model_span(Category.NAME, 27, 34, TEXT, 0.95),
        _model_span(Category.ADDRESS, 27, 41, TEXT, 0.5),
    ]
    out = stitch_spans(spans, TEXT)
    assert [(s.category, s.start, s.end) for s in out] == [(Category.ADDRESS, 27, 41)]


def test_stitch_equal_length_keeps_higher_confidence():
    spans = [
        _model_span(Category.NAME, 15, 19, TEXT, 0.4),
        _model_span(Category.ADDRESS, 15, 19, TEXT, 0.6),
    ]
    out = stitch_spans(spans, TEXT)
    assert [s.category for s in out] == [Category.ADDRESS]


def test_stitch_different_category_adjacent_keeps_both():
    spans = [
        _model_span(Category.NAME, 15, 23, TEXT),
        _model_span(Category.ADDRESS, 24, 41, TEXT),
    ]
    assert len(stitch_spans(spans, TEXT)) == 2


def test_stitch_far_apart_untouched():
    spans = [
        _model_span(Category.NAME, 0, 10, TEXT),
        _model_span(Category.NAME, 15, 23, TEXT),
    ]
    assert len(stitch_spans(spans, TEXT)) == 2


# ── detect_with_model ────────────────────────────────────────────────

def _boundary_text():
    # 20 Q's straddle the first chunk boundary (400) and sit inside chunk 2
    return "a" * 390 + "Q" * 20 + "a" * 490


def test_boundary_entity_counted_once():
    text = _boundary_text()
    classifier = FakeClassifier({r"Q+": "B-FIRSTNAME"})
    spans = detect_with_model(text, ModelHandle.ready(classifier))
    assert len(classifier.calls) == 3
    assert len(spans) == 1
    assert (spans[0].start, spans[0].end) == (390, 410)
    assert spans[0].text == "Q" * 20


def test_classify_config_requests_aggregation():
    classifier = FakeClassifier()
    detect_with_model("short text", ModelHandle.ready(classifier))
    assert classifier.calls == [("short text", dict(CLASSIFY_CONFIG))]
    assert CLASSIFY_CONFIG["aggregation_strategy"] == "simple"
    assert CLASSIFY_CONFIG["ignore_labels"] == ["O"]


def test_concurrent_dispatch_matches_sequential():
    text = " ".join(f"John Doe{i} lives at {i} Elm" for i in range(120))
    classifier = FakeClassifier({r"John Doe\d+": "B-FIRSTNAME", r"\d+ Elm": "ADDRESS"})
    handle = ModelHandle.ready(classifier)
    sequential = detect_with_model(text, handle)
    pooled = detect_with_model(text, handle, max_workers=4)
    assert sequential == pooled
    assert [s.start for s in pooled] == sorted(s.start for s in pooled)


def test_not_loaded_handle_raises():
    handle = ModelHandle(lambda progress: FakeClassifier())
    with pytest.raises(ModelNotLoadedError):
        detect_with_model("text", handle)


def test_inference_failure_is_unavailable():
    with pytest.raises(ModelUnavailableError):
        detect_with_model("text", ModelHandle.ready(FakeClassifier(fail=True)))


class _ShapeClassifier:
    def __init__(self, result):
        self.result = result

    def classify(self, text, config):
        return self.result


@pytest.mark.parametrize("result", [None, 42, "B-NAME", {"entity_group": "NAME"}])
def test_non_list_output_is_unavailable(result):
    with pytest.raises(ModelUnavailableError):
        detect_with_model("text", ModelHandle.ready(_ShapeClassifier(result)))


def test_tuple_output_is_accepted():
    raw = ({"entity_group": "PERSON", "score": 0.9, "word": "Ann", "start": 0, "end": 3},)
    spans = detect_with_model("Ann here", ModelHandle.ready(_ShapeClassifier(raw)))
    assert [(s.category, s.text) for s in spans] == [(Category.NAME, "Ann")]


def test_cancel_stops_before_inference():
    classifier = FakeClassifier()
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(DetectionCancelled):
        detect_with_model("x" * 900, ModelHandle.ready(classifier), cancel=cancel)
    assert classifier.calls == []


def test_cancel_mid_run_stops_further_calls():
    cancel = threading.Event()

    class CancelAfterFirst(FakeClassifier):
        def classify(self, text, config):
            result = super().classify(text, config)
            cancel.set()
            return result

    classifier = CancelAfterFirst()
    with pytest.raises(DetectionCancelled):
        detect_with_model("x" * 900, ModelHandle.ready(classifier), cancel=cancel)
    assert len(classifier.calls) == 1
