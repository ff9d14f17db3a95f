"""Stage 2: sequence-labeling model adapter.

The model itself is an external capability: anything with a
``classify(text, config)`` method returning token-classification style
predictions (``entity_group``/``entity``/``label``, ``score``, ``word`` and
optionally ``start``/``end``).  This module:

  - owns the load lifecycle of a capability (``ModelHandle``),
  - validates raw predictions at the boundary (``Prediction``),
  - maps raw tags onto ``Category`` (``LABEL_MAPPING``),
  - runs the capability per chunk and converts chunk offsets to document
    offsets,
  - stitches predictions that were cut in two by a chunk boundary.

Usage:
    handle = ModelHandle(transformers_loader("models/pii-model"))
    handle.load()
    spans = detect_with_model(text, handle)
"""

from __future__ import annotations
import math
import numbers
import re
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Protocol, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .chunking import DEFAULT_MAX_CHARS, DEFAULT_OVERLAP, split_text
from .errors import (
    DetectionCancelled,
    MalformedPredictionError,
    ModelNotLoadedError,
    ModelUnavailableError,
)
from .logging import get_logger
from .types import Category, ChunkDescriptor, Source, Span

logger = get_logger(__name__)

# Always request subtoken-merged groups and never the "no entity" tag
CLASSIFY_CONFIG: Mapping[str, Any] = {
    "aggregation_strategy": "simple",
    "ignore_labels": ["O"],
}

# Predictions starting within this many chars of the previous one's end
# are candidates for stitching (covers the space between first/last name).
STITCH_GAP = 2


# ----------------------------------------------------------------------
# Label mapping
# ----------------------------------------------------------------------

# Normalized raw tag (uppercase, letters only) → Category.  Covers the
# ai4privacy-style tag set, CoNLL tags and presidio entity names.
LABEL_MAPPING: Mapping[str, Category] = {
    # names
    "FIRSTNAME": Category.NAME,
    "LASTNAME": Category.NAME,
    "MIDDLENAME": Category.NAME,
    "FULLNAME": Category.NAME,
    "NAME": Category.NAME,
    "PREFIX": Category.NAME,
    "PER": Category.NAME,
    "PERSON": Category.NAME,
    "GIVENNAME": Category.NAME,
    "SURNAME": Category.NAME,
    # contact
    "EMAIL": Category.EMAIL,
    "EMAILADDRESS": Category.EMAIL,
    "PHONE": Category.PHONE,
    "PHONENUMBER": Category.PHONE,
    "TELEPHONENUM": Category.PHONE,
    "PHONEIMEI": Category.ID,
    # government ids
    "SSN": Category.SSN,
    "SOCIALNUM": Category.SSN,
    "USSSN": Category.SSN,
    # address
    "ADDRESS": Category.ADDRESS,
    "STREET": Category.ADDRESS,
    "STREETADDRESS": Category.ADDRESS,
    "BUILDINGNUMBER": Category.ADDRESS,
    "BUILDINGNUM": Category.ADDRESS,
    "SECONDARYADDRESS": Category.ADDRESS,
    "CITY": Category.ADDRESS,
    "STATE": Category.ADDRESS,
    "COUNTY": Category.ADDRESS,
    "ZIPCODE": Category.ADDRESS,
    "ZIP": Category.ADDRESS,
    "LOC": Category.ADDRESS,
    "LOCATION": Category.ADDRESS,
    "GPE": Category.ADDRESS,
    # dates
    "DATE": Category.DATE,
    "DATETIME": Category.DATE,
    "DOB": Category.DATE,
    "DATEOFBIRTH": Category.DATE,
    "TIME": Category.DATE,
    # financial
    "CREDITCARD": Category.FINANCIAL,
    "CREDITCARDNUMBER": Category.FINANCIAL,
    "CREDITCARDCVV": Category.FINANCIAL,
    "IBAN": Category.FINANCIAL,
    "IBANCODE": Category.FINANCIAL,
    "BIC": Category.FINANCIAL,
    "ACCOUNTNUMBER": Category.FINANCIAL,
    "ACCOUNTNUM": Category.FINANCIAL,
    "USBANKNUMBER": Category.FINANCIAL,
    "BITCOINADDRESS": Category.FINANCIAL,
    "ETHEREUMADDRESS": Category.FINANCIAL,
    "PIN": Category.FINANCIAL,
    # other identifiers
    "ID": Category.ID,
    "PII": Category.ID,
    "IDCARDNUM": Category.ID,
    "DRIVERLICENSENUM": Category.ID,
    "USDRIVERLICENSE": Category.ID,
    "PASSPORTNUM": Category.ID,
    "USPASSPORT": Category.ID,
    "TAXNUM": Category.ID,
    "USITIN": Category.ID,
    "USERNAME": Category.ID,
    "PASSWORD": Category.ID,
    "ACCOUNTNAME": Category.ID,
    "IP": Category.ID,
    "IPADDRESS": Category.ID,
    "IPV": Category.ID,          # IPV4 / IPV6 once digits are stripped
    "MAC": Category.ID,
    "URL": Category.ID,
    "VEHICLEVIN": Category.ID,
    "VEHICLEVRM": Category.ID,
    "MEDICALLICENSE": Category.ID,
}

_BIO_PREFIX = re.compile(r"^[BI]-", re.IGNORECASE)
_NON_ALPHA = re.compile(r"[^A-Z]")


def normalize_label(raw: str) -> tuple[str, str]:
    """Return ``(lookup_key, prefix_stripped)`` for a raw model tag.

    ``"B-street_address"`` → ``("STREETADDRESS", "STREET_ADDRESS")``
    """
    stripped = _BIO_PREFIX.sub("", raw.strip()).upper()
    return _NON_ALPHA.sub("", stripped), stripped


def resolve_category(
    raw: str,
    mapping: Mapping[str, Category] = LABEL_MAPPING,
) -> Category | None:
    """Cleaned key first, then the prefix-stripped tag, then the raw tag."""
    key, stripped = normalize_label(raw)
    for candidate in (key, stripped, raw):
        category = mapping.get(candidate)
        if category is not None:
            return category
    return None


# ----------------------------------------------------------------------
# Prediction boundary schema
# ----------------------------------------------------------------------

class Prediction(BaseModel):
    """One predicted entity group, validated at the adapter boundary."""

    model_config = ConfigDict(frozen=True)

    label: str = Field(min_length=1)
    score: float = Field(ge=0.0, le=1.0)
    word: str = ""
    start: Optional[int] = None
    end: Optional[int] = None

    @field_validator("score", mode="before")
    @classmethod
    def _real_score(cls, v: Any) -> Any:
        # numpy scalars register as numbers.Real
        if isinstance(v, numbers.Real) and not isinstance(v, bool):
            return float(v)
        return v

    @field_validator("start", "end", mode="before")
    @classmethod
    def _numeric_offset(cls, v: Any) -> Optional[int]:
        """Non-numeric offsets become None so the text fallback kicks in."""
        if isinstance(v, bool) or not isinstance(v, numbers.Real):
            return None
        if math.isnan(v) or int(v) != v:
            return None
        return int(v)

    @classmethod
    def from_raw(cls, raw: Any) -> "Prediction":
        """Build from a capability's raw output item.

        Raises:
            MalformedPredictionError: not a mapping, no label, or a score
                that is not a number in [0, 1].
        """
        if not isinstance(raw, Mapping):
            raise MalformedPredictionError(
                f"expected a mapping, got {type(raw).__name__}"
            )
        label = raw.get("entity_group") or raw.get("entity") or raw.get("label")
        if not label or not isinstance(label, str):
            raise MalformedPredictionError("prediction has no label")
        try:
            return cls(
                label=label,
                score=raw.get("score"),
                word=raw.get("word") or raw.get("token_text") or "",
                start=raw.get("start"),
                end=raw.get("end"),
            )
        except ValidationError as exc:
            raise MalformedPredictionError(
                f"invalid prediction for label {label!r}: {exc.error_count()} error(s)"
            ) from exc

    def offsets_within(self, size: int) -> tuple[int, int] | None:
        """Chunk-local offsets if both are present and in range."""
        if self.start is None or self.end is None:
            return None
        if not 0 <= self.start < self.end <= size:
            return None
        return self.start, self.end


# ----------------------------------------------------------------------
# Capability + lifecycle
# ----------------------------------------------------------------------

class Classifier(Protocol):
    def classify(
        self, text: str, config: Mapping[str, Any]
    ) -> Sequence[Mapping[str, Any]]: ...


@dataclass(frozen=True, slots=True)
class LoadProgress:
    status: str
    progress: int            # 0–100
    file: str | None = None


ProgressCallback = Callable[[LoadProgress], None]
Loader = Callable[[Optional[ProgressCallback]], Classifier]


class ModelState(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"


class ModelHandle:
    """Load lifecycle for one inference capability.

    ``load()`` is idempotent and safe to call from many threads: the first
    caller runs the loader, everyone arriving while it runs waits on the
    same pending future.  A failed load goes back to ``UNLOADED`` and the
    error is raised in every waiter.
    """

    __slots__ = ("_loader", "_lock", "_state", "_capability", "_pending")

    def __init__(self, loader: Loader) -> None:
        self._loader = loader
        self._lock = threading.Lock()
        self._state = ModelState.UNLOADED
        self._capability: Classifier | None = None
        self._pending: Future | None = None

    @classmethod
    def ready(cls, capability: Classifier) -> "ModelHandle":
        """Wrap an already constructed capability."""
        handle = cls(lambda _progress: capability)
        handle._capability = capability
        handle._state = ModelState.READY
        return handle

    @property
    def state(self) -> ModelState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is ModelState.READY

    @property
    def capability(self) -> Classifier:
        capability = self._capability
        if self._state is not ModelState.READY or capability is None:
            raise ModelNotLoadedError("Model not loaded. Call load() first.")
        return capability

    def load(self, on_progress: ProgressCallback | None = None) -> Classifier:
        with self._lock:
            if self._state is ModelState.READY:
                return self._capability  # type: ignore[return-value]
            if self._state is ModelState.LOADING:
                pending, owner = self._pending, False
            else:
                pending, owner = Future(), True
                self._pending = pending
                self._state = ModelState.LOADING

        if not owner:
            return pending.result()

        try:
            _report(on_progress, "Initializing...", 5)
            capability = self._loader(on_progress)
        except BaseException as exc:
            with self._lock:
                self._state = ModelState.UNLOADED
                self._capability = None
                self._pending = None
            pending.set_exception(exc)
            logger.error("Model load failed: %(error)s", {"error": repr(exc)})
            raise

        with self._lock:
            self._capability = capability
            self._state = ModelState.READY
            self._pending = None
        _report(on_progress, "Ready!", 100)
        pending.set_result(capability)
        logger.info("Model ready")
        return capability

    def unload(self) -> None:
        """Drop a ready capability.  No effect while a load is in flight."""
        with self._lock:
            if self._state is ModelState.READY:
                self._capability = None
                self._state = ModelState.UNLOADED


def _report(cb: ProgressCallback | None, status: str, progress: int, file: str | None = None) -> None:
    if cb is not None:
        cb(LoadProgress(status=status, progress=progress, file=file))


# ----------------------------------------------------------------------
# Detection
# ----------------------------------------------------------------------

def detect_with_model(
    text: str,
    handle: ModelHandle,
    *,
    max_chars: int = DEFAULT_MAX_CHARS,
    overlap: int = DEFAULT_OVERLAP,
    max_workers: int = 1,
    mapping: Mapping[str, Category] = LABEL_MAPPING,
    cancel: threading.Event | None = None,
) -> list[Span]:
    """Run the capability over ``text`` and return stitched model spans.

    Raises:
        ModelNotLoadedError: the handle is not ready.
        ModelUnavailableError: the capability failed on a chunk.
        DetectionCancelled: ``cancel`` was set before all chunks ran.
    """
    capability = handle.capability
    chunks = split_text(text, max_chars, overlap)

    def process(chunk: ChunkDescriptor) -> list[Span]:
        if cancel is not None and cancel.is_set():
            raise DetectionCancelled(
                f"cancelled before chunk at offset {chunk.global_offset}"
            )
        raw = _classify(capability, chunk)
        return chunk_spans(raw, chunk, mapping)

    spans: list[Span] = []
    if max_workers > 1 and len(chunks) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            for chunk_result in pool.map(process, chunks):
                spans.extend(chunk_result)
    else:
        for chunk in chunks:
            spans.extend(process(chunk))

    # order is not guaranteed under concurrent dispatch
    spans.sort(key=lambda s: s.start)
    return stitch_spans(spans, text)


def _classify(capability: Classifier, chunk: ChunkDescriptor) -> Sequence[Any]:
    try:
        result = capability.classify(chunk.text_slice, CLASSIFY_CONFIG)
    except Exception as exc:
        raise ModelUnavailableError(
            f"inference failed for chunk at offset {chunk.global_offset}: {exc}"
        ) from exc
    if not isinstance(result, Sequence) or isinstance(result, (str, bytes)):
        raise ModelUnavailableError(
            f"capability returned {type(result).__name__} instead of a prediction list "
            f"for chunk at offset {chunk.global_offset}"
        )
    return result


def chunk_spans(
    raw_predictions: Sequence[Any],
    chunk: ChunkDescriptor,
    mapping: Mapping[str, Category] = LABEL_MAPPING,
) -> list[Span]:
    """Convert one chunk's raw predictions into document-offset spans."""
    segment = chunk.text_slice
    spans: list[Span] = []
    cursor = 0  # chunk-local; only advanced by the text fallback

    for raw in raw_predictions:
        try:
            pred = Prediction.from_raw(raw)
        except MalformedPredictionError as exc:
            logger.warning("Dropping malformed prediction: %(reason)s", {"reason": str(exc)})
            continue

        category = resolve_category(pred.label, mapping)
        if category is None:
            logger.info("Dropping prediction with unmapped label %(label)s", {"label": pred.label})
            continue

        offsets = pred.offsets_within(len(segment))
        if offsets is None:
            offsets = _locate(segment, pred.word, cursor)
            if offsets is None:
                logger.info(
                    "Dropping prediction %(label)s: no offsets and %(word)s not found in chunk",
                    {"label": pred.label, "word": pred.word},
                )
                continue
            cursor = offsets[1]
        start, end = offsets

        spans.append(Span(
            category=category,
            text=segment[start:end],
            start=chunk.global_offset + start,
            end=chunk.global_offset + end,
            confidence=pred.score,
            source=Source.MODEL,
        ))
    return spans


def _locate(segment: str, word: str, cursor: int) -> tuple[int, int] | None:
    """Find a token's text at or after ``cursor``, else anywhere."""
    fragment = word.strip()
    if fragment.startswith("##"):
        fragment = fragment[2:]
    if not fragment:
        return None
    idx = segment.find(fragment, cursor)
    if idx == -1:
        idx = segment.find(fragment)
        if idx == -1:
            return None
    return idx, idx + len(fragment)


def stitch_spans(spans: Sequence[Span], text: str, gap: int = STITCH_GAP) -> list[Span]:
    """Join predictions split across chunk boundaries.

    Walks spans in start order.  When the next span starts within ``gap``
    chars of the current one's end:

      - same category: merged, text re-sliced from ``text``, max confidence;
      - different category, overlapping: the longer one survives (higher
        confidence on equal length, the current one on a full tie);
      - different category, only adjacent: both are kept.
    """
    if not spans:
        return []
    ordered = sorted(spans, key=lambda s: s.start)

    out: list[Span] = []
    current = ordered[0]
    for nxt in ordered[1:]:
        if nxt.start > current.end + gap:
            out.append(current)
            current = nxt
        elif nxt.category is current.category:
            end = max(current.end, nxt.end)
            current = replace(
                current,
                end=end,
                text=text[current.start:end],
                confidence=max(current.confidence, nxt.confidence),
            )
        elif nxt.start < current.end:
            if nxt.length > current.length or (
                nxt.length == current.length and nxt.confidence > current.confidence
            ):
                current = nxt
        else:
            out.append(current)
            current = nxt
    out.append(current)
    return out
