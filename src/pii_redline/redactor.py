"""Redactor: the main API.  Two stages: regex first, then the model.

Usage:
    from pii_redline import ModelHandle, Redactor, render_redacted, transformers_loader

    handle = ModelHandle(transformers_loader("models/pii-model"))
    handle.load()                # once per process; safe to call again
    redactor = Redactor()        # reusable, no per-run state

    result = redactor.run("Email me at john@acme.com", handle)
    print(result.entities[0].replacement_label)     # "[EMAIL_1]"
    print(render_redacted(text, result.entities))   # "Email me at [EMAIL_1]"
"""

from __future__ import annotations
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence

from .chunking import DEFAULT_MAX_CHARS, DEFAULT_OVERLAP
from .errors import ModelNotLoadedError, ModelUnavailableError
from .labels import RunCounters, allocate_labels
from .logging import get_logger
from .merge import merge_spans
from .model import ModelHandle, detect_with_model
from .patterns import DEFAULT_RULES, scan_patterns
from .render import render_redacted
from .types import Category, PatternRule, PipelineResult, PipelineStats, Span

logger = get_logger(__name__)


class ModelMode(str, Enum):
    OFF = "off"             # pattern-only
    AUTO = "auto"           # use the model when it is ready, never fail
    REQUIRED = "required"   # fail if the model is not ready


@dataclass
class RedactorConfig:
    """Configuration for the Redactor."""
    model_mode: ModelMode = ModelMode.AUTO
    max_chars: int = DEFAULT_MAX_CHARS        # chunk budget for the model
    overlap: int = DEFAULT_OVERLAP            # chars shared by adjacent chunks
    max_workers: int = 1                      # >1 classifies chunks concurrently
    rules: Sequence[PatternRule] = DEFAULT_RULES
    # Categories to always skip (e.g. don't redact dates)
    skip_categories: set[Category] = field(default_factory=set)
    # Allow-list: values that should NEVER be redacted
    allow_list: set[str] = field(default_factory=set)

    def __post_init__(self) -> None:
        self.model_mode = ModelMode(self.model_mode)
        self.skip_categories = {Category(c) for c in self.skip_categories}


class Redactor:
    """Two-stage PII detector.

    Stage 1: Regex patterns (emails, SSNs, phones, dates, identifiers)
    Stage 2: Sequence-labeling model over overlapping chunks
    Then: greedy longest-span merge and per-run label allocation.
    """

    def __init__(self, config: RedactorConfig | None = None) -> None:
        self.config = config or RedactorConfig()

    def run(
        self,
        text: str,
        handle: ModelHandle | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> PipelineResult:
        """Detect PII in text and return entities with replacement labels.

        Raises:
            ModelNotLoadedError: ``model_mode`` is ``required`` and ``handle``
                is missing or not ready.
            DetectionCancelled: ``cancel`` was set during the model stage.
        """
        started = time.perf_counter()
        cfg = self.config

        # --- Stage 1: Regex (fast, deterministic) ---
        pattern_spans = scan_patterns(text, cfg.rules)

        # --- Stage 2: Model (if requested and available) ---
        model_spans: list[Span] = []
        model_used = False
        ready = handle is not None and handle.is_ready
        if cfg.model_mode is ModelMode.REQUIRED and not ready:
            raise ModelNotLoadedError(
                "model-assisted detection requested but the model is not loaded"
            )
        if cfg.model_mode is not ModelMode.OFF and ready:
            # a loaded model that fails mid-run degrades to patterns only
            try:
                model_spans = self._detect_model(text, handle, cancel)
                model_used = True
            except (ModelUnavailableError, ModelNotLoadedError) as exc:
                logger.warning(
                    "Model stage unavailable, falling back to patterns only: %(error)s",
                    {"error": str(exc), "model_mode": cfg.model_mode.value},
                )

        # --- Filter ---
        candidates = [s for s in (*pattern_spans, *model_spans) if self._keep(s)]

        # --- Merge across stages, then label with run-scoped counters ---
        merged = merge_spans(candidates)
        entities = allocate_labels(merged, RunCounters())

        stats = PipelineStats(
            pattern_count=len(pattern_spans),
            model_count=len(model_spans),
            total_count=len(entities),
            duration_ms=round((time.perf_counter() - started) * 1000),
            model_used=model_used,
        )
        logger.debug(
            "Detection run finished: %(total_count)s entities",
            {"total_count": stats.total_count, "pattern_count": stats.pattern_count,
             "model_count": stats.model_count, "duration_ms": stats.duration_ms},
        )
        return PipelineResult(
            pattern_spans=pattern_spans,
            model_spans=model_spans,
            entities=entities,
            stats=stats,
        )

    def redact(self, text: str, handle: ModelHandle | None = None) -> str:
        """Detect and render in one go; every entity is treated as pending."""
        return render_redacted(text, self.run(text, handle).entities)

    def _detect_model(
        self, text: str, handle: ModelHandle, cancel: threading.Event | None
    ) -> list[Span]:
        return detect_with_model(
            text,
            handle,
            max_chars=self.config.max_chars,
            overlap=self.config.overlap,
            max_workers=self.config.max_workers,
            cancel=cancel,
        )

    def _keep(self, span: Span) -> bool:
        if span.category in self.config.skip_categories:
            return False
        if span.text in self.config.allow_list:
            return False
        return True
