"""pii-redline: regex + sequence-labeling PII detection with reviewable redaction."""

from .chunking import split_text
from .errors import (
    DetectionCancelled,
    MalformedPredictionError,
    ModelNotLoadedError,
    ModelUnavailableError,
    RedlineError,
)
from .labels import RunCounters, allocate_labels
from .merge import merge_spans
from .model import (
    LABEL_MAPPING,
    LoadProgress,
    ModelHandle,
    ModelState,
    Prediction,
    detect_with_model,
    stitch_spans,
)
from .patterns import DEFAULT_RULES, scan_patterns
from .redactor import ModelMode, Redactor, RedactorConfig
from .render import render_redacted
from .review import ReviewSession
from .config import create_redactor, load_config, load_from_yaml
from .presidio_layer import PresidioClassifier, presidio_loader
from .transformers_layer import TransformersClassifier, transformers_loader
from .types import (
    Acceptance,
    Category,
    ChunkDescriptor,
    Entity,
    PatternRule,
    PipelineResult,
    PipelineStats,
    Source,
    Span,
)

__all__ = [
    "Redactor", "RedactorConfig", "ModelMode",
    "ModelHandle", "ModelState", "LoadProgress", "Prediction", "LABEL_MAPPING",
    "TransformersClassifier", "transformers_loader",
    "PresidioClassifier", "presidio_loader",
    "scan_patterns", "DEFAULT_RULES",
    "split_text", "detect_with_model", "stitch_spans",
    "merge_spans", "RunCounters", "allocate_labels",
    "render_redacted", "ReviewSession",
    "create_redactor", "load_config", "load_from_yaml",
    "Category", "Source", "Acceptance", "Span", "Entity", "PatternRule",
    "ChunkDescriptor", "PipelineResult", "PipelineStats",
    "RedlineError", "ModelNotLoadedError", "ModelUnavailableError",
    "MalformedPredictionError", "DetectionCancelled",
]
__version__ = "0.1.0"
