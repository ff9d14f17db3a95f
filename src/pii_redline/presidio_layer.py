"""Presidio NER capability.

Alternative to the transformers model: presidio's ``AnalyzerEngine`` (spaCy
under the hood) exposed through ``classify(text, config)``.  Results are
reshaped into token-classification predictions, so presidio entity names
(PERSON, EMAIL_ADDRESS, US_SSN, ...) go through the normal label mapping.
"""

from __future__ import annotations
from typing import Any, Mapping, Sequence, TYPE_CHECKING

from .model import Classifier, Loader, LoadProgress, ProgressCallback

if TYPE_CHECKING:
    from presidio_analyzer import AnalyzerEngine


def default_spacy_model(language: str) -> str:
    return f"{language}_core_web_sm"


# Default entity types to detect (Presidio's full set is much larger)
DEFAULT_ENTITIES = [
    "PERSON",
    "EMAIL_ADDRESS",
    "PHONE_NUMBER",
    "US_SSN",
    "LOCATION",
    "DATE_TIME",
    "CREDIT_CARD",
    "IBAN_CODE",
    "IP_ADDRESS",
    "US_DRIVER_LICENSE",
    "US_PASSPORT",
]


def _build_engine(language: str, spacy_model: str) -> AnalyzerEngine:
    from presidio_analyzer import AnalyzerEngine
    from presidio_analyzer.nlp_engine import NlpEngineProvider

    provider = NlpEngineProvider(nlp_configuration={
        "nlp_engine_name": "spacy",
        "models": [{"lang_code": language, "model_name": spacy_model}],
    })
    nlp_engine = provider.create_engine()
    return AnalyzerEngine(nlp_engine=nlp_engine, supported_languages=[language])


class PresidioClassifier:
    """Presidio analysis behind the ``Classifier`` protocol."""

    __slots__ = ("_engine", "language", "entities", "score_threshold")

    def __init__(
        self,
        engine: AnalyzerEngine,
        *,
        language: str = "en",
        entities: list[str] | None = None,
        score_threshold: float = 0.35,
    ) -> None:
        self._engine = engine
        self.language = language
        self.entities = entities or DEFAULT_ENTITIES
        self.score_threshold = score_threshold

    def classify(
        self, text: str, config: Mapping[str, Any]
    ) -> Sequence[Mapping[str, Any]]:
        # presidio already returns whole entities, so the aggregation
        # settings in ``config`` need no translation
        ignore = set(config.get("ignore_labels", ()))
        results = self._engine.analyze(
            text=text,
            language=self.language,
            entities=self.entities,
            score_threshold=self.score_threshold,
        )
        return [
            {
                "entity_group": r.entity_type,
                "score": r.score,
                "word": text[r.start:r.end],
                "start": r.start,
                "end": r.end,
            }
            for r in sorted(results, key=lambda r: r.start)
            if r.entity_type not in ignore
        ]


def presidio_loader(
    *,
    language: str = "en",
    spacy_model: str | None = None,
    entities: list[str] | None = None,
    score_threshold: float = 0.35,
) -> Loader:
    """Loader for ``ModelHandle``; spaCy is only loaded on first ``load()``."""
    model_name = spacy_model or default_spacy_model(language)

    def _load(on_progress: ProgressCallback | None) -> Classifier:
        if on_progress is not None:
            on_progress(LoadProgress("Loading spaCy pipeline...", 20, file=model_name))
        return PresidioClassifier(
            _build_engine(language, model_name),
            language=language,
            entities=entities,
            score_threshold=score_threshold,
        )
    return _load
