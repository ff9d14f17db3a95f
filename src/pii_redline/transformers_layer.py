"""Hugging Face token-classification capability.

Wraps a ``transformers`` pipeline so it satisfies the ``Classifier``
protocol.  ``transformers`` is imported lazily; install the
``transformers`` extra to use it.
"""

from __future__ import annotations
from typing import Any, Mapping, Sequence, TYPE_CHECKING

from .model import Classifier, Loader, LoadProgress, ProgressCallback

if TYPE_CHECKING:
    from transformers import Pipeline


class TransformersClassifier:
    """Token-classification pipeline behind ``classify(text, config)``."""

    __slots__ = ("_pipe",)

    def __init__(self, pipe: Pipeline) -> None:
        self._pipe = pipe

    @classmethod
    def load(
        cls,
        model_path: str,
        *,
        local_files_only: bool = True,
        device: int | str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> "TransformersClassifier":
        """Load tokenizer + model from a local directory (or hub id when
        ``local_files_only`` is False)."""
        from transformers import (
            AutoModelForTokenClassification,
            AutoTokenizer,
            pipeline,
        )

        if on_progress is not None:
            on_progress(LoadProgress("Loading tokenizer...", 10, file=model_path))
        tokenizer = AutoTokenizer.from_pretrained(
            model_path, local_files_only=local_files_only
        )
        if on_progress is not None:
            on_progress(LoadProgress("Loading model...", 40, file=model_path))
        model = AutoModelForTokenClassification.from_pretrained(
            model_path, local_files_only=local_files_only
        )
        pipe = pipeline(
            "token-classification",
            model=model,
            tokenizer=tokenizer,
            device=device,
        )
        return cls(pipe)

    def classify(
        self, text: str, config: Mapping[str, Any]
    ) -> Sequence[Mapping[str, Any]]:
        results = self._pipe(text, **dict(config))
        return [dict(r) for r in results]


def transformers_loader(
    model_path: str,
    *,
    local_files_only: bool = True,
    device: int | str | None = None,
) -> Loader:
    """Loader for ``ModelHandle`` that builds a ``TransformersClassifier``."""
    def _load(on_progress: ProgressCallback | None) -> Classifier:
        return TransformersClassifier.load(
            model_path,
            local_files_only=local_files_only,
            device=device,
            on_progress=on_progress,
        )
    return _load
