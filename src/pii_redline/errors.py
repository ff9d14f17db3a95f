"""Exceptions raised by the detection pipeline.

``MalformedPredictionError`` never leaves the model stage: the prediction is
dropped and the run continues.  A loaded model that fails during inference
degrades the run to pattern-only detection in every mode; the only hard
failure is ``ModelNotLoadedError`` when ``required`` mode has no ready model.
"""

from __future__ import annotations


class RedlineError(Exception):
    """Base class for pii-redline errors."""


class ModelNotLoadedError(RedlineError):
    """Model-assisted detection was required but no capability is ready."""


class ModelUnavailableError(RedlineError):
    """The inference capability failed while classifying a chunk."""


class MalformedPredictionError(RedlineError, ValueError):
    """A raw model prediction does not fit the prediction schema."""


class DetectionCancelled(RedlineError):
    """The run was cancelled before all chunks were classified."""
