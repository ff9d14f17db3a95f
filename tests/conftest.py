"""Shared fakes for the inference capability."""

import os
import re
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest

from pii_redline.model import ModelHandle


class FakeClassifier:
    """Capability stub: returns canned predictions per chunk.

    ``rules`` maps a regex to a raw label; every match in the chunk becomes a
    prediction with chunk-local offsets.
    """

    def __init__(self, rules=None, score=0.8, fail=False):
        self.rules = [(re.compile(p), label) for p, label in (rules or {}).items()]
        self.score = score
        self.fail = fail
        self.calls = []

    def classify(self, text, config):
        self.calls.append((text, dict(config)))
        if self.fail:
            raise RuntimeError("inference backend crashed")
        out = []
        for pattern, label in self.rules:
            for m in pattern.finditer(text):
                out.append({
                    "entity_group": label,
                    "score": self.score,
                    "word": m.group(),
                    "start": m.start(),
                    "end": m.end(),
                })
        return sorted(out, key=lambda p: p["start"])


@pytest.fixture
def name_classifier():
    return FakeClassifier({r"\b(?:John|Jane) [A-Z][a-z]+\b": "B-FIRSTNAME"})


@pytest.fixture
def ready_handle(name_classifier):
    return ModelHandle.ready(name_classifier)
