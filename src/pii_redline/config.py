"""YAML/dict config loader for pii-redline.

Supports loading from a YAML file or a plain dict (for embedding in a
larger application config).

Example YAML:

    pii_redline:
      model:
        mode: auto               # "off", "auto" or "required"
        backend: transformers    # "transformers", "presidio" or "none"
        path: models/pii-model
        local_files_only: true
        language: en             # presidio only
        spacy_model: en_core_web_lg  # presidio only, default <language>_core_web_sm
        score_threshold: 0.35    # presidio only
      chunking:
        max_chars: 400
        overlap: 50
        workers: 1
      skip_categories:
        - date
      allow_list:
        - support@example.com
"""

from __future__ import annotations
import os
from pathlib import Path
from typing import Any

import yaml

from .model import ModelHandle
from .redactor import ModelMode, Redactor, RedactorConfig

MODEL_PATH_ENV = "PII_REDLINE_MODEL_PATH"
BACKENDS = ("transformers", "presidio", "none")


def load_config(data: dict[str, Any] | None) -> dict[str, Any]:
    """Normalize a config dict (from YAML or inline)."""
    data = data or {}
    # Support nested under "pii_redline" key or flat
    if "pii_redline" in data:
        data = data["pii_redline"] or {}

    model = data.get("model") or {}
    chunking = data.get("chunking") or {}
    backend = model.get("backend", "transformers")
    if backend not in BACKENDS:
        raise ValueError(f"unknown model backend {backend!r}, expected one of {BACKENDS}")

    return {
        "model_mode": ModelMode(model.get("mode", "auto")),
        "backend": backend,
        "model_path": os.environ.get(MODEL_PATH_ENV) or model.get("path", "models/pii-model"),
        "local_files_only": bool(model.get("local_files_only", True)),
        "language": model.get("language", "en"),
        "spacy_model": model.get("spacy_model"),
        "score_threshold": float(model.get("score_threshold", 0.35)),
        "max_chars": int(chunking.get("max_chars", 400)),
        "overlap": int(chunking.get("overlap", 50)),
        "max_workers": int(chunking.get("workers", 1)),
        "skip_categories": set(data.get("skip_categories") or []),
        "allow_list": set(data.get("allow_list") or []),
    }


def load_from_yaml(path: str | Path) -> dict[str, Any]:
    """Load config from a YAML file."""
    with open(path, encoding="utf-8") as f:
        return load_config(yaml.safe_load(f))


def create_handle(cfg: dict[str, Any]) -> ModelHandle | None:
    """Unloaded handle for the configured backend (None when disabled)."""
    if cfg["model_mode"] is ModelMode.OFF or cfg["backend"] == "none":
        return None
    if cfg["backend"] == "presidio":
        from .presidio_layer import presidio_loader
        return ModelHandle(presidio_loader(
            language=cfg["language"],
            spacy_model=cfg["spacy_model"],
            score_threshold=cfg["score_threshold"],
        ))
    from .transformers_layer import transformers_loader
    return ModelHandle(transformers_loader(
        cfg["model_path"],
        local_files_only=cfg["local_files_only"],
    ))


def create_redactor(config: dict[str, Any]) -> tuple[Redactor, ModelHandle | None]:
    """Create a configured Redactor plus an unloaded model handle."""
    cfg = load_config(config) if "model_mode" not in config else config

    redactor_config = RedactorConfig(
        model_mode=cfg["model_mode"],
        max_chars=cfg["max_chars"],
        overlap=cfg["overlap"],
        max_workers=cfg["max_workers"],
        skip_categories=cfg["skip_categories"],
        allow_list=cfg["allow_list"],
    )
    return Redactor(redactor_config), create_handle(cfg)
