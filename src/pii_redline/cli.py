"""CLI interface for pii-redline.

Usage:
    # Detect entities (stdin: plain text, stdout: JSON entities + stats)
    echo 'Mail john@acme.com' | python -m pii_redline.cli detect

    # Redact text (stdin: plain text, stdout: redacted text)
    echo 'SSN 123-45-6789' | python -m pii_redline.cli --model-mode off redact

    # Show how a document would be chunked for the model
    python -m pii_redline.cli chunks < letter.txt

Model loading happens once per invocation.  In ``auto`` mode a model that
fails to load is reported on stderr and detection continues pattern-only.
"""

from __future__ import annotations
import argparse
import json
import sys
from typing import Any

from .chunking import split_text
from .config import create_redactor, load_config, load_from_yaml
from .errors import ModelNotLoadedError, RedlineError
from .logging import get_logger
from .model import LoadProgress, ModelHandle
from .redactor import ModelMode, Redactor
from .render import render_redacted

logger = get_logger("pii_redline.cli")


def _build_config(args: argparse.Namespace) -> dict[str, Any]:
    cfg = load_from_yaml(args.config) if args.config else load_config({})
    if args.model_mode:
        cfg["model_mode"] = ModelMode(args.model_mode)
    if args.backend:
        cfg["backend"] = args.backend
    if args.model_path:
        cfg["model_path"] = args.model_path
    if args.max_chars is not None:
        cfg["max_chars"] = args.max_chars
    if args.overlap is not None:
        cfg["overlap"] = args.overlap
    if args.workers is not None:
        cfg["max_workers"] = args.workers
    if args.skip_categories:
        cfg["skip_categories"] = set(args.skip_categories.split(","))
    if args.allow_list:
        cfg["allow_list"] = set(args.allow_list.split(","))
    return cfg


def _print_progress(p: LoadProgress) -> None:
    suffix = f" ({p.file})" if p.file else ""
    sys.stderr.write(f"[{p.progress:3d}%] {p.status}{suffix}\n")


def _build_redactor(args: argparse.Namespace) -> tuple[Redactor, ModelHandle | None]:
    cfg = _build_config(args)
    redactor, handle = create_redactor(cfg)
    if handle is None:
        return redactor, None
    try:
        handle.load(on_progress=None if args.quiet else _print_progress)
    except Exception as exc:
        if redactor.config.model_mode is ModelMode.REQUIRED:
            raise ModelNotLoadedError(f"model failed to load: {exc}") from exc
        logger.warning("Model load failed, continuing with patterns only: %(error)s",
                       {"error": str(exc)})
    return redactor, handle


def cmd_detect(args: argparse.Namespace) -> None:
    """Detect PII in plain text on stdin."""
    redactor, handle = _build_redactor(args)
    text = sys.stdin.read()
    result = redactor.run(text, handle)

    # Output redacted text, entity metadata and run stats
    output = {
        "text": render_redacted(text, result.entities),
        "entities": [e.to_dict() for e in result.entities],
        "stats": {
            "pattern_count": result.stats.pattern_count,
            "model_count": result.stats.model_count,
            "total_count": result.stats.total_count,
            "duration_ms": result.stats.duration_ms,
            "model_used": result.stats.model_used,
        },
    }
    json.dump(output, sys.stdout, ensure_ascii=False)
    sys.stdout.write("\n")


def cmd_redact(args: argparse.Namespace) -> None:
    """Redact PII from plain text on stdin."""
    redactor, handle = _build_redactor(args)
    sys.stdout.write(redactor.redact(sys.stdin.read(), handle))


def cmd_chunks(args: argparse.Namespace) -> None:
    """Print the chunk layout used by the model stage."""
    cfg = _build_config(args)
    text = sys.stdin.read()
    chunks = split_text(text, cfg["max_chars"], cfg["overlap"])
    json.dump(
        [{"offset": c.global_offset, "end": c.end, "length": len(c.text_slice)} for c in chunks],
        sys.stdout,
    )
    sys.stdout.write("\n")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="pii-redline",
        description="PII detection (regex + sequence-labeling model) and redaction",
    )
    parser.add_argument("--config", default=None, help="YAML config file")
    parser.add_argument("--model-mode", choices=[m.value for m in ModelMode], default=None,
                        help="off, auto (default) or required")
    parser.add_argument("--backend", choices=["transformers", "presidio", "none"], default=None,
                        help="Inference backend")
    parser.add_argument("--model-path", default=None, help="Local token-classification model dir")
    parser.add_argument("--max-chars", type=int, default=None, help="Chunk size in characters")
    parser.add_argument("--overlap", type=int, default=None, help="Chunk overlap in characters")
    parser.add_argument("--workers", type=int, default=None, help="Concurrent chunk workers")
    parser.add_argument("--skip-categories", default="", help="Comma-separated categories to skip")
    parser.add_argument("--allow-list", default="", help="Comma-separated values to never redact")
    parser.add_argument("--quiet", action="store_true", help="No load progress on stderr")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("detect", help="Detect entities (JSON stdout)")
    sub.add_parser("redact", help="Redact plain text (stdin)")
    sub.add_parser("chunks", help="Show model chunk layout")

    args = parser.parse_args(argv)

    cmds = {
        "detect": cmd_detect,
        "redact": cmd_redact,
        "chunks": cmd_chunks,
    }
    try:
        cmds[args.command](args)
    except (RedlineError, ValueError) as exc:
        sys.stderr.write(f"pii-redline: {exc}\n")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
