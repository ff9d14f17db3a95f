"""Split long text into overlapping windows for the model stage.

Token-classification models have a bounded input size (~512 tokens), so
documents are cut into ~400 character windows.  Consecutive windows share up
to ``overlap`` characters; entities cut by one window boundary are seen whole
by the neighbour and stitched back together afterwards.
"""

from __future__ import annotations

from .types import ChunkDescriptor

DEFAULT_MAX_CHARS = 400
DEFAULT_OVERLAP = 50


def split_text(
    text: str,
    max_chars: int = DEFAULT_MAX_CHARS,
    overlap: int = DEFAULT_OVERLAP,
) -> list[ChunkDescriptor]:
    """Return chunks covering ``text`` from offset 0 to ``len(text)``.

    Args:
        text: Document to split.
        max_chars: Maximum characters per chunk.
        overlap: Characters shared by consecutive chunks; must be smaller
            than ``max_chars``.
    """
    if max_chars <= 0:
        raise ValueError(f"max_chars must be positive, got {max_chars}")
    if not 0 <= overlap < max_chars:
        raise ValueError(
            f"overlap must be in [0, max_chars), got {overlap} for max_chars={max_chars}"
        )

    length = len(text)
    if length <= max_chars:
        return [ChunkDescriptor(text, 0)]

    chunks: list[ChunkDescriptor] = []
    pos = 0
    while pos < length:
        end = min(pos + max_chars, length)
        if end < length:
            end = _break_point(text, pos, end, overlap)

        chunks.append(ChunkDescriptor(text[pos:end], pos))
        if end >= length:
            break
        # a break close to pos could otherwise stall the walk
        pos = max(end - overlap, pos + 1)

    return chunks


def _break_point(text: str, pos: int, end: int, overlap: int) -> int:
    """Prefer a newline, then a space, among the last ``overlap`` chars."""
    floor = max(pos, end - overlap)
    for sep in ("\n", " "):
        idx = text.rfind(sep, floor, end)
        if idx > pos:
            return idx + 1
    return end
