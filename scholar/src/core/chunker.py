"""
Scholar - Chunker
==================
Splits extracted paper text into overlapping, retrieval-sized passages
with sentence-boundary awareness.

Algorithm (per window):
    1. Take up to ``size`` characters starting at the cursor.
    2. Find the last ``.`` or newline inside the window.
    3. If it lies beyond ``0.7 × size`` into the window, cut just after
       it; otherwise cut at the window edge.
    4. Move the cursor to ``cut - overlap`` (at least one character
       forward) and repeat until a cut reaches the end of the text.

Chunks whose trimmed length is ≤ ``MIN_CHUNK_LENGTH`` are dropped as
noise.  Everything here is pure and deterministic.

Usage:
    from scholar.src.core.chunker import chunk_text
    chunks = chunk_text(text, size=1000, overlap=200)
"""

from __future__ import annotations

from scholar.src.core.models import MIN_CHUNK_LENGTH

# Breakpoints closer to the window start than this fraction are ignored.
_BREAKPOINT_RATIO = 0.7

Span = tuple[int, int]


def chunk_spans(text: str, size: int, overlap: int) -> list[Span]:
    """
    Return the ``(start, end)`` character spans of every raw window.

    Spans are returned before trimming and before the length floor is
    applied; ``chunk_text`` does both.  The cursor always advances by at
    least one character, so ``overlap >= size`` still terminates.

    Raises
    ------
    ValueError
        If ``size`` is not positive.
    """
    if size <= 0:
        raise ValueError(f"size must be positive, got {size}")
    overlap = max(overlap, 0)

    spans: list[Span] = []
    length = len(text)
    start = 0

    while start < length:
        end = min(start + size, length)
        window = text[start:end]
        break_at = max(window.rfind("."), window.rfind("\n"))

        if break_at > size * _BREAKPOINT_RATIO:
            cut = start + break_at + 1
        else:
            cut = end

        spans.append((start, cut))
        if cut >= length:
            break
        start = max(cut - overlap, start + 1)

    return spans


def chunk_text(text: str, size: int, overlap: int) -> list[str]:
    """
    Split *text* into trimmed chunks longer than ``MIN_CHUNK_LENGTH``.

    Empty input produces an empty list.
    """
    return [chunk for chunk, _ in chunk_with_offsets(text, size, overlap)]


def chunk_with_offsets(text: str, size: int, overlap: int) -> list[tuple[str, int]]:
    """
    Like ``chunk_text`` but pairs every chunk with its offset in *text*.

    The offset is that of the chunk's first non-whitespace character, so
    a window opening on a page separator maps to the following page.
    """
    results: list[tuple[str, int]] = []
    for start, end in chunk_spans(text, size, overlap):
        raw = text[start:end]
        chunk = raw.strip()
        if len(chunk) > MIN_CHUNK_LENGTH:
            results.append((chunk, start + len(raw) - len(raw.lstrip())))
    return results
