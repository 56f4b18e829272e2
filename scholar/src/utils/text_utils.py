"""
Scholar - Text Utilities
=========================
Helper functions for text cleaning, storage-key decomposition, and
paper identifiers.

These utilities are consumed by the ingestion pipeline and the paper
service and should remain stateless and side-effect-free.
"""

from __future__ import annotations

import re
import secrets
import time
import unicodedata
from pathlib import PurePosixPath

from scholar.src.core.models import MalformedStoragePath, ParsedStoragePath

# ── Non-printable character pattern ────────────────────────────────────
# Matches control characters (C0/C1), except \n, \r, \t which we handle
# separately. Also catches BOM, zero-width chars, soft hyphens, etc.
_NON_PRINTABLE_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\ufeff\u200b\u200c\u200d\u200e\u200f\u00ad\u2060\ufffe]")

# "algo-\nrithm" → "algorithm"
_HYPHEN_BREAK_RE = re.compile(r"(\w)-\n(\w)")

_LIGATURES: dict[str, str] = {"ﬁ": "fi", "ﬂ": "fl", "ﬀ": "ff", "ﬃ": "ffi", "ﬄ": "ffl"}

_PAPER_ID_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"


# ── Public API ─────────────────────────────────────────────────────────

def clean_text(text: str) -> str:
    """
    Sanitise raw PDF page text for chunking and embedding.

    Steps:
        1. Unicode NFC normalisation.
        2. Expand typographic ligatures (``ﬁ`` → ``fi``).
        3. Re-join words hyphenated across line breaks.
        4. Strip non-printable / zero-width characters and formatting
           artifacts (BOM, soft hyphens, directional marks).
        5. Collapse runs of horizontal whitespace into a single space,
           *preserving* newlines.
        6. Strip leading / trailing whitespace from every line.
        7. Collapse 3+ consecutive blank lines to 2.

    Args:
        text: Raw text extracted from a single PDF page.

    Returns:
        Cleaned, normalised text ready for chunking.
    """
    text = unicodedata.normalize("NFC", text)
    for ligature, replacement in _LIGATURES.items():
        text = text.replace(ligature, replacement)
    text = _HYPHEN_BREAK_RE.sub(r"\1\2", text)
    text = _NON_PRINTABLE_RE.sub("", text)
    text = re.sub(r"[^\S\n]+", " ", text)
    lines = [line.strip() for line in text.splitlines()]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def parse_storage_path(path: str, root: str) -> ParsedStoragePath | MalformedStoragePath:
    """
    Decompose an upload key of the form ``{root}/{userId}/{paperId}/{fileName}``.

    Returns a ``MalformedStoragePath`` (never raises) when the key has the
    wrong number of segments, the wrong root, or an empty / dot segment.

    Examples::

        "papers/u1/paper_1/a.pdf"      → ParsedStoragePath(user_id="u1", …)
        "papers/u1/a.pdf"              → MalformedStoragePath(reason="expected 4 segments, got 3")
        "avatars/u1/paper_1/a.pdf"     → MalformedStoragePath(reason="unexpected root 'avatars'")
    """
    if not path:
        return MalformedStoragePath(path="", reason="empty path")

    parts = path.split("/")
    if len(parts) != 4:
        return MalformedStoragePath(path=path, reason=f"expected 4 segments, got {len(parts)}")

    head, user_id, paper_id, file_name = parts
    if head != root:
        return MalformedStoragePath(path=path, reason=f"unexpected root '{head}'")

    for label, segment in (("userId", user_id), ("paperId", paper_id), ("fileName", file_name)):
        if not segment.strip() or segment in {".", ".."}:
            return MalformedStoragePath(path=path, reason=f"invalid {label} segment '{segment}'")

    return ParsedStoragePath(root=head, user_id=user_id, paper_id=paper_id, file_name=file_name)


def build_storage_path(root: str, user_id: str, paper_id: str, file_name: str) -> str:
    """Inverse of ``parse_storage_path``."""
    return f"{root}/{user_id}/{paper_id}/{file_name}"


def generate_paper_id() -> str:
    """
    Return a new ``paper_{epoch_ms}_{random}`` identifier.

    The random suffix comes from ``secrets`` (9 base-36 characters, ~46
    bits), so ids created in the same millisecond by concurrent requests
    do not collide in practice.
    """
    suffix = "".join(secrets.choice(_PAPER_ID_ALPHABET) for _ in range(9))
    return f"paper_{time.time_ns() // 1_000_000}_{suffix}"


def title_from_file_name(file_name: str) -> str:
    """``"attention.v2.pdf"`` → ``"attention.v2"``."""
    return PurePosixPath(file_name).stem or file_name


def format_authors(authors: list[str] | tuple[str, ...]) -> str:
    """Join the non-empty author names with ``", "``."""
    return ", ".join(a for a in authors if a)
