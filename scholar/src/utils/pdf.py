"""
Scholar - PDF Text Extraction
==============================
Turns raw PDF bytes into one cleaned text string while remembering where
each page starts, so chunk offsets can be mapped back to page numbers.

Usage:
    from scholar.src.utils.pdf import extract_pdf_text
    document = extract_pdf_text(pdf_bytes)
    document.page_for_offset(1200)   # → 2
"""

from __future__ import annotations

from bisect import bisect_right

import pymupdf
from pydantic import BaseModel, Field

from scholar.src.core.errors import ExtractionError
from scholar.src.utils.logger import get_logger
from scholar.src.utils.text_utils import clean_text

logger = get_logger(__name__)

_PAGE_SEPARATOR = "\n"


class ExtractedDocument(BaseModel):
    text: str
    page_starts: list[int] = Field(default_factory=list)

    @property
    def page_count(self) -> int:
        return len(self.page_starts)

    def page_for_offset(self, offset: int) -> int | None:
        """1-based page number containing character *offset*."""
        if not self.page_starts:
            return None
        return max(bisect_right(self.page_starts, offset), 1)


def extract_pdf_text(data: bytes) -> ExtractedDocument:
    """
    Extract and clean the text of every page in *data*.

    Pages are joined with a newline.  Pages that yield no text still get
    an entry in ``page_starts`` so numbering stays aligned with the PDF.

    Raises
    ------
    ExtractionError
        If the bytes are not a readable PDF or no page yields any text.
    """
    if not data:
        raise ExtractionError("Uploaded file is empty")

    try:
        with pymupdf.open(stream=data, filetype="pdf") as doc:
            pages = [clean_text(page.get_text("text")) for page in doc]
    except (RuntimeError, ValueError) as exc:
        raise ExtractionError(f"Could not read PDF: {exc}") from exc

    page_starts: list[int] = []
    offset = 0
    for page_text in pages:
        page_starts.append(offset)
        offset += len(page_text) + len(_PAGE_SEPARATOR)

    text = _PAGE_SEPARATOR.join(pages)
    if not text.strip():
        raise ExtractionError("No extractable text found in PDF")

    logger.debug("[EXTRACT] %d page(s), %d characters.", len(pages), len(text))
    return ExtractedDocument(text=text, page_starts=page_starts)
