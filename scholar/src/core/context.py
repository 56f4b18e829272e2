"""
Scholar - Context Assembler
============================
Renders ranked passages into the numbered, citation-ready context block
handed to the answer generator.  Entry ``[i]`` is the passage the model
must cite as ``[i]``.
"""

from __future__ import annotations

from collections.abc import Sequence

from scholar.config.prompt_templates import NO_CONTEXT_SENTINEL
from scholar.src.core.models import RetrievedPassage
from scholar.src.utils.text_utils import format_authors


def assemble_context(passages: Sequence[RetrievedPassage]) -> str:
    """
    Format *passages* (already ranked) into a numbered context block.

    Each entry looks like::

        [1] <content>
        Source: <title> by <author, author> (Page 3)

    The page suffix is omitted when the passage has no page number.
    Empty input returns ``NO_CONTEXT_SENTINEL``.
    """
    if not passages:
        return NO_CONTEXT_SENTINEL

    blocks: list[str] = []
    for i, passage in enumerate(passages, 1):
        source = f"Source: {passage.title} by {format_authors(passage.authors)}"
        if passage.page_number is not None:
            source += f" (Page {passage.page_number})"
        blocks.append(f"[{i}] {passage.content}\n{source}")

    return "\n\n".join(blocks)
