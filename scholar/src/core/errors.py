"""
Scholar - Error Kinds
======================
Every failure the ingestion and query pipelines can raise.

Stage errors (``ExtractionError``, the ``UpstreamError`` family,
``PersistenceError``) carry enough detail to be logged server-side.
Only ``QueryFailedError`` and ``ValidationError`` are meant to cross the
system boundary; their messages never include upstream detail.
"""

from __future__ import annotations

from collections.abc import Iterable


class ScholarError(Exception):
    """Base class for all Scholar errors."""


class ValidationError(ScholarError):
    """Bad input shape, rejected before any side effect."""


class ExtractionError(ScholarError):
    """Text could not be extracted from the uploaded document."""


class UpstreamError(ScholarError):
    """An external model / search service failed or timed out."""


class EmbeddingError(UpstreamError):
    """The embedding service failed or returned a malformed result."""


class RetrievalError(UpstreamError):
    """The search service failed for one or more data stores."""

    def __init__(self, message: str, failed_indexes: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.failed_indexes: tuple[str, ...] = tuple(failed_indexes)


class GenerationError(UpstreamError):
    """The generation service failed or returned an empty answer."""


class PersistenceError(ScholarError):
    """A document-store or index write / read failed."""


class QueryFailedError(ScholarError):
    """Opaque failure returned to callers of ``RAGManager``."""

    def __init__(self, message: str = "Failed to process RAG query") -> None:
        super().__init__(message)


class PaperNotFoundError(ScholarError):
    """The requested paper does not exist."""


class PaperAccessError(ScholarError):
    """The requested paper belongs to another user."""
