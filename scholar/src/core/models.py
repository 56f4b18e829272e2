"""
Scholar - Domain Models
========================
Pydantic models shared by the ingestion and query pipelines.

Python attributes are snake_case; persisted documents use the camelCase
field names the document store is keyed on (``paperId``, ``ownerUid``,
``textChunks`` …).  Use ``to_document()`` to obtain the persisted shape
and ``Model.model_validate(doc)`` to read one back.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Chunks at or under this trimmed length are noise, not content.
MIN_CHUNK_LENGTH = 50


class PaperStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class QueryScope(str, Enum):
    PRIVATE = "private"
    PUBLIC = "public"
    ALL = "all"


class _DocumentModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, use_enum_values=True)

    def to_document(self) -> dict[str, Any]:
        """Return the camelCase mapping persisted in the document store."""
        return self.model_dump(by_alias=True, exclude_none=True)


# ══════════════════════════════════════════════════════════════════════
#  PAPERS
# ══════════════════════════════════════════════════════════════════════


class Paper(_DocumentModel):
    paper_id: str
    owner_uid: str
    title: str
    authors: list[str] = Field(default_factory=list)
    storage_path: str
    status: PaperStatus = PaperStatus.PROCESSING
    created_at: datetime
    updated_at: datetime
    extracted_text_length: int | None = None
    text_chunks: int | None = None
    error_message: str | None = None
    processing_time: float | None = None


class PaperMetrics(_DocumentModel):
    word_count: int = 0
    chunk_count: int = 0
    processing_time: float = 0.0


class PaperDetails(_DocumentModel):
    paper: Paper
    related_papers: list[Paper] = Field(default_factory=list)
    metadata: PaperMetrics


class UploadSlot(_DocumentModel):
    upload_url: str
    paper_id: str
    storage_path: str


class BlobConfirmation(_DocumentModel):
    path: str
    size: int
    content_type: str


# ══════════════════════════════════════════════════════════════════════
#  AUTHORS & LIBRARY STATISTICS
# ══════════════════════════════════════════════════════════════════════


class AuthorStatistics(_DocumentModel):
    total_papers: int = 0
    completed_papers: int = 0
    total_words: int = 0
    avg_words_per_paper: int = 0
    co_author_count: int = 0


class PaperActivity(_DocumentModel):
    paper_id: str
    title: str
    status: PaperStatus
    created_at: datetime


class AuthorProfile(_DocumentModel):
    """One author as seen through a single user's library."""

    author_name: str
    statistics: AuthorStatistics
    papers: list[Paper] = Field(default_factory=list)
    co_authors: list[str] = Field(default_factory=list)
    recent_activity: list[PaperActivity] = Field(default_factory=list)


class AuthorSummary(_DocumentModel):
    name: str
    paper_count: int
    papers: list[str] = Field(default_factory=list)


class LibraryOverview(_DocumentModel):
    total_papers: int = 0
    completed_papers: int = 0
    processing_papers: int = 0
    error_papers: int = 0
    completion_rate: float = 0.0


class LibraryContent(_DocumentModel):
    total_words: int = 0
    total_chunks: int = 0
    avg_words_per_paper: int = 0
    avg_chunks_per_paper: int = 0


class LibraryAuthors(_DocumentModel):
    unique_authors: int = 0
    author_list: list[str] = Field(default_factory=list)


class MonthlyCount(_DocumentModel):
    month: str
    count: int


class ResearchStats(_DocumentModel):
    overview: LibraryOverview
    content: LibraryContent
    authors: LibraryAuthors
    papers_by_month: list[MonthlyCount] = Field(default_factory=list)


# ══════════════════════════════════════════════════════════════════════
#  STORAGE PATHS
# ══════════════════════════════════════════════════════════════════════


class ParsedStoragePath(BaseModel):
    """A storage key of the form ``{root}/{userId}/{paperId}/{fileName}``."""

    model_config = ConfigDict(frozen=True)

    root: str
    user_id: str
    paper_id: str
    file_name: str


class MalformedStoragePath(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    reason: str


# ══════════════════════════════════════════════════════════════════════
#  CHUNKS & INDEX ROWS
# ══════════════════════════════════════════════════════════════════════


class ChunkMetadata(_DocumentModel):
    model_config = ConfigDict(frozen=True)

    paper_id: str
    user_id: str
    file_name: str
    chunk_index: int = Field(ge=0)
    total_chunks: int = Field(ge=1)
    source: str = "user_upload"
    timestamp: str
    page_number: int | None = None
    title: str = ""
    authors: tuple[str, ...] = ()


class Chunk(_DocumentModel):
    model_config = ConfigDict(frozen=True)

    content: str
    metadata: ChunkMetadata

    @field_validator("content")
    @classmethod
    def _content_above_floor(cls, v: str) -> str:
        if len(v.strip()) <= MIN_CHUNK_LENGTH:
            raise ValueError(f"chunk content must exceed {MIN_CHUNK_LENGTH} characters after trimming")
        return v


class IndexedDocument(_DocumentModel):
    model_config = ConfigDict(frozen=True)

    id: str
    data_store_id: str
    chunk: Chunk
    vector: tuple[float, ...]
    ingested_at: str


# ══════════════════════════════════════════════════════════════════════
#  RETRIEVAL & ANSWERS
# ══════════════════════════════════════════════════════════════════════


class RetrievedPassage(_DocumentModel):
    """One ranked search hit.  ``score`` is a similarity: higher is better."""

    model_config = ConfigDict(frozen=True)

    id: str
    index_id: str
    content: str
    score: float
    paper_id: str
    title: str
    authors: tuple[str, ...] = ()
    page_number: int | None = None
    chunk_index: int | None = None

    def to_source(self) -> Source:
        return Source(paper_id=self.paper_id, title=self.title, authors=list(self.authors), page_number=self.page_number, content=self.content, score=self.score)


class Source(_DocumentModel):
    paper_id: str
    title: str
    authors: list[str] = Field(default_factory=list)
    page_number: int | None = None
    content: str
    score: float


class Conversation(_DocumentModel):
    id: str
    user_id: str
    query: str
    scope: QueryScope
    answer: str
    sources: list[Source] = Field(default_factory=list)
    timestamp: datetime


class QueryResult(_DocumentModel):
    answer: str
    sources: list[Source]
    query: str
    scope: QueryScope
    max_results: int
    timestamp: str


class IngestionOutcome(_DocumentModel):
    """Result of one ingestion trigger; fire-and-forget callers may ignore it."""

    storage_path: str
    status: Literal["skipped", "completed", "error"]
    paper_id: str | None = None
    reason: str | None = None
    chunk_count: int = 0
    text_length: int = 0
    error_message: str | None = None
    error_recorded: bool | None = None
