"""
Scholar - IngestionPipeline
============================
Drives one uploaded paper through extract → chunk → embed → index and
records the outcome on the paper document.

State machine
-------------
``processing → completed`` on success, ``processing → error`` on any
failure.  Both terminal writes, and the initial re-set to
``processing``, are conditional on the stored status still being
``processing``; a trigger for a paper that is missing or already
terminal is skipped, and at most one terminal status lands per paper.

Steps:
    1. Non-PDF content → skipped (paper untouched).
    2. Storage key not ``{root}/{userId}/{paperId}/{fileName}`` → skipped.
    3. Re-set ``processing``, download bytes, extract text.
    4. Chunk (size 1000, overlap 200 by default).
    5. Tag chunks, embed them, index into ``user-{userId}-private``.
    6. Write ``completed`` with ``textChunks``, ``extractedTextLength``,
       ``processingTime``.

Failures in 3–6 write ``error`` + ``errorMessage`` once, best-effort.
If that write fails too it is logged and dropped; nothing is retried
here — redelivery belongs to whatever fires the trigger.

Usage:
    pipeline = IngestionPipeline(document_store, blob_store, embeddings, retrieval)
    outcome  = await pipeline.trigger("papers/u1/paper_1/attention.pdf", "application/pdf")
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from datetime import datetime, timezone

from scholar.config.settings import settings
from scholar.src.core.chunker import chunk_with_offsets
from scholar.src.core.embeddings import EmbeddingGateway
from scholar.src.core.models import Chunk, ChunkMetadata, IngestionOutcome, MalformedStoragePath, PaperStatus, ParsedStoragePath, QueryScope
from scholar.src.database.blob_store import BlobStore
from scholar.src.database.document_store import DocumentStore
from scholar.src.database.vector_store import RetrievalGateway
from scholar.src.utils.logger import get_logger
from scholar.src.utils.pdf import ExtractedDocument, extract_pdf_text
from scholar.src.utils.text_utils import build_storage_path, parse_storage_path, title_from_file_name

logger = get_logger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
CHUNK_SOURCE_TAG = "user_upload"

_ONLY_WHILE_PROCESSING = {"status": [PaperStatus.PROCESSING.value]}

Extractor = Callable[[bytes], ExtractedDocument]


class IngestionPipeline:
    """
    End-to-end ingestion of a single uploaded paper.

    Parameters
    ----------
    document_store
        Holds the paper documents (injected).
    blob_store
        Source of the uploaded bytes (injected).
    embeddings
        ``EmbeddingGateway`` used for chunk vectors.
    retrieval
        ``RetrievalGateway`` whose private data store receives the chunks.
    extractor
        ``bytes -> ExtractedDocument``; defaults to PyMuPDF extraction.
    chunk_size / chunk_overlap
        Override ``settings.CHUNK_SIZE`` / ``settings.CHUNK_OVERLAP``.
    """

    __slots__ = ("_papers", "_blobs", "_embeddings", "_retrieval", "_extract", "_collection", "_upload_root", "_chunk_size", "_chunk_overlap")

    def __init__(self, document_store: DocumentStore, blob_store: BlobStore, embeddings: EmbeddingGateway, retrieval: RetrievalGateway, extractor: Extractor = extract_pdf_text, collection: str | None = None, upload_root: str | None = None, chunk_size: int | None = None, chunk_overlap: int | None = None) -> None:
        self._papers = document_store
        self._blobs = blob_store
        self._embeddings = embeddings
        self._retrieval = retrieval
        self._extract = extractor
        self._collection = collection or settings.PAPERS_COLLECTION
        self._upload_root = upload_root or settings.UPLOAD_ROOT
        self._chunk_size = chunk_size or settings.CHUNK_SIZE
        self._chunk_overlap = settings.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap

    # ══════════════════════════════════════════════════════════════════
    #  PUBLIC ENTRY POINT
    # ══════════════════════════════════════════════════════════════════

    async def trigger(self, storage_path: str, content_type: str | None) -> IngestionOutcome:
        """
        Ingest the object at *storage_path*.

        Never raises: every failure is recorded on the paper and
        reported in the returned ``IngestionOutcome``.
        """
        # ── 1. Content type gate ───────────────────────────────────────
        if content_type != PDF_CONTENT_TYPE:
            logger.info("[INGEST] Skipping non-PDF object %s (%s).", storage_path, content_type)
            return IngestionOutcome(storage_path=storage_path, status="skipped", reason=f"unsupported content type: {content_type}")

        # ── 2. Storage key decomposition ───────────────────────────────
        parsed = parse_storage_path(storage_path, self._upload_root)
        if isinstance(parsed, MalformedStoragePath):
            logger.warning("[INGEST] Skipping malformed storage path %s: %s", storage_path, parsed.reason)
            return IngestionOutcome(storage_path=storage_path, status="skipped", reason=f"malformed path: {parsed.reason}")

        paper_id = parsed.paper_id
        logger.info("[INGEST] Processing paper %s for user %s.", paper_id, parsed.user_id)
        t_start = time.perf_counter()

        # ── 3–5. Claim, extract, chunk, embed, index ───────────────────
        try:
            claimed = await self._papers.update(self._collection, paper_id, {"status": PaperStatus.PROCESSING.value, "updatedAt": _now()}, expected=_ONLY_WHILE_PROCESSING)
            if not claimed:
                logger.warning("[INGEST] Paper %s is missing or already terminal — skipping duplicate trigger.", paper_id)
                return IngestionOutcome(storage_path=storage_path, status="skipped", paper_id=paper_id, reason="paper missing or not processing")

            chunk_count, text_length = await self._process(parsed)
        except Exception as exc:
            return await self._fail(parsed, exc)

        # ── 6. Terminal success write ──────────────────────────────────
        elapsed_ms = (time.perf_counter() - t_start) * 1000
        fields = {"status": PaperStatus.COMPLETED.value, "textChunks": chunk_count, "extractedTextLength": text_length, "processingTime": round(elapsed_ms, 1), "updatedAt": _now()}
        try:
            written = await self._papers.update(self._collection, paper_id, fields, expected=_ONLY_WHILE_PROCESSING)
        except Exception as exc:
            return await self._fail(parsed, exc)

        if not written:
            logger.warning("[INGEST] Paper %s left 'processing' during this run — completion not recorded.", paper_id)
            return IngestionOutcome(storage_path=storage_path, status="skipped", paper_id=paper_id, reason="terminal status already recorded", chunk_count=chunk_count, text_length=text_length)

        logger.info("[INGEST] Paper %s completed — %d chunk(s), %d chars in %.1fms.", paper_id, chunk_count, text_length, elapsed_ms)
        return IngestionOutcome(storage_path=storage_path, status="completed", paper_id=paper_id, chunk_count=chunk_count, text_length=text_length)

    # ══════════════════════════════════════════════════════════════════
    #  PER-PAPER PROCESSING
    # ══════════════════════════════════════════════════════════════════

    async def _process(self, parsed: ParsedStoragePath) -> tuple[int, int]:
        """Run steps 3–5; returns ``(chunk_count, extracted_text_length)``."""
        paper = await self._papers.get(self._collection, parsed.paper_id) or {}
        title = paper.get("title") or title_from_file_name(parsed.file_name)
        authors = tuple(paper.get("authors") or ())

        storage_path = build_storage_path(parsed.root, parsed.user_id, parsed.paper_id, parsed.file_name)
        data = await self._blobs.download(storage_path)

        t_extract = time.perf_counter()
        document = await asyncio.to_thread(self._extract, data)
        logger.info("[INGEST] Extracted %d chars from %d page(s) in %.1fms.", len(document.text), document.page_count, (time.perf_counter() - t_extract) * 1000)

        chunks = self._build_chunks(parsed, document, title, authors)
        logger.info("[INGEST] Paper %s → %d chunk(s).", parsed.paper_id, len(chunks))

        if chunks:
            vectors = await self._embeddings.embed_batch([c.content for c in chunks])
            index_id = self._retrieval.resolve_scope(QueryScope.PRIVATE, parsed.user_id)[0]
            await self._retrieval.add_documents(index_id, chunks, vectors)

        return len(chunks), len(document.text)


    def _build_chunks(self, parsed: ParsedStoragePath, document: ExtractedDocument, title: str, authors: tuple[str, ...]) -> list[Chunk]:
        pieces = chunk_with_offsets(document.text, self._chunk_size, self._chunk_overlap)
        timestamp = _now().isoformat()
        total = len(pieces)

        chunks: list[Chunk] = []
        for idx, (content, offset) in enumerate(pieces):
            logger.debug("  Chunk %d (%d chars): %.60s…", idx, len(content), content.replace("\n", " "))
            metadata = ChunkMetadata(paper_id=parsed.paper_id, user_id=parsed.user_id, file_name=parsed.file_name, chunk_index=idx, total_chunks=total, source=CHUNK_SOURCE_TAG, timestamp=timestamp, page_number=document.page_for_offset(offset), title=title, authors=authors)
            chunks.append(Chunk(content=content, metadata=metadata))
        return chunks

    # ══════════════════════════════════════════════════════════════════
    #  FAILURE RECORDING
    # ══════════════════════════════════════════════════════════════════

    async def _fail(self, parsed: ParsedStoragePath, exc: Exception) -> IngestionOutcome:
        """
        Record ``error`` once.  The primary failure is always reported;
        a failure of this secondary write is logged and dropped.
        """
        message = str(exc) or type(exc).__name__
        logger.error("[INGEST] Paper %s failed: %s", parsed.paper_id, message, exc_info=exc)

        fields = {"status": PaperStatus.ERROR.value, "errorMessage": message, "updatedAt": _now()}
        try:
            recorded = await self._papers.update(self._collection, parsed.paper_id, fields, expected=_ONLY_WHILE_PROCESSING)
        except Exception:
            logger.exception("[INGEST] Could not record error status for paper %s.", parsed.paper_id)
            recorded = False
        else:
            if not recorded:
                logger.warning("[INGEST] Error status for paper %s not recorded: paper missing or already terminal.", parsed.paper_id)

        return IngestionOutcome(storage_path=build_storage_path(parsed.root, parsed.user_id, parsed.paper_id, parsed.file_name), status="error", paper_id=parsed.paper_id, error_message=message, error_recorded=recorded)


def _now() -> datetime:
    return datetime.now(timezone.utc)
