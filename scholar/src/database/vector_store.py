"""
Scholar - Retrieval Gateway
============================
Vector index access for ingestion and question answering.

Every logical *data store* (``user-{uid}-private``, ``public-research``)
is one searchable index.  A query scope resolves to a set of data
stores; search fans out over them and merges the hits into a single
ranking (descending similarity, ties kept in data-store order).

Implementations
---------------
``LanceRetrievalGateway``
    One LanceDB table per data store, strict PyArrow schema, cosine
    distance (``score = 1 - distance``).
``InMemoryRetrievalGateway``
    Pure-Python cosine search over in-process rows.  Same contract; used
    by tests and local experiments.

Failure contract:
    If any data store fails, ``search`` raises ``RetrievalError`` naming
    the failed stores.  Partial results are never returned.  A data
    store that simply has no table yet is empty, not failed.

Usage:
    gateway = LanceRetrievalGateway(db_path=settings.LANCEDB_PATH)
    index_ids = gateway.resolve_scope("all", user_id)
    passages = await gateway.search(query_vector, index_ids, top_k=5)
"""

from __future__ import annotations

import asyncio
import math
import re
import threading
import time
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import lancedb
import pyarrow as pa

from scholar.config.settings import settings
from scholar.src.core.errors import PersistenceError, RetrievalError, ValidationError
from scholar.src.core.models import Chunk, IndexedDocument, QueryScope, RetrievedPassage
from scholar.src.utils.logger import get_logger

logger = get_logger(__name__)

# LanceDB table names: letters, digits, "_", "-", "."
_INDEX_ID_RE = re.compile(r"^[A-Za-z0-9_.\-]+$")


# ══════════════════════════════════════════════════════════════════════
#  SCOPE RESOLUTION
# ══════════════════════════════════════════════════════════════════════


def private_index_id(user_id: str, template: str | None = None) -> str:
    """Return the private data store id of *user_id*."""
    index_id = (template or settings.PRIVATE_INDEX_TEMPLATE).format(user_id=user_id)
    if not user_id or not _INDEX_ID_RE.match(index_id):
        raise ValidationError(f"Invalid user id for private index: {user_id!r}")
    return index_id


def resolve_scope(scope: QueryScope | str, user_id: str, public_index_id: str | None = None, private_template: str | None = None) -> tuple[str, ...]:
    """
    Map a query scope to the data stores it may search.

    ``private`` → the caller's private store, ``public`` → the shared
    store, ``all`` → private followed by public.

    Raises
    ------
    ValidationError
        For an unknown scope or an unusable user id.
    """
    try:
        scope = QueryScope(scope)
    except ValueError as exc:
        raise ValidationError(f"Unknown scope: {scope!r}") from exc

    public = public_index_id or settings.PUBLIC_INDEX_ID
    if scope is QueryScope.PUBLIC:
        return (public,)

    private = private_index_id(user_id, private_template)
    if scope is QueryScope.PRIVATE:
        return (private,)
    return (private, public)


# ══════════════════════════════════════════════════════════════════════
#  SHARED HELPERS
# ══════════════════════════════════════════════════════════════════════


def build_indexed_documents(index_id: str, chunks: Sequence[Chunk], vectors: Sequence[Sequence[float]]) -> list[IndexedDocument]:
    """
    Pair chunks with their vectors under one ingestion batch.

    Document ids are ``{index_id}-{batch_ms}-{position}``.
    """
    if len(chunks) != len(vectors):
        raise ValueError(f"Length mismatch: {len(chunks)} chunks vs {len(vectors)} vectors.")

    now = datetime.now(timezone.utc)
    batch_ms = int(now.timestamp() * 1000)
    ingested_at = now.isoformat()
    return [
        IndexedDocument(id=f"{index_id}-{batch_ms}-{i}", data_store_id=index_id, chunk=chunk, vector=tuple(vector), ingested_at=ingested_at)
        for i, (chunk, vector) in enumerate(zip(chunks, vectors))
    ]


def rank_passages(per_index: Sequence[Sequence[RetrievedPassage]], top_k: int) -> list[RetrievedPassage]:
    """Merge per-index hits into one ranking; ``sorted`` is stable, so ties keep index order."""
    merged = [passage for hits in per_index for passage in hits]
    return sorted(merged, key=lambda p: p.score, reverse=True)[:top_k]


def _cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b):
        raise ValueError(f"Vector dimension mismatch: {len(a)} vs {len(b)}")
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return sum(x * y for x, y in zip(a, b)) / (norm_a * norm_b)


# ══════════════════════════════════════════════════════════════════════
#  GATEWAY PROTOCOL
# ══════════════════════════════════════════════════════════════════════


@runtime_checkable
class RetrievalGateway(Protocol):
    def resolve_scope(self, scope: QueryScope | str, user_id: str) -> tuple[str, ...]: ...

    async def add_documents(self, index_id: str, chunks: Sequence[Chunk], vectors: Sequence[Sequence[float]]) -> int: ...

    async def search(self, vector: Sequence[float], index_ids: Sequence[str], top_k: int) -> list[RetrievedPassage]: ...


class _ScopedGateway:
    """Scope resolution shared by every gateway implementation."""

    __slots__ = ("_public_index_id", "_private_template")

    def __init__(self, public_index_id: str | None = None, private_index_template: str | None = None) -> None:
        self._public_index_id = public_index_id or settings.PUBLIC_INDEX_ID
        self._private_template = private_index_template or settings.PRIVATE_INDEX_TEMPLATE


    def resolve_scope(self, scope: QueryScope | str, user_id: str) -> tuple[str, ...]:
        return resolve_scope(scope, user_id, self._public_index_id, self._private_template)


    def private_index_id(self, user_id: str) -> str:
        return private_index_id(user_id, self._private_template)


# ══════════════════════════════════════════════════════════════════════
#  LANCEDB IMPLEMENTATION
# ══════════════════════════════════════════════════════════════════════


def _index_schema(dim: int) -> pa.Schema:
    return pa.schema([
        pa.field("id", pa.utf8()),
        pa.field("vector", pa.list_(pa.float32(), dim)),
        pa.field("text", pa.utf8()),
        pa.field("paper_id", pa.utf8()),
        pa.field("user_id", pa.utf8()),
        pa.field("file_name", pa.utf8()),
        pa.field("title", pa.utf8()),
        pa.field("authors", pa.list_(pa.utf8())),
        pa.field("page_number", pa.int32()),
        pa.field("chunk_index", pa.int32()),
        pa.field("total_chunks", pa.int32()),
        pa.field("source", pa.utf8()),
        pa.field("timestamp", pa.utf8()),
        pa.field("ingested_at", pa.utf8()),
        pa.field("data_store_id", pa.utf8()),
    ])


def _to_record(doc: IndexedDocument) -> dict[str, Any]:
    meta = doc.chunk.metadata
    return {"id": doc.id, "vector": list(doc.vector), "text": doc.chunk.content, "paper_id": meta.paper_id, "user_id": meta.user_id, "file_name": meta.file_name, "title": meta.title or meta.file_name, "authors": list(meta.authors), "page_number": meta.page_number, "chunk_index": meta.chunk_index, "total_chunks": meta.total_chunks, "source": meta.source, "timestamp": meta.timestamp, "ingested_at": doc.ingested_at, "data_store_id": doc.data_store_id}


def _to_passage(index_id: str, row: dict[str, Any]) -> RetrievedPassage:
    distance = float(row.get("_distance", 1.0))
    return RetrievedPassage(id=str(row["id"]), index_id=index_id, content=str(row["text"]), score=1.0 - distance, paper_id=str(row["paper_id"]), title=str(row.get("title") or row.get("file_name") or ""), authors=tuple(row.get("authors") or ()), page_number=row.get("page_number"), chunk_index=row.get("chunk_index"))


class LanceRetrievalGateway(_ScopedGateway):
    """
    One LanceDB table per data store.

    Tables are created lazily on first write with a fixed-size vector
    column matching the embedding dimension.  LanceDB's API is
    synchronous, so calls run in worker threads.

    Parameters
    ----------
    db_path
        LanceDB directory.  Defaults to ``settings.LANCEDB_PATH``.
    timeout
        Per-data-store search deadline in seconds; ``None`` disables it.
    """

    __slots__ = ("_db_path", "_db", "_lock", "_timeout")

    def __init__(self, db_path: str | Path | None = None, public_index_id: str | None = None, private_index_template: str | None = None, timeout: float | None = None) -> None:
        super().__init__(public_index_id, private_index_template)
        self._db_path = str(db_path or settings.LANCEDB_PATH)
        self._lock = threading.Lock()
        self._timeout = timeout
        try:
            self._db = lancedb.connect(self._db_path)
        except OSError as exc:
            logger.error("LanceDB filesystem error at %s: %s", self._db_path, exc)
            raise
        logger.info("[SEARCH] LanceDB connected at %s", self._db_path)


    async def add_documents(self, index_id: str, chunks: Sequence[Chunk], vectors: Sequence[Sequence[float]]) -> int:
        """
        Persist embedded chunks into *index_id*.

        Returns
        -------
        int
            Number of rows written.

        Raises
        ------
        PersistenceError
            If the table cannot be created or written.
        """
        if not chunks:
            return 0

        docs = build_indexed_documents(index_id, chunks, vectors)
        records = [_to_record(d) for d in docs]
        dim = len(docs[0].vector)

        t_write = time.perf_counter()
        try:
            await asyncio.to_thread(self._write, index_id, records, dim)
        except Exception as exc:
            logger.exception("[SEARCH] Failed to write %d row(s) to '%s'.", len(records), index_id)
            raise PersistenceError(f"Failed to index documents into {index_id}: {exc}") from exc

        logger.info("[SEARCH] Indexed %d row(s) into '%s' in %.1fms.", len(records), index_id, (time.perf_counter() - t_write) * 1000)
        return len(records)


    async def search(self, vector: Sequence[float], index_ids: Sequence[str], top_k: int) -> list[RetrievedPassage]:
        """
        Top-*top_k* passages across *index_ids*, best first.

        Raises
        ------
        RetrievalError
            If any data store fails or times out; ``failed_indexes``
            lists which.
        """
        t_search = time.perf_counter()
        query = [float(v) for v in vector]
        results = await asyncio.gather(*(self._search_one(index_id, query, top_k) for index_id in index_ids), return_exceptions=True)

        failed: list[str] = []
        hits: list[list[RetrievedPassage]] = []
        for index_id, result in zip(index_ids, results):
            if isinstance(result, BaseException):
                logger.error("[SEARCH] Data store '%s' failed: %r", index_id, result)
                failed.append(index_id)
            else:
                hits.append(result)

        if failed:
            raise RetrievalError(f"Search failed for data store(s): {', '.join(failed)}", failed_indexes=failed)

        ranked = rank_passages(hits, top_k)
        logger.info("[SEARCH] %d data store(s) → %d passage(s) in %.1fms.", len(index_ids), len(ranked), (time.perf_counter() - t_search) * 1000)
        return ranked


    def count(self, index_id: str) -> int:
        """Rows in *index_id* (0 when the table does not exist yet)."""
        table = self._open_table(index_id)
        return 0 if table is None else table.count_rows()


    def drop_index(self, index_id: str) -> None:
        """Drop a data store's table (useful for testing / re-ingestion)."""
        try:
            self._db.drop_table(index_id)
            logger.info("[SEARCH] Dropped table '%s'.", index_id)
        except ValueError:
            logger.warning("[SEARCH] Table '%s' does not exist — nothing to drop.", index_id)


    async def _search_one(self, index_id: str, vector: list[float], top_k: int) -> list[RetrievedPassage]:
        if self._timeout is None:
            return await asyncio.to_thread(self._query, index_id, vector, top_k)
        return await asyncio.wait_for(asyncio.to_thread(self._query, index_id, vector, top_k), timeout=self._timeout)


    def _query(self, index_id: str, vector: list[float], top_k: int) -> list[RetrievedPassage]:
        table = self._open_table(index_id)
        if table is None:
            logger.debug("[SEARCH] Data store '%s' has no table yet.", index_id)
            return []
        rows = table.search(vector).distance_type("cosine").limit(top_k).to_list()
        return [_to_passage(index_id, row) for row in rows]


    def _open_table(self, index_id: str):
        """The data store's table, or ``None`` when it has not been created."""
        try:
            return self._db.open_table(index_id)
        except (FileNotFoundError, ValueError):
            return None


    def _write(self, index_id: str, records: list[dict[str, Any]], dim: int) -> None:
        with self._lock:
            table = self._db.create_table(index_id, schema=_index_schema(dim), exist_ok=True)
        table.add(records)


    def __repr__(self) -> str:
        return f"LanceRetrievalGateway(db='{self._db_path}', public='{self._public_index_id}')"


# ══════════════════════════════════════════════════════════════════════
#  IN-MEMORY IMPLEMENTATION
# ══════════════════════════════════════════════════════════════════════


class InMemoryRetrievalGateway(_ScopedGateway):
    """Process-local index with exact cosine search."""

    __slots__ = ("_indexes",)

    def __init__(self, public_index_id: str | None = None, private_index_template: str | None = None) -> None:
        super().__init__(public_index_id, private_index_template)
        self._indexes: dict[str, list[IndexedDocument]] = {}


    async def add_documents(self, index_id: str, chunks: Sequence[Chunk], vectors: Sequence[Sequence[float]]) -> int:
        if not chunks:
            return 0
        docs = build_indexed_documents(index_id, chunks, vectors)
        self._indexes.setdefault(index_id, []).extend(docs)
        return len(docs)


    async def search(self, vector: Sequence[float], index_ids: Sequence[str], top_k: int) -> list[RetrievedPassage]:
        hits: list[list[RetrievedPassage]] = []
        failed: list[str] = []
        for index_id in index_ids:
            try:
                hits.append(self._search_index(index_id, vector, top_k))
            except ValueError as exc:
                logger.error("[SEARCH] Data store '%s' failed: %s", index_id, exc)
                failed.append(index_id)
        if failed:
            raise RetrievalError(f"Search failed for data store(s): {', '.join(failed)}", failed_indexes=failed)
        return rank_passages(hits, top_k)


    def documents(self, index_id: str) -> list[IndexedDocument]:
        return list(self._indexes.get(index_id, []))


    def _search_index(self, index_id: str, vector: Sequence[float], top_k: int) -> list[RetrievedPassage]:
        scored: list[RetrievedPassage] = []
        for doc in self._indexes.get(index_id, []):
            meta = doc.chunk.metadata
            score = _cosine_similarity(vector, doc.vector)
            scored.append(RetrievedPassage(id=doc.id, index_id=index_id, content=doc.chunk.content, score=score, paper_id=meta.paper_id, title=meta.title or meta.file_name, authors=meta.authors, page_number=meta.page_number, chunk_index=meta.chunk_index))
        return sorted(scored, key=lambda p: p.score, reverse=True)[:top_k]
