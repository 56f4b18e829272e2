"""
Scholar - Document Store
=========================
Async key/document store for papers and conversations, backed by
MongoDB via ``motor``.

Documents are keyed by their id (stored as Mongo ``_id``, which is
stripped from everything returned).  Filters are field equality; a
filter on an array field matches when any element is equal, so
``{"authors": "Ada"}`` finds every paper Ada co-authored.

Conditional updates
-------------------
``update(..., expected={"status": ["processing"]})`` only applies when
every listed field currently holds one of the allowed values, and
reports whether it did.  The ingestion pipeline uses this to make its
status writes safe against duplicate triggers.

Usage:
    client = AsyncIOMotorClient(settings.MONGO_URI.get_secret_value())
    store = MongoDocumentStore(client[settings.MONGO_DB_NAME])
    await store.set("papers", paper_id, paper.to_document())
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Literal, Protocol, runtime_checkable

import motor.motor_asyncio
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from scholar.src.core.errors import PersistenceError
from scholar.src.utils.logger import get_logger

logger = get_logger(__name__)

Document = dict[str, Any]
OrderBy = tuple[str, Literal["asc", "desc"]]


@runtime_checkable
class DocumentStore(Protocol):
    async def get(self, collection: str, doc_id: str) -> Document | None: ...

    async def set(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None: ...

    async def update(self, collection: str, doc_id: str, fields: Mapping[str, Any], expected: Mapping[str, Sequence[Any]] | None = None) -> bool: ...

    async def query(self, collection: str, filters: Mapping[str, Any] | None = None, order_by: OrderBy | None = None, limit: int | None = None, offset: int = 0) -> list[Document]: ...


class MongoDocumentStore:
    """
    ``DocumentStore`` over a motor database handle.

    Every ``PyMongoError`` is re-raised as ``PersistenceError`` so callers
    never depend on driver exceptions.
    """

    __slots__ = ("_db",)

    def __init__(self, database: motor.motor_asyncio.AsyncIOMotorDatabase) -> None:
        self._db = database


    async def get(self, collection: str, doc_id: str) -> Document | None:
        try:
            doc = await self._db[collection].find_one({"_id": doc_id})
        except PyMongoError as exc:
            raise PersistenceError(f"Failed to read {collection}/{doc_id}: {exc}") from exc
        if doc is None:
            return None
        doc.pop("_id", None)
        return doc


    async def set(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        """Create or fully replace a document."""
        try:
            await self._db[collection].replace_one({"_id": doc_id}, dict(fields), upsert=True)
        except PyMongoError as exc:
            raise PersistenceError(f"Failed to write {collection}/{doc_id}: {exc}") from exc
        logger.debug("[STORE] Set %s/%s", collection, doc_id)


    async def update(self, collection: str, doc_id: str, fields: Mapping[str, Any], expected: Mapping[str, Sequence[Any]] | None = None) -> bool:
        """
        Merge *fields* into an existing document.

        Returns
        -------
        bool
            ``True`` if a document matched (and the guard held), ``False``
            if the document is missing or the guard rejected the write.
        """
        selector: Document = {"_id": doc_id}
        for field, allowed in (expected or {}).items():
            selector[field] = {"$in": list(allowed)}

        try:
            result = await self._db[collection].update_one(selector, {"$set": dict(fields)})
        except PyMongoError as exc:
            raise PersistenceError(f"Failed to update {collection}/{doc_id}: {exc}") from exc

        matched = result.matched_count == 1
        logger.debug("[STORE] Update %s/%s matched=%s", collection, doc_id, matched)
        return matched


    async def query(self, collection: str, filters: Mapping[str, Any] | None = None, order_by: OrderBy | None = None, limit: int | None = None, offset: int = 0) -> list[Document]:
        cursor = self._db[collection].find(dict(filters or {}), {"_id": 0})
        if order_by is not None:
            field, direction = order_by
            cursor = cursor.sort(field, DESCENDING if direction == "desc" else ASCENDING)
        if offset:
            cursor = cursor.skip(offset)
        if limit is not None:
            cursor = cursor.limit(limit)

        try:
            return await cursor.to_list(length=limit)
        except PyMongoError as exc:
            raise PersistenceError(f"Failed to query {collection}: {exc}") from exc
