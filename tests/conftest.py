"""Shared fixtures and in-process doubles for the test suite."""

from __future__ import annotations

import os

# Required secrets must exist before ``scholar.config.settings`` is imported.
os.environ.setdefault("GOOGLE_API_KEY", "test-google-key")
os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017")
os.environ.setdefault("UPLOAD_SIGNING_KEY", "test-signing-key")

import copy
from collections.abc import Mapping, Sequence
from typing import Any

import pytest
from langchain_core.messages import AIMessage

from scholar.src.core.embeddings import EmbeddingGateway
from scholar.src.core.generator import AnswerGenerator
from scholar.src.database.blob_store import LocalBlobStore
from scholar.src.database.vector_store import InMemoryRetrievalGateway


class FakeEmbedder:
    """Deterministic embedder: maps each text to a small vector by keyword."""

    KEYWORDS = ("attention", "transformer", "protein", "graph")

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.document_calls: list[list[str]] = []
        self.query_calls: list[str] = []

    def vector_for(self, text: str) -> list[float]:
        lowered = text.lower()
        vec = [float(lowered.count(k)) for k in self.KEYWORDS]
        vec.append(0.1)
        return vec

    async def aembed_documents(self, texts: list[str]) -> list[list[float]]:
        self.document_calls.append(list(texts))
        if self.fail:
            raise RuntimeError("embedding backend down")
        return [self.vector_for(t) for t in texts]

    async def aembed_query(self, text: str) -> list[float]:
        self.query_calls.append(text)
        if self.fail:
            raise RuntimeError("embedding backend down")
        return self.vector_for(text)


class FakeChatModel:
    def __init__(self, answer: Any = "Self-attention relates positions of a sequence [1].", fail: bool = False) -> None:
        self.answer = answer
        self.fail = fail
        self.calls: list[list[Any]] = []

    async def ainvoke(self, input: list[Any], **kwargs: Any) -> AIMessage:
        self.calls.append(input)
        if self.fail:
            raise RuntimeError("model overloaded")
        return AIMessage(content=self.answer)


def _matches(doc: Mapping[str, Any], filters: Mapping[str, Any]) -> bool:
    for field, wanted in filters.items():
        value = doc.get(field)
        if isinstance(value, list):
            if wanted not in value:
                return False
        elif value != wanted:
            return False
    return True


class InMemoryDocumentStore:
    """Dict-backed ``DocumentStore`` with the same filter / guard semantics as Mongo."""

    def __init__(self) -> None:
        self.collections: dict[str, dict[str, dict[str, Any]]] = {}
        self.fail_updates_when: dict[str, Any] | None = None
        self.fail_sets = False
        self.fail_queries = False

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        doc = self.collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def set(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        if self.fail_sets:
            raise RuntimeError("store unavailable")
        self.collections.setdefault(collection, {})[doc_id] = copy.deepcopy(dict(fields))

    async def update(self, collection: str, doc_id: str, fields: Mapping[str, Any], expected: Mapping[str, Sequence[Any]] | None = None) -> bool:
        if self.fail_updates_when is not None and all(fields.get(k) == v for k, v in self.fail_updates_when.items()):
            raise RuntimeError("store unavailable")
        doc = self.collections.get(collection, {}).get(doc_id)
        if doc is None:
            return False
        for field, allowed in (expected or {}).items():
            if doc.get(field) not in allowed:
                return False
        doc.update(copy.deepcopy(dict(fields)))
        return True

    async def query(self, collection: str, filters: Mapping[str, Any] | None = None, order_by: tuple[str, str] | None = None, limit: int | None = None, offset: int = 0) -> list[dict[str, Any]]:
        if self.fail_queries:
            raise RuntimeError("store unavailable")
        docs = [copy.deepcopy(d) for d in self.collections.get(collection, {}).values() if _matches(d, filters or {})]
        if order_by is not None:
            field, direction = order_by
            docs.sort(key=lambda d: d[field], reverse=direction == "desc")
        docs = docs[offset:]
        if limit is not None:
            docs = docs[:limit]
        return docs


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def chat_model() -> FakeChatModel:
    return FakeChatModel()


@pytest.fixture
def document_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def retrieval() -> InMemoryRetrievalGateway:
    return InMemoryRetrievalGateway()


@pytest.fixture
def embeddings(embedder: FakeEmbedder) -> EmbeddingGateway:
    return EmbeddingGateway(embedder, batch_size=4, max_concurrency=2)


@pytest.fixture
def generator(chat_model: FakeChatModel) -> AnswerGenerator:
    return AnswerGenerator(chat_model)


@pytest.fixture
def blob_store(tmp_path) -> LocalBlobStore:
    return LocalBlobStore(root=tmp_path / "blobs", signing_key="unit-test-key", base_url="http://uploads.test/")
