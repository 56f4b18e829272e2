"""
Scholar - RAG Engine
=====================
Answers a natural-language question from indexed research papers and
records the exchange.

``RAGManager``
    Stateless pipeline orchestrator.  Flow:
        1. Validate the question and scope
        2. Resolve the data stores for the scope
        3. Embed the question
        4. Retrieve the top-K passages across those data stores
        5. Assemble the numbered context
        6. Generate the cited answer
        7. Project passages to ``Source`` records (rank order kept)
        8. Persist an append-only ``Conversation``
        9. Return answer, sources, echoed query/scope and timestamp

Error policy
------------
Validation problems raise ``ValidationError`` before anything is called.
Any failure in steps 2–8 is logged with its cause and surfaces to the
caller only as ``QueryFailedError``; upstream detail never leaves this
module.  A failed run persists no conversation.

Concurrency
-----------
No request-scoped state is kept on the instance, so one ``RAGManager``
can serve concurrent questions.

Usage:
    rag = RAGManager(document_store, embeddings, retrieval, generator)
    result = await rag.answer_query("user_123", "What is self-attention?", "all")
"""

from __future__ import annotations

import time
import uuid
from datetime import datetime, timezone

from scholar.config.settings import settings
from scholar.src.core.context import assemble_context
from scholar.src.core.embeddings import EmbeddingGateway
from scholar.src.core.errors import QueryFailedError, ValidationError
from scholar.src.core.generator import AnswerGenerator
from scholar.src.core.models import Conversation, QueryResult, QueryScope
from scholar.src.database.document_store import DocumentStore
from scholar.src.database.vector_store import RetrievalGateway
from scholar.src.utils.logger import get_logger

logger = get_logger(__name__)


class RAGManager:
    """
    Orchestrates embed → retrieve → assemble → generate → record.

    Parameters
    ----------
    document_store
        Receives ``Conversation`` records.
    embeddings
        ``EmbeddingGateway`` for the question vector.
    retrieval
        ``RetrievalGateway`` providing scope resolution and search.
    generator
        ``AnswerGenerator`` for the final answer.
    top_k
        Passages retrieved per question (default ``settings.SEARCH_TOP_K``).
    """

    __slots__ = ("_store", "_embeddings", "_retrieval", "_generator", "_top_k", "_collection")

    def __init__(self, document_store: DocumentStore, embeddings: EmbeddingGateway, retrieval: RetrievalGateway, generator: AnswerGenerator, top_k: int | None = None, collection: str | None = None) -> None:
        self._store = document_store
        self._embeddings = embeddings
        self._retrieval = retrieval
        self._generator = generator
        self._top_k = top_k or settings.SEARCH_TOP_K
        self._collection = collection or settings.CONVERSATIONS_COLLECTION


    async def answer_query(self, user_id: str, query: str, scope: QueryScope | str) -> QueryResult:
        """
        Run the full RAG pipeline for one question.

        Raises
        ------
        ValidationError
            Empty question, empty user id, or unknown scope.
        QueryFailedError
            Any pipeline stage failed.
        """
        # ── 1. Validate ───────────────────────────────────────────────
        if not user_id:
            raise ValidationError("User id is required")
        if not query or not query.strip():
            raise ValidationError("Query is required")
        try:
            scope = QueryScope(scope)
        except ValueError as exc:
            raise ValidationError(f"Unknown scope: {scope!r}") from exc

        t_start = time.perf_counter()
        logger.info("[RAG] Query from %s (scope=%s): %.80s", user_id, scope.value, query)

        try:
            # ── 2. Resolve data stores ────────────────────────────────
            index_ids = self._retrieval.resolve_scope(scope, user_id)

            # ── 3. Embed ──────────────────────────────────────────────
            t_embed = time.perf_counter()
            vector = await self._embeddings.embed(query)
            embed_ms = (time.perf_counter() - t_embed) * 1000

            # ── 4. Retrieve ───────────────────────────────────────────
            t_search = time.perf_counter()
            passages = await self._retrieval.search(vector, index_ids, self._top_k)
            search_ms = (time.perf_counter() - t_search) * 1000
            if not passages:
                logger.warning("[RAG] No passages found in %s.", ", ".join(index_ids))

            # ── 5. Assemble context ───────────────────────────────────
            context = assemble_context(passages)

            # ── 6. Generate ───────────────────────────────────────────
            t_llm = time.perf_counter()
            answer = await self._generator.generate(query, context)
            llm_ms = (time.perf_counter() - t_llm) * 1000

            # ── 7. Sources ────────────────────────────────────────────
            sources = [p.to_source() for p in passages]

            # ── 8. Record ─────────────────────────────────────────────
            timestamp = datetime.now(timezone.utc)
            conversation = Conversation(id=uuid.uuid4().hex, user_id=user_id, query=query, scope=scope, answer=answer, sources=sources, timestamp=timestamp)
            await self._store.set(self._collection, conversation.id, conversation.to_document())
        except Exception:
            logger.exception("[RAG] Query failed for user %s.", user_id)
            raise QueryFailedError() from None

        # ── 9. Return ─────────────────────────────────────────────────
        total_ms = (time.perf_counter() - t_start) * 1000
        logger.info("[RAG] Pipeline total: %.1fms (embed=%.1f, search=%.1f, llm=%.1f), %d source(s).", total_ms, embed_ms, search_ms, llm_ms, len(sources))
        return QueryResult(answer=answer, sources=sources, query=query, scope=scope, max_results=self._top_k, timestamp=timestamp.isoformat())


    async def get_conversation_history(self, user_id: str, limit: int | None = None) -> list[Conversation]:
        """The user's recorded conversations, newest first."""
        if not user_id:
            raise ValidationError("User id is required")

        try:
            docs = await self._store.query(self._collection, filters={"userId": user_id}, order_by=("timestamp", "desc"), limit=limit or settings.HISTORY_LIMIT)
            return [Conversation.model_validate(doc) for doc in docs]
        except Exception:
            logger.exception("[RAG] Could not load conversation history for user %s.", user_id)
            raise QueryFailedError("Failed to get conversation history") from None
