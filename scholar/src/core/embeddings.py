"""
Scholar - Embedding Gateway
============================
Wraps any LangChain-compatible embedding model behind a uniform
``embed(text) -> vector`` contract with batched, order-preserving
fan-out for ingestion.

Design decisions:
    • **Dependency Injection** – the embedder is injected (in production
      ``GoogleGenerativeAIEmbeddings``), never constructed here.
    • **Bounded fan-out** – batches of ``batch_size`` texts are embedded
      concurrently, at most ``max_concurrency`` at a time.
    • **No silent substitutes** – an empty or malformed upstream result
      raises ``EmbeddingError``; a zero vector is never returned.

Usage:
    gateway = EmbeddingGateway(embedder)
    vector  = await gateway.embed("what is attention?")
    vectors = await gateway.embed_batch(chunk_texts)
"""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from scholar.config.settings import settings
from scholar.src.core.errors import EmbeddingError
from scholar.src.utils.logger import get_logger

logger = get_logger(__name__)

Vector = list[float]


@runtime_checkable
class Embedder(Protocol):
    """Structural type for any LangChain-compatible async embedding model."""

    async def aembed_documents(self, texts: list[str]) -> list[list[float]]: ...

    async def aembed_query(self, text: str) -> list[float]: ...


class EmbeddingGateway:
    """
    Order-preserving, validated access to an embedding model.

    Parameters
    ----------
    embedder
        Any object satisfying the ``Embedder`` protocol.
    batch_size
        Texts per upstream ``aembed_documents`` call.
    max_concurrency
        Maximum number of batches in flight at once.
    timeout
        Per-call deadline in seconds; ``None`` disables it.
    """

    __slots__ = ("_embedder", "_batch_size", "_semaphore_size", "_timeout")

    def __init__(self, embedder: Embedder, batch_size: int | None = None, max_concurrency: int | None = None, timeout: float | None = None) -> None:
        self._embedder = embedder
        self._batch_size = batch_size or settings.EMBED_BATCH_SIZE
        self._semaphore_size = max_concurrency or settings.MAX_WORKERS
        self._timeout = timeout


    async def embed(self, text: str) -> Vector:
        """Embed a single query text."""
        t_start = time.perf_counter()
        try:
            raw = await self._call(self._embedder.aembed_query(text))
        except EmbeddingError:
            raise
        except Exception as exc:
            raise EmbeddingError(f"Embedding service failed: {exc}") from exc

        vector = _validate_vector(raw, position=0)
        logger.debug("[EMBED] Query embedded (%d dims) in %.1fms.", len(vector), (time.perf_counter() - t_start) * 1000)
        return vector


    async def embed_batch(self, texts: Sequence[str]) -> list[Vector]:
        """
        Embed many texts; output ``i`` always corresponds to input ``i``.

        Raises
        ------
        EmbeddingError
            If any batch fails, returns the wrong number of vectors, or
            contains an empty / non-numeric vector.
        """
        if not texts:
            return []

        t_start = time.perf_counter()
        batches = [list(texts[i : i + self._batch_size]) for i in range(0, len(texts), self._batch_size)]
        semaphore = asyncio.Semaphore(self._semaphore_size)

        async def run(offset: int, batch: list[str]) -> list[Vector]:
            async with semaphore:
                try:
                    raw = await self._call(self._embedder.aembed_documents(batch))
                except EmbeddingError:
                    raise
                except Exception as exc:
                    logger.error("[EMBED] Batch %d–%d failed: %s", offset, offset + len(batch) - 1, exc)
                    raise EmbeddingError(f"Embedding service failed: {exc}") from exc

            if not isinstance(raw, list) or len(raw) != len(batch):
                got = len(raw) if isinstance(raw, list) else type(raw).__name__
                raise EmbeddingError(f"Embedding batch at {offset} returned {got} vectors for {len(batch)} texts")
            return [_validate_vector(vec, position=offset + i) for i, vec in enumerate(raw)]

        tasks = [asyncio.ensure_future(run(i * self._batch_size, batch)) for i, batch in enumerate(batches)]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            # First failure ends the run; stop the batches still in flight.
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        vectors = [vec for batch in results for vec in batch]

        dims = {len(v) for v in vectors}
        if len(dims) > 1:
            raise EmbeddingError(f"Embedding dimensions disagree across batch: {sorted(dims)}")

        logger.info("[EMBED] %d text(s) in %d batch(es) embedded in %.1fms.", len(texts), len(batches), (time.perf_counter() - t_start) * 1000)
        return vectors


    async def _call(self, awaitable: Any) -> Any:
        if self._timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise EmbeddingError(f"Embedding service timed out after {self._timeout:.1f}s") from exc


def _validate_vector(raw: Any, position: int) -> Vector:
    if not isinstance(raw, (list, tuple)) or not raw:
        raise EmbeddingError(f"Empty or malformed embedding at position {position}")
    try:
        vector = [float(v) for v in raw]
    except (TypeError, ValueError) as exc:
        raise EmbeddingError(f"Non-numeric embedding at position {position}") from exc
    if not all(math.isfinite(v) for v in vector):
        raise EmbeddingError(f"Non-finite embedding at position {position}")
    return vector
