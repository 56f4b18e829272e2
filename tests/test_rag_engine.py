from datetime import datetime

import pytest

from scholar.config.prompt_templates import NO_CONTEXT_SENTINEL
from scholar.src.core.errors import QueryFailedError, ValidationError
from scholar.src.core.generator import AnswerGenerator
from scholar.src.core.models import Chunk, ChunkMetadata
from scholar.src.core.rag_engine import RAGManager

from conftest import FakeChatModel

PAD = " This passage carries enough words to clear the minimum chunk length."


def _chunk(text: str, paper_id: str, title: str, authors=("Vaswani",), page: int | None = 1) -> Chunk:
    meta = ChunkMetadata(paper_id=paper_id, user_id="u1", file_name=f"{paper_id}.pdf", chunk_index=0, total_chunks=1, timestamp="2026-01-01T00:00:00+00:00", page_number=page, title=title, authors=authors)
    return Chunk(content=text + PAD, metadata=meta)


@pytest.fixture
def rag(document_store, embeddings, retrieval, generator):
    return RAGManager(document_store, embeddings, retrieval, generator, top_k=5)


async def _index(retrieval, embedder, index_id: str, *chunks: Chunk) -> None:
    await retrieval.add_documents(index_id, list(chunks), [embedder.vector_for(c.content) for c in chunks])


async def test_answers_from_private_and_public_stores(rag, retrieval, embedder, chat_model, document_store):
    await _index(retrieval, embedder, "user-u1-private", _chunk("Self-attention attention attention weighs tokens.", "paper_mine", "My Notes", page=4))
    await _index(retrieval, embedder, "public-research", _chunk("The transformer relies on attention.", "paper_pub", "Attention Is All You Need", authors=("Vaswani", "Shazeer")))
    await _index(retrieval, embedder, "user-u2-private", _chunk("Attention attention attention attention.", "paper_other", "Someone Else"))

    result = await rag.answer_query("u1", "What is attention?", "all")

    assert result.answer == chat_model.answer
    assert result.query == "What is attention?"
    assert result.scope == "all"
    assert result.max_results == 5
    assert datetime.fromisoformat(result.timestamp)
    assert [s.paper_id for s in result.sources] == ["paper_mine", "paper_pub"]
    assert result.sources[0].page_number == 4
    assert result.sources[0].score >= result.sources[1].score

    prompt = chat_model.calls[0][1].content
    assert "[1] Self-attention" in prompt
    assert "Source: My Notes by Vaswani (Page 4)" in prompt
    assert "Source: Attention Is All You Need by Vaswani, Shazeer" in prompt
    assert "Someone Else" not in prompt

    (conversation,) = document_store.collections["conversations"].values()
    assert conversation["userId"] == "u1"
    assert conversation["scope"] == "all"
    assert conversation["answer"] == result.answer
    assert [s["paperId"] for s in conversation["sources"]] == ["paper_mine", "paper_pub"]


async def test_private_scope_ignores_public_store(rag, retrieval, embedder):
    await _index(retrieval, embedder, "public-research", _chunk("The transformer relies on attention.", "paper_pub", "Public"))

    result = await rag.answer_query("u1", "attention?", "private")

    assert result.sources == []


async def test_empty_retrieval_still_answers_with_sentinel(rag, chat_model, document_store):
    result = await rag.answer_query("u1", "What is a protein fold?", "public")

    assert result.sources == []
    assert NO_CONTEXT_SENTINEL in chat_model.calls[0][1].content
    assert len(document_store.collections["conversations"]) == 1


async def test_top_k_bounds_sources(document_store, embeddings, retrieval, embedder, generator):
    chunks = [_chunk(f"Attention variant {i} with attention.", f"paper_{i}", f"Paper {i}") for i in range(8)]
    await _index(retrieval, embedder, "public-research", *chunks)

    result = await RAGManager(document_store, embeddings, retrieval, generator, top_k=3).answer_query("u1", "attention", "public")

    assert len(result.sources) == 3
    assert result.max_results == 3


@pytest.mark.parametrize("user_id, query, scope", [("u1", "", "all"), ("u1", "   ", "all"), ("", "q", "all"), ("u1", "q", "galaxy")])
async def test_validation_happens_before_any_call(rag, embedder, chat_model, document_store, user_id, query, scope):
    with pytest.raises(ValidationError):
        await rag.answer_query(user_id, query, scope)
    assert embedder.query_calls == []
    assert chat_model.calls == []
    assert document_store.collections == {}


async def test_embedding_failure_is_opaque(rag, embedder, document_store):
    embedder.fail = True

    with pytest.raises(QueryFailedError) as info:
        await rag.answer_query("u1", "attention?", "all")

    assert str(info.value) == "Failed to process RAG query"
    assert info.value.__cause__ is None
    assert document_store.collections == {}


async def test_retrieval_failure_returns_no_partial_answer(rag, retrieval, embedder, chat_model, document_store):
    await _index(retrieval, embedder, "user-u1-private", _chunk("attention", "paper_mine", "Mine"))
    # A row with the wrong dimension makes the public store fail.
    await retrieval.add_documents("public-research", [_chunk("bad", "paper_bad", "Bad")], [[1.0, 0.0]])

    with pytest.raises(QueryFailedError):
        await rag.answer_query("u1", "attention?", "all")

    assert chat_model.calls == []
    assert "conversations" not in document_store.collections


async def test_generation_failure_persists_nothing(document_store, embeddings, retrieval):
    rag = RAGManager(document_store, embeddings, retrieval, AnswerGenerator(FakeChatModel(fail=True)))

    with pytest.raises(QueryFailedError):
        await rag.answer_query("u1", "attention?", "all")

    assert "conversations" not in document_store.collections


async def test_persistence_failure_is_opaque(rag, document_store):
    document_store.fail_sets = True
    with pytest.raises(QueryFailedError):
        await rag.answer_query("u1", "attention?", "public")


async def test_history_is_newest_first_and_scoped_to_user(rag, document_store):
    for query in ("first attention", "second attention"):
        await rag.answer_query("u1", query, "public")
    await rag.answer_query("u2", "someone else", "public")

    history = await rag.get_conversation_history("u1")

    assert [c.query for c in history] == ["second attention", "first attention"]
    assert all(c.user_id == "u1" for c in history)
    assert len(await rag.get_conversation_history("u1", limit=1)) == 1


async def test_history_failure_is_opaque(rag, document_store):
    document_store.fail_queries = True
    with pytest.raises(QueryFailedError, match="conversation history"):
        await rag.get_conversation_history("u1")
