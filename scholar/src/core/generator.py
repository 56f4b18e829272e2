"""
Scholar - Answer Generator
===========================
Wraps a LangChain chat model (``ChatGoogleGenerativeAI`` in production)
behind ``generate(query, context) -> answer``.

The prompt embeds the question and the numbered context verbatim and
instructs the model to cite with bracketed numbers, admit when the
context is insufficient, and stay concise.  Sampling parameters (low
temperature, bounded output) are fixed when the chat model is built,
see ``scholar.src.core.services.build_chat_model``.

Usage:
    generator = AnswerGenerator(llm)
    answer = await generator.generate("what is attention?", context)
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Protocol, runtime_checkable

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from scholar.config.prompt_templates import RAG_PROMPT_TEMPLATE, SYSTEM_PROMPT
from scholar.src.core.errors import GenerationError
from scholar.src.utils.logger import get_logger

logger = get_logger(__name__)


@runtime_checkable
class ChatModel(Protocol):
    """Anything with LangChain's async ``ainvoke(messages)``."""

    async def ainvoke(self, input: list[BaseMessage], **kwargs: Any) -> Any: ...


class AnswerGenerator:
    """
    Prompt construction + one upstream generation call.

    Parameters
    ----------
    llm
        An initialised chat model satisfying ``ChatModel``.
    timeout
        Deadline in seconds for the upstream call; ``None`` disables it.
    """

    __slots__ = ("_llm", "_timeout")

    def __init__(self, llm: ChatModel, timeout: float | None = None) -> None:
        self._llm = llm
        self._timeout = timeout


    @staticmethod
    def build_prompt(query: str, context: str) -> str:
        return RAG_PROMPT_TEMPLATE.format(question=query, context=context)


    async def generate(self, query: str, context: str) -> str:
        """
        Return the model's raw answer text.

        Raises
        ------
        GenerationError
            On upstream failure, timeout, or an empty / malformed reply.
            No answer is ever fabricated locally.
        """
        messages = [SystemMessage(content=SYSTEM_PROMPT), HumanMessage(content=self.build_prompt(query, context))]

        t_llm = time.perf_counter()
        try:
            if self._timeout is None:
                response = await self._llm.ainvoke(messages)
            else:
                response = await asyncio.wait_for(self._llm.ainvoke(messages), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise GenerationError(f"Generation service timed out after {self._timeout:.1f}s") from exc
        except Exception as exc:
            raise GenerationError(f"Generation service failed: {exc}") from exc

        answer = _response_text(response)
        if not answer.strip():
            raise GenerationError("Generation service returned an empty answer")

        logger.info("[LLM] Answer generated in %.1fms (%d chars).", (time.perf_counter() - t_llm) * 1000, len(answer))
        return answer


def _response_text(response: Any) -> str:
    """Pull plain text out of an ``AIMessage`` whose content is a str or a list of parts."""
    content = getattr(response, "content", None)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(str(part.get("text", "")))
        return "".join(parts)
    raise GenerationError(f"Malformed generation response: {type(response).__name__}")
