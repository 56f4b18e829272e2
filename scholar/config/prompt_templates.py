"""
Scholar - Prompt Templates
===========================
Centralised prompt management for the RAG engine.  All prompts live here
so they can be versioned, reviewed, and A/B-tested independently of
application logic.

Exports
-------
SYSTEM_PROMPT, RAG_PROMPT_TEMPLATE, NO_CONTEXT_SENTINEL.
"""

# ══════════════════════════════════════════════════════════════════════
#  NO-CONTEXT SENTINEL
# ══════════════════════════════════════════════════════════════════════
# Passed to the generator verbatim when retrieval finds nothing.  It is a
# valid context, not an error.

NO_CONTEXT_SENTINEL: str = "No relevant documents found in the knowledge base."


# ══════════════════════════════════════════════════════════════════════
#  SYSTEM PROMPT
# ══════════════════════════════════════════════════════════════════════

SYSTEM_PROMPT: str = """You are a research assistant helping with academic queries.
You answer strictly from the numbered research-paper passages you are given
and never from outside knowledge."""


# ══════════════════════════════════════════════════════════════════════
#  RAG PROMPT TEMPLATE
# ══════════════════════════════════════════════════════════════════════

RAG_PROMPT_TEMPLATE: str = """Based on the following context from research papers, please answer the user's question.
Provide a well-structured response that synthesizes information from the sources.

User Question: {question}

Context from research papers:
{context}

Instructions:
- Answer the question using ONLY the provided context
- Cite the sources using [1], [2], etc., matching the numbers in the context
- If the context doesn't contain enough information to answer the question, say so explicitly
- Provide a clear, academic-style response
- Be concise

Answer:"""
