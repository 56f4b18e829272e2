"""
Scholar - Management CLI
=========================
Command-line entry point over the same services the application uses.

Commands:
    ingest   Reserve an upload slot, store a local PDF, run ingestion.
    ask      Answer a question from the indexed papers.
    papers   List a user's papers, or show one with ``--paper``.
    history  Show a user's recorded conversations.
    authors  Rank a user's authors, search them, or profile one.
    stats    Summarise a user's library.
    reset    Drop a user's private data store.

Observability:
    Startup (settings load + client wiring) is timed separately from the
    command itself, and both appear in the closing summary.

Usage:
    python -m scholar.scripts.manage ingest --user u1 ./attention.pdf
    python -m scholar.scripts.manage ask --user u1 --scope all "What is self-attention?"
    python -m scholar.scripts.manage papers --user u1 --status completed
    python -m scholar.scripts.manage papers --user u1 --paper paper_1712345678901_k3j9x0a2b
    python -m scholar.scripts.manage history --user u1 --limit 5
    python -m scholar.scripts.manage authors --user u1 --search vas
    python -m scholar.scripts.manage authors --user u1 --name "Ashish Vaswani"
    python -m scholar.scripts.manage stats --user u1
    python -m scholar.scripts.manage reset --user u1
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import time
from pathlib import Path

# ── Ensure project root is importable when run directly ────────────────
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))


# ── CLI Argument Parsing ───────────────────────────────────────────────

def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="manage", description="Scholar — ingest papers and query them from the command line.")
    sub = parser.add_subparsers(dest="command", required=True)

    ingest = sub.add_parser("ingest", help="Upload a local PDF for a user and ingest it.")
    ingest.add_argument("--user", required=True, help="Owner user id.")
    ingest.add_argument("--authors", default="", help="Comma-separated author list recorded on the paper.")
    ingest.add_argument("file", type=Path, help="Path to the PDF.")

    ask = sub.add_parser("ask", help="Ask a question.")
    ask.add_argument("--user", required=True)
    ask.add_argument("--scope", choices=["private", "public", "all"], default="all")
    ask.add_argument("question")

    papers = sub.add_parser("papers", help="List papers, or show one paper's details.")
    papers.add_argument("--user", required=True)
    papers.add_argument("--paper", default=None, help="Show details for this paper id.")
    papers.add_argument("--status", default="all", choices=["all", "processing", "completed", "error"])
    papers.add_argument("--search", default=None)
    papers.add_argument("--limit", type=int, default=20)
    papers.add_argument("--offset", type=int, default=0)

    history = sub.add_parser("history", help="Show recorded conversations.")
    history.add_argument("--user", required=True)
    history.add_argument("--limit", type=int, default=None)

    authors = sub.add_parser("authors", help="List, search or profile authors.")
    authors.add_argument("--user", required=True)
    authors.add_argument("--name", default=None, help="Show this author's profile.")
    authors.add_argument("--search", default=None, help="Match author names containing this text.")
    authors.add_argument("--limit", type=int, default=10)

    stats = sub.add_parser("stats", help="Summarise a user's library.")
    stats.add_argument("--user", required=True)

    reset = sub.add_parser("reset", help="Drop a user's private data store.")
    reset.add_argument("--user", required=True)

    return parser.parse_args(argv)


# ── Main Orchestration ─────────────────────────────────────────────────

def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    t_start = time.perf_counter()

    # ── 0. Load settings + .env (timed) ────────────────────────────────
    try:
        from scholar.config.settings import settings
    except Exception as exc:
        print("\n[FATAL] Configuration error — check your .env file:\n")
        print(f"  {exc}")
        print()
        sys.exit(1)

    from scholar.src.core.errors import ScholarError
    from scholar.src.core.services import build_services
    from scholar.src.utils.logger import get_logger
    logger = get_logger(__name__)

    _print_header(settings, args.command)

    services = build_services()
    startup_ms = (time.perf_counter() - t_start) * 1000
    logger.info("Startup complete in %.1fms", startup_ms)

    handler = _COMMANDS[args.command]
    try:
        asyncio.run(handler(services, args))
    except ScholarError as exc:
        print(f"\n[ERROR] {exc}\n")
        sys.exit(2)
    finally:
        services.close()

    _print_footer(startup_ms, time.perf_counter() - t_start)


# ── Commands ───────────────────────────────────────────────────────────

async def _ingest(services, args: argparse.Namespace) -> None:
    from scholar.src.core.ingestor import PDF_CONTENT_TYPE

    data = args.file.read_bytes()
    authors = [a.strip() for a in args.authors.split(",") if a.strip()]
    slot = await services.papers.request_upload(args.user, args.file.name, PDF_CONTENT_TYPE, authors=authors)

    await services.blobs.upload(slot.storage_path, data, PDF_CONTENT_TYPE)
    outcome = await services.ingestion.trigger(slot.storage_path, PDF_CONTENT_TYPE)

    print(f"  Paper id     : {slot.paper_id}")
    print(f"  Storage path : {slot.storage_path}")
    print(f"  Status       : {outcome.status}")
    print(f"  Chunks       : {outcome.chunk_count}")
    print(f"  Text length  : {outcome.text_length} chars")
    if outcome.error_message:
        print(f"  Error        : {outcome.error_message}")


async def _ask(services, args: argparse.Namespace) -> None:
    result = await services.rag.answer_query(args.user, args.question, args.scope)

    print(result.answer)
    print()
    print("-" * 60)
    for i, source in enumerate(result.sources, start=1):
        page = f", page {source.page_number}" if source.page_number is not None else ""
        print(f"  [{i}] {source.title}{page}  (score {source.score:.3f})")


async def _papers(services, args: argparse.Namespace) -> None:
    if args.paper:
        details = await services.papers.get_paper_details(args.user, args.paper)
        paper = details.paper
        print(f"  {paper.title}  [{paper.status}]")
        print(f"  Authors      : {', '.join(paper.authors) or 'Unknown'}")
        print(f"  Chunks       : {details.metadata.chunk_count}")
        print(f"  Text length  : {details.metadata.word_count} chars")
        print(f"  Processing   : {details.metadata.processing_time:.1f}ms")
        if paper.error_message:
            print(f"  Error        : {paper.error_message}")
        for related in details.related_papers:
            print(f"    related → {related.paper_id}  {related.title}")
        return

    papers = await services.papers.list_papers(args.user, status=args.status, search=args.search, limit=args.limit, offset=args.offset)
    for paper in papers:
        print(f"  {paper.paper_id}  {paper.status:<10}  {paper.title}")
    index_id = services.retrieval.private_index_id(args.user)
    print(f"\n  {len(papers)} paper(s); {services.retrieval.count(index_id)} row(s) in '{index_id}'.")


async def _history(services, args: argparse.Namespace) -> None:
    conversations = await services.rag.get_conversation_history(args.user, limit=args.limit)
    for conv in conversations:
        print(f"  {conv.timestamp:%Y-%m-%d %H:%M}  [{conv.scope}]  {conv.query}")
        print(f"      {conv.answer[:120]}")


async def _authors(services, args: argparse.Namespace) -> None:
    if args.name:
        profile = await services.insights.get_author_profile(args.user, args.name)
        stats = profile.statistics
        print(f"  {profile.author_name}")
        print(f"  Papers       : {stats.total_papers} ({stats.completed_papers} completed)")
        print(f"  Words        : {stats.total_words} total, {stats.avg_words_per_paper} per paper")
        print(f"  Co-authors   : {', '.join(profile.co_authors) or '-'}")
        for item in profile.recent_activity:
            print(f"    {item.created_at:%Y-%m-%d}  {item.status:<10}  {item.title}")
        return

    if args.search:
        found = await services.insights.search_authors(args.user, args.search, limit=args.limit)
    else:
        found = (await services.insights.get_user_authors(args.user))[: args.limit]
    for author in found:
        print(f"  {author.paper_count:>3}  {author.name}")


async def _stats(services, args: argparse.Namespace) -> None:
    stats = await services.insights.get_research_stats(args.user)
    overview, content = stats.overview, stats.content
    print(f"  Papers       : {overview.total_papers} ({overview.completed_papers} completed, {overview.processing_papers} processing, {overview.error_papers} error)")
    print(f"  Completion   : {overview.completion_rate:.1f}%")
    print(f"  Words        : {content.total_words} total, {content.avg_words_per_paper} per paper")
    print(f"  Chunks       : {content.total_chunks} total, {content.avg_chunks_per_paper} per paper")
    print(f"  Authors      : {stats.authors.unique_authors}")
    for month in stats.papers_by_month:
        print(f"    {month.month}  {month.count}")


async def _reset(services, args: argparse.Namespace) -> None:
    services.retrieval.drop_index(services.retrieval.private_index_id(args.user))


_COMMANDS = {"ingest": _ingest, "ask": _ask, "papers": _papers, "history": _history, "authors": _authors, "stats": _stats, "reset": _reset}


# ── Pretty-print helpers ──────────────────────────────────────────────

def _print_header(settings: object, command: str) -> None:
    api_key_val = settings.GOOGLE_API_KEY.get_secret_value()  # type: ignore[attr-defined]
    masked = f"****{api_key_val[-4:]}" if len(api_key_val) > 4 else "****"

    mongo_uri_val = settings.MONGO_URI.get_secret_value()  # type: ignore[attr-defined]
    mongo_masked = mongo_uri_val.split("@")[-1] if "@" in mongo_uri_val else mongo_uri_val

    print()
    print("=" * 60)
    print(f"  SCHOLAR — {command}")
    print("=" * 60)
    print(f"  Environment  : {settings.ENV}")                   # type: ignore[attr-defined]
    print(f"  Embedding    : {settings.EMBEDDING_MODEL}")       # type: ignore[attr-defined]
    print(f"  LLM          : {settings.LLM_MODEL}")             # type: ignore[attr-defined]
    print(f"  LanceDB path : {settings.LANCEDB_PATH}")          # type: ignore[attr-defined]
    print(f"  MongoDB      : {mongo_masked} (db: {settings.MONGO_DB_NAME})")  # type: ignore[attr-defined]
    print(f"  API Key      : {masked}")
    print("=" * 60)
    print()


def _print_footer(startup_ms: float, elapsed: float) -> None:
    print()
    print("=" * 60)
    print(f"  Startup time : {startup_ms:>8.1f}ms")
    print(f"  Command time : {elapsed - startup_ms / 1000:>8.2f}s")
    print(f"  Total elapsed: {elapsed:>8.2f}s")
    print("=" * 60)
    print()


# ── Entry point ────────────────────────────────────────────────────────

if __name__ == "__main__":
    main()
