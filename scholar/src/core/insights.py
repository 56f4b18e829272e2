"""
Scholar - Library Insights
===========================
Owner-scoped aggregate views over a user's paper documents: author
profiles, the authors in a library, author search and overall research
statistics.

Everything here is a read.  Each operation runs one ``DocumentStore.query``
filtered on ``ownerUid`` and aggregates in process, so counts reflect the
paper documents exactly as ingestion left them.

Usage:
    insights = InsightService(document_store)
    profile  = await insights.get_author_profile("user_123", "Ashish Vaswani")
    stats    = await insights.get_research_stats("user_123")
"""

from __future__ import annotations

import time
from datetime import datetime, timezone

from scholar.config.settings import settings
from scholar.src.core.errors import ValidationError
from scholar.src.core.models import (
    AuthorProfile,
    AuthorStatistics,
    AuthorSummary,
    LibraryAuthors,
    LibraryContent,
    LibraryOverview,
    MonthlyCount,
    Paper,
    PaperActivity,
    PaperStatus,
    ResearchStats,
)
from scholar.src.database.document_store import DocumentStore
from scholar.src.utils.logger import get_logger

logger = get_logger(__name__)

_RECENT_PAPERS = 5
_MAX_SEARCH_LIMIT = 50
_TREND_MONTHS = 6


class InsightService:
    """
    Parameters
    ----------
    document_store
        Holds the paper documents.
    collection
        Paper collection name.  Defaults to ``settings.PAPERS_COLLECTION``.
    """

    __slots__ = ("_store", "_collection")

    def __init__(self, document_store: DocumentStore, collection: str | None = None) -> None:
        self._store = document_store
        self._collection = collection or settings.PAPERS_COLLECTION


    # ══════════════════════════════════════════════════════════════════
    #  AUTHORS
    # ══════════════════════════════════════════════════════════════════

    async def get_author_profile(self, user_id: str, author_name: str) -> AuthorProfile:
        """
        Statistics, co-authors and the five newest papers of one author.

        Only the caller's papers are considered; an author with no papers
        yields a profile of zeros rather than an error.
        """
        if not author_name:
            raise ValidationError("Author name is required")

        papers = await self._papers(user_id, authors=author_name, newest_first=True)

        total_words = sum(p.extracted_text_length or 0 for p in papers)
        co_authors = _unique(a for p in papers for a in p.authors if a != author_name)
        recent = papers[:_RECENT_PAPERS]

        statistics = AuthorStatistics(
            total_papers=len(papers),
            completed_papers=sum(1 for p in papers if p.status == PaperStatus.COMPLETED.value),
            total_words=total_words,
            avg_words_per_paper=_mean(total_words, len(papers)),
            co_author_count=len(co_authors),
        )
        activity = [PaperActivity(paper_id=p.paper_id, title=p.title, status=p.status, created_at=p.created_at) for p in recent]
        return AuthorProfile(author_name=author_name, statistics=statistics, papers=recent, co_authors=co_authors, recent_activity=activity)


    async def get_user_authors(self, user_id: str) -> list[AuthorSummary]:
        """Every author across the user's completed papers, most papers first."""
        papers = await self._papers(user_id, status=PaperStatus.COMPLETED.value)
        return sorted(_tally_authors(papers), key=lambda a: a.paper_count, reverse=True)


    async def search_authors(self, user_id: str, query: str, limit: int = 10) -> list[AuthorSummary]:
        """
        Authors of completed papers whose name contains *query*.

        Matching is case-insensitive.  Names that start with the query
        rank ahead of names that merely contain it; within each group the
        author with more papers comes first.
        """
        if not query:
            raise ValidationError("Search query is required")
        if not 1 <= limit <= _MAX_SEARCH_LIMIT:
            raise ValidationError(f"limit must be between 1 and {_MAX_SEARCH_LIMIT}")

        needle = query.lower()
        papers = await self._papers(user_id, status=PaperStatus.COMPLETED.value)
        matches = _tally_authors(papers, keep=lambda name: needle in name.lower())
        matches.sort(key=lambda a: (a.name.lower().startswith(needle), a.paper_count), reverse=True)
        return matches[:limit]


    # ══════════════════════════════════════════════════════════════════
    #  LIBRARY STATISTICS
    # ══════════════════════════════════════════════════════════════════

    async def get_research_stats(self, user_id: str, now: datetime | None = None) -> ResearchStats:
        """
        Status counts, content totals, unique authors and monthly uploads.

        ``papers_by_month`` covers papers created in the last six months,
        keyed ``YYYY-MM`` (UTC) in ascending order.
        """
        t_start = time.perf_counter()
        papers = await self._papers(user_id)
        total = len(papers)

        by_status = {status.value: 0 for status in PaperStatus}
        for paper in papers:
            by_status[paper.status] = by_status.get(paper.status, 0) + 1
        completed = by_status[PaperStatus.COMPLETED.value]

        total_words = sum(p.extracted_text_length or 0 for p in papers)
        total_chunks = sum(p.text_chunks or 0 for p in papers)
        authors = _unique(a for p in papers for a in p.authors)

        cutoff = _months_before(_as_utc(now or datetime.now(timezone.utc)), _TREND_MONTHS)
        months: dict[str, int] = {}
        for paper in papers:
            created = _as_utc(paper.created_at)
            if created >= cutoff:
                key = created.strftime("%Y-%m")
                months[key] = months.get(key, 0) + 1

        stats = ResearchStats(
            overview=LibraryOverview(
                total_papers=total,
                completed_papers=completed,
                processing_papers=by_status[PaperStatus.PROCESSING.value],
                error_papers=by_status[PaperStatus.ERROR.value],
                completion_rate=completed / total * 100 if total else 0.0,
            ),
            content=LibraryContent(total_words=total_words, total_chunks=total_chunks, avg_words_per_paper=_mean(total_words, total), avg_chunks_per_paper=_mean(total_chunks, total)),
            authors=LibraryAuthors(unique_authors=len(authors), author_list=authors),
            papers_by_month=[MonthlyCount(month=m, count=c) for m, c in sorted(months.items())],
        )
        logger.debug("[INSIGHTS] Stats for user %s over %d paper(s) in %.1fms.", user_id, total, (time.perf_counter() - t_start) * 1000)
        return stats


    async def _papers(self, user_id: str, newest_first: bool = False, **filters: str) -> list[Paper]:
        if not user_id:
            raise ValidationError("User id is required")
        order_by = ("createdAt", "desc") if newest_first else None
        docs = await self._store.query(self._collection, filters={"ownerUid": user_id, **filters}, order_by=order_by)
        return [Paper.model_validate(doc) for doc in docs]


def _tally_authors(papers: list[Paper], keep=None) -> list[AuthorSummary]:
    """Group paper ids by author name, in first-seen order."""
    tally: dict[str, list[str]] = {}
    for paper in papers:
        for author in paper.authors:
            if keep is None or keep(author):
                tally.setdefault(author, []).append(paper.paper_id)
    return [AuthorSummary(name=name, paper_count=len(ids), papers=ids) for name, ids in tally.items()]


def _unique(names) -> list[str]:
    return list(dict.fromkeys(names))


def _mean(total: int, count: int) -> int:
    # Halves round up.
    return int(total / count + 0.5) if count else 0


def _as_utc(moment: datetime) -> datetime:
    # Mongo hands back naive datetimes that are already UTC.
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _months_before(moment: datetime, months: int) -> datetime:
    """Same day and time *months* calendar months earlier, clamped to month end."""
    index = moment.year * 12 + moment.month - 1 - months
    year, month = divmod(index, 12)
    month += 1
    next_month = datetime(year + month // 12, month % 12 + 1, 1, tzinfo=moment.tzinfo)
    last_day = (next_month - datetime(year, month, 1, tzinfo=moment.tzinfo)).days
    return moment.replace(year=year, month=month, day=min(moment.day, last_day))
