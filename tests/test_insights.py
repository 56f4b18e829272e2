from datetime import datetime, timedelta, timezone

import pytest

from scholar.src.core.errors import ValidationError
from scholar.src.core.insights import InsightService, _months_before
from scholar.src.core.models import Paper

NOW = datetime(2026, 8, 31, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def insights(document_store) -> InsightService:
    return InsightService(document_store)


def _put(store, paper_id, owner="u1", authors=(), status="completed", created=NOW, words=None, chunks=None):
    paper = Paper(paper_id=paper_id, owner_uid=owner, title=paper_id.title(), authors=list(authors), storage_path=f"papers/{owner}/{paper_id}/{paper_id}.pdf", status=status, created_at=created, updated_at=created, extracted_text_length=words, text_chunks=chunks)
    store.collections.setdefault("papers", {})[paper_id] = paper.to_document()


class TestAuthorProfile:
    async def test_statistics_and_co_authors(self, insights, document_store):
        _put(document_store, "attention", authors=["Vaswani", "Shazeer"], words=1000, created=NOW)
        _put(document_store, "moe", authors=["Shazeer", "Hinton"], status="processing", words=501, created=NOW - timedelta(days=1))
        _put(document_store, "capsules", authors=["Hinton"], words=9999)
        _put(document_store, "foreign", owner="u2", authors=["Shazeer"])

        profile = await insights.get_author_profile("u1", "Shazeer")

        assert profile.statistics.total_papers == 2
        assert profile.statistics.completed_papers == 1
        assert profile.statistics.total_words == 1501
        assert profile.statistics.avg_words_per_paper == 751
        assert profile.co_authors == ["Vaswani", "Hinton"]
        assert profile.statistics.co_author_count == 2
        assert [p.paper_id for p in profile.papers] == ["attention", "moe"]
        assert [a.status for a in profile.recent_activity] == ["completed", "processing"]

    async def test_keeps_five_newest_papers(self, insights, document_store):
        for i in range(7):
            _put(document_store, f"p{i}", authors=["Ada"], created=NOW - timedelta(days=i))

        profile = await insights.get_author_profile("u1", "Ada")

        assert profile.statistics.total_papers == 7
        assert [p.paper_id for p in profile.papers] == ["p0", "p1", "p2", "p3", "p4"]

    async def test_unknown_author_is_all_zeros(self, insights):
        profile = await insights.get_author_profile("u1", "Nobody")
        assert profile.statistics.total_papers == 0
        assert profile.statistics.avg_words_per_paper == 0
        assert profile.papers == []

    async def test_requires_name(self, insights):
        with pytest.raises(ValidationError):
            await insights.get_author_profile("u1", "")


class TestUserAuthors:
    async def test_ranked_by_completed_paper_count(self, insights, document_store):
        _put(document_store, "a", authors=["Kipf", "Welling"])
        _put(document_store, "b", authors=["Welling"])
        _put(document_store, "c", authors=["Welling", "Kingma"], status="error")
        _put(document_store, "d", owner="u2", authors=["Kipf"])

        authors = await insights.get_user_authors("u1")

        assert [(a.name, a.paper_count) for a in authors] == [("Welling", 2), ("Kipf", 1)]
        assert authors[0].papers == ["a", "b"]


class TestSearchAuthors:
    async def test_prefix_matches_rank_first(self, insights, document_store):
        _put(document_store, "a", authors=["Anna Bell", "Bell Hooks"])
        _put(document_store, "b", authors=["Anna Bell"])
        _put(document_store, "c", authors=["Bella Ciao"])

        found = await insights.search_authors("u1", "BELL")

        assert [a.name for a in found] == ["Bell Hooks", "Bella Ciao", "Anna Bell"]

    async def test_limit_and_skips_unfinished_papers(self, insights, document_store):
        _put(document_store, "a", authors=["Lee", "Leeson", "Ashlee"])
        _put(document_store, "b", authors=["Leena"], status="processing")

        found = await insights.search_authors("u1", "lee", limit=2)

        assert [a.name for a in found] == ["Lee", "Leeson"]

    @pytest.mark.parametrize("query, limit", [("", 10), ("x", 0), ("x", 51)])
    async def test_rejects_bad_input(self, insights, query, limit):
        with pytest.raises(ValidationError):
            await insights.search_authors("u1", query, limit=limit)


class TestResearchStats:
    async def test_overview_content_and_authors(self, insights, document_store):
        _put(document_store, "a", authors=["Ada", "Grace"], words=1000, chunks=3)
        _put(document_store, "b", authors=["Ada"], status="processing")
        _put(document_store, "c", authors=["Linus"], status="error")
        _put(document_store, "d", words=2000, chunks=4)
        _put(document_store, "e", owner="u2", authors=["Someone"], words=50000)

        stats = await insights.get_research_stats("u1", now=NOW)

        assert stats.overview.total_papers == 4
        assert (stats.overview.completed_papers, stats.overview.processing_papers, stats.overview.error_papers) == (2, 1, 1)
        assert stats.overview.completion_rate == pytest.approx(50.0)
        assert (stats.content.total_words, stats.content.total_chunks) == (3000, 7)
        assert (stats.content.avg_words_per_paper, stats.content.avg_chunks_per_paper) == (750, 2)
        assert stats.authors.unique_authors == 3
        assert sorted(stats.authors.author_list) == ["Ada", "Grace", "Linus"]

    async def test_papers_by_month_covers_last_six_months(self, insights, document_store):
        _put(document_store, "aug", created=datetime(2026, 8, 2, tzinfo=timezone.utc))
        _put(document_store, "aug2", created=datetime(2026, 8, 30, tzinfo=timezone.utc))
        _put(document_store, "mar", created=datetime(2026, 3, 1, tzinfo=timezone.utc))
        _put(document_store, "feb", created=datetime(2026, 2, 27, tzinfo=timezone.utc))

        stats = await insights.get_research_stats("u1", now=NOW)

        assert [(m.month, m.count) for m in stats.papers_by_month] == [("2026-03", 1), ("2026-08", 2)]

    async def test_empty_library(self, insights):
        stats = await insights.get_research_stats("u1", now=NOW)
        assert stats.overview.total_papers == 0
        assert stats.overview.completion_rate == 0.0
        assert stats.papers_by_month == []


@pytest.mark.parametrize("moment, months, expected", [
    (datetime(2026, 8, 31, tzinfo=timezone.utc), 6, datetime(2026, 2, 28, tzinfo=timezone.utc)),
    (datetime(2026, 3, 15, tzinfo=timezone.utc), 6, datetime(2025, 9, 15, tzinfo=timezone.utc)),
    (datetime(2026, 12, 31, tzinfo=timezone.utc), 6, datetime(2026, 6, 30, tzinfo=timezone.utc)),
])
def test_months_before_clamps_to_month_end(moment, months, expected):
    assert _months_before(moment, months) == expected
