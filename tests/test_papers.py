from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlsplit

import pytest

from scholar.src.core.errors import PaperAccessError, PaperNotFoundError, ValidationError
from scholar.src.core.models import Paper
from scholar.src.core.papers import PaperService
from scholar.src.utils.text_utils import parse_storage_path

BASE = datetime(2026, 3, 1, tzinfo=timezone.utc)


@pytest.fixture
def service(document_store, blob_store) -> PaperService:
    return PaperService(document_store, blob_store)


def _put(store, paper_id, owner="u1", title="Paper", authors=(), status="completed", age_days=0, **extra):
    created = BASE - timedelta(days=age_days)
    paper = Paper(paper_id=paper_id, owner_uid=owner, title=title, authors=list(authors), storage_path=f"papers/{owner}/{paper_id}/{title}.pdf", status=status, created_at=created, updated_at=created, **extra)
    store.collections.setdefault("papers", {})[paper_id] = paper.to_document()


class TestRequestUpload:
    async def test_creates_processing_paper_and_signed_url(self, service, document_store, blob_store):
        slot = await service.request_upload("u1", "attention.pdf", "application/pdf", authors=["Vaswani"])

        parsed = parse_storage_path(slot.storage_path, "papers")
        assert parsed.user_id == "u1"
        assert parsed.paper_id == slot.paper_id
        assert parsed.file_name == "attention.pdf"

        doc = document_store.collections["papers"][slot.paper_id]
        assert doc["status"] == "processing"
        assert doc["title"] == "attention"
        assert doc["authors"] == ["Vaswani"]
        assert doc["ownerUid"] == "u1"

        query = {k: v[0] for k, v in parse_qs(urlsplit(slot.upload_url).query).items()}
        assert blob_store.verify_signature(slot.storage_path, "application/pdf", int(query["expires"]), query["signature"])

    async def test_ids_are_unique(self, service):
        slots = [await service.request_upload("u1", "a.pdf", "application/pdf") for _ in range(20)]
        assert len({s.paper_id for s in slots}) == 20

    @pytest.mark.parametrize("user_id, file_name, content_type", [("", "a.pdf", "application/pdf"), ("u1", "", "application/pdf"), ("u1", "dir/a.pdf", "application/pdf"), ("u1", "a.pdf", "")])
    async def test_rejects_bad_input(self, service, document_store, user_id, file_name, content_type):
        with pytest.raises(ValidationError):
            await service.request_upload(user_id, file_name, content_type)
        assert document_store.collections == {}


class TestGetPaper:
    async def test_owner_reads_paper(self, service, document_store):
        _put(document_store, "paper_1", title="Attention")
        paper = await service.get_paper("u1", "paper_1")
        assert paper.title == "Attention"

    async def test_missing(self, service):
        with pytest.raises(PaperNotFoundError):
            await service.get_paper("u1", "nope")

    async def test_other_owner(self, service, document_store):
        _put(document_store, "paper_1", owner="u2")
        with pytest.raises(PaperAccessError):
            await service.get_paper("u1", "paper_1")


class TestListPapers:
    async def test_newest_first_and_owner_only(self, service, document_store):
        _put(document_store, "old", age_days=3)
        _put(document_store, "new", age_days=0)
        _put(document_store, "mid", age_days=1)
        _put(document_store, "foreign", owner="u2")

        papers = await service.list_papers("u1")

        assert [p.paper_id for p in papers] == ["new", "mid", "old"]

    async def test_status_filter(self, service, document_store):
        _put(document_store, "done", status="completed")
        _put(document_store, "busy", status="processing", age_days=1)

        assert [p.paper_id for p in await service.list_papers("u1", status="processing")] == ["busy"]
        assert len(await service.list_papers("u1", status="all")) == 2

    async def test_search_title_and_authors(self, service, document_store):
        _put(document_store, "a", title="Attention Is All You Need", authors=["Vaswani"])
        _put(document_store, "b", title="Graph Networks", authors=["Battaglia"], age_days=1)

        assert [p.paper_id for p in await service.list_papers("u1", search="ATTENTION")] == ["a"]
        assert [p.paper_id for p in await service.list_papers("u1", search="battag")] == ["b"]

    async def test_paging(self, service, document_store):
        for i in range(5):
            _put(document_store, f"p{i}", age_days=i)
        assert [p.paper_id for p in await service.list_papers("u1", limit=2, offset=2)] == ["p2", "p3"]

    @pytest.mark.parametrize("kwargs", [{"limit": 0}, {"limit": 101}, {"offset": -1}, {"status": "archived"}])
    async def test_rejects_bad_paging(self, service, kwargs):
        with pytest.raises(ValidationError):
            await service.list_papers("u1", **kwargs)


class TestPaperDetails:
    async def test_metrics_and_related_papers(self, service, document_store):
        _put(document_store, "main", authors=["Ada", "Grace"], extracted_text_length=12000, text_chunks=15, processing_time=850.5)
        _put(document_store, "same-ada", authors=["Ada"], age_days=1)
        _put(document_store, "both", authors=["Grace", "Ada"], age_days=2)
        _put(document_store, "unrelated", authors=["Linus"], age_days=3)
        _put(document_store, "foreign-ada", owner="u2", authors=["Ada"])

        details = await service.get_paper_details("u1", "main")

        assert details.paper.paper_id == "main"
        assert details.metadata.word_count == 12000
        assert details.metadata.chunk_count == 15
        assert details.metadata.processing_time == 850.5
        related = [p.paper_id for p in details.related_papers]
        assert sorted(related) == ["both", "same-ada"]

    async def test_no_authors_no_related(self, service, document_store):
        _put(document_store, "solo")
        details = await service.get_paper_details("u1", "solo")
        assert details.related_papers == []
        assert details.metadata.chunk_count == 0

    async def test_related_capped_at_ten(self, service, document_store):
        _put(document_store, "main", authors=["A", "B", "C"])
        for author in "ABC":
            for i in range(5):
                _put(document_store, f"{author}{i}", authors=[author], age_days=i + 1)

        details = await service.get_paper_details("u1", "main")

        assert len(details.related_papers) == 10
        assert "main" not in {p.paper_id for p in details.related_papers}
