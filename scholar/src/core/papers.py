"""
Scholar - Paper Service
========================
Upload-slot creation and owner-scoped paper reads.

``request_upload`` is where a paper's life begins: it reserves a fresh
paper id, signs an upload URL for ``{root}/{userId}/{paperId}/{fileName}``
and creates the paper document in ``processing``.  From then on only the
ingestion pipeline mutates the paper.
"""

from __future__ import annotations

from datetime import datetime, timezone

from scholar.config.settings import settings
from scholar.src.core.errors import PaperAccessError, PaperNotFoundError, ValidationError
from scholar.src.core.models import Paper, PaperDetails, PaperMetrics, PaperStatus, UploadSlot
from scholar.src.database.blob_store import BlobStore
from scholar.src.database.document_store import DocumentStore
from scholar.src.utils.logger import get_logger
from scholar.src.utils.text_utils import build_storage_path, generate_paper_id, title_from_file_name

logger = get_logger(__name__)

_MAX_LIST_LIMIT = 100
_RELATED_AUTHORS = 3
_RELATED_PER_AUTHOR = 5
_RELATED_MAX = 10


class PaperService:
    """
    Parameters
    ----------
    document_store
        Holds the paper documents.
    blob_store
        Signs upload URLs.
    """

    __slots__ = ("_store", "_blobs", "_collection", "_upload_root", "_upload_ttl")

    def __init__(self, document_store: DocumentStore, blob_store: BlobStore, collection: str | None = None, upload_root: str | None = None, upload_ttl: int | None = None) -> None:
        self._store = document_store
        self._blobs = blob_store
        self._collection = collection or settings.PAPERS_COLLECTION
        self._upload_root = upload_root or settings.UPLOAD_ROOT
        self._upload_ttl = upload_ttl or settings.UPLOAD_URL_TTL_SECONDS


    async def request_upload(self, user_id: str, file_name: str, content_type: str, authors: list[str] | None = None) -> UploadSlot:
        """Reserve a paper id, sign an upload URL, and create the paper in ``processing``."""
        if not user_id:
            raise ValidationError("User id is required")
        if not file_name or "/" in file_name or file_name in {".", ".."}:
            raise ValidationError("File name is required and may not contain '/'")
        if not content_type:
            raise ValidationError("Content type is required")

        paper_id = generate_paper_id()
        storage_path = build_storage_path(self._upload_root, user_id, paper_id, file_name)
        upload_url = self._blobs.signed_upload_url(storage_path, content_type, self._upload_ttl)

        now = datetime.now(timezone.utc)
        paper = Paper(paper_id=paper_id, owner_uid=user_id, title=title_from_file_name(file_name), authors=list(authors or []), storage_path=storage_path, status=PaperStatus.PROCESSING, created_at=now, updated_at=now)
        await self._store.set(self._collection, paper_id, paper.to_document())

        logger.info("[PAPER] Upload slot %s reserved for user %s (%s).", paper_id, user_id, file_name)
        return UploadSlot(upload_url=upload_url, paper_id=paper_id, storage_path=storage_path)


    async def get_paper(self, user_id: str, paper_id: str) -> Paper:
        doc = await self._store.get(self._collection, paper_id)
        if doc is None:
            raise PaperNotFoundError("Paper not found")
        paper = Paper.model_validate(doc)
        if paper.owner_uid != user_id:
            raise PaperAccessError("Unauthorized access to paper")
        return paper


    async def list_papers(self, user_id: str, status: str | None = None, search: str | None = None, limit: int = 20, offset: int = 0) -> list[Paper]:
        """
        The user's papers, newest first.

        ``status`` of ``None`` or ``"all"`` disables status filtering.
        ``search`` is applied after paging, as a case-insensitive
        substring match on the title and each author.
        """
        if not 1 <= limit <= _MAX_LIST_LIMIT:
            raise ValidationError(f"limit must be between 1 and {_MAX_LIST_LIMIT}")
        if offset < 0:
            raise ValidationError("offset must be ≥ 0")

        filters: dict[str, str] = {"ownerUid": user_id}
        if status and status != "all":
            try:
                filters["status"] = PaperStatus(status).value
            except ValueError as exc:
                raise ValidationError(f"Unknown status: {status!r}") from exc

        docs = await self._store.query(self._collection, filters=filters, order_by=("createdAt", "desc"), limit=limit, offset=offset)
        papers = [Paper.model_validate(doc) for doc in docs]

        if search:
            needle = search.lower()
            papers = [p for p in papers if needle in p.title.lower() or any(needle in a.lower() for a in p.authors)]
        return papers


    async def get_paper_details(self, user_id: str, paper_id: str) -> PaperDetails:
        """The paper, its ingestion metrics, and papers sharing one of its first three authors."""
        paper = await self.get_paper(user_id, paper_id)
        metrics = PaperMetrics(word_count=paper.extracted_text_length or 0, chunk_count=paper.text_chunks or 0, processing_time=paper.processing_time or 0.0)
        related = await self._related_papers(paper)
        return PaperDetails(paper=paper, related_papers=related, metadata=metrics)


    async def _related_papers(self, paper: Paper) -> list[Paper]:
        seen: set[str] = {paper.paper_id}
        related: list[Paper] = []
        for author in paper.authors[:_RELATED_AUTHORS]:
            docs = await self._store.query(self._collection, filters={"ownerUid": paper.owner_uid, "authors": author}, limit=_RELATED_PER_AUTHOR + 1)
            for doc in docs:
                candidate = Paper.model_validate(doc)
                if candidate.paper_id in seen:
                    continue
                seen.add(candidate.paper_id)
                related.append(candidate)
        return related[:_RELATED_MAX]
