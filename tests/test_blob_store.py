from urllib.parse import parse_qs, urlsplit

import pytest

from scholar.src.core.errors import ValidationError


async def test_upload_then_download(blob_store):
    confirmation = await blob_store.upload("papers/u1/paper_1/a.pdf", b"%PDF-1.7 body", "application/pdf")

    assert confirmation.size == len(b"%PDF-1.7 body")
    assert await blob_store.download("papers/u1/paper_1/a.pdf") == b"%PDF-1.7 body"


async def test_download_missing_raises(blob_store):
    with pytest.raises(FileNotFoundError):
        await blob_store.download("papers/u1/paper_1/missing.pdf")


@pytest.mark.parametrize("path", ["../escape.pdf", "papers/../../escape.pdf", "/etc/passwd", ""])
async def test_traversal_rejected(blob_store, path):
    with pytest.raises(ValidationError):
        await blob_store.upload(path, b"x", "application/pdf")


def test_signed_url_verifies_until_expiry(blob_store):
    url = blob_store.signed_upload_url("papers/u1/paper_1/a b.pdf", "application/pdf", ttl=900, now=1_000)

    parts = urlsplit(url)
    assert parts.path.endswith("/papers/u1/paper_1/a%20b.pdf")
    query = {k: v[0] for k, v in parse_qs(parts.query).items()}
    assert query["expires"] == "1900"

    assert blob_store.verify_signature("papers/u1/paper_1/a b.pdf", "application/pdf", 1900, query["signature"], now=1_500)
    assert not blob_store.verify_signature("papers/u1/paper_1/a b.pdf", "application/pdf", 1900, query["signature"], now=2_000)
    assert not blob_store.verify_signature("papers/u1/paper_1/a b.pdf", "text/plain", 1900, query["signature"], now=1_500)
