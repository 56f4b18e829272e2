"""
Scholar - Blob Store
=====================
Raw file bytes by storage key, on the local filesystem via ``aiofiles``.

Upload slots are handed out as short-lived URLs signed with HMAC-SHA256
over ``path``, ``content type`` and ``expiry``; whatever receives the
upload checks them with ``verify_signature``.
"""

from __future__ import annotations

import hashlib
import hmac
import time
from pathlib import Path
from typing import Protocol, runtime_checkable
from urllib.parse import quote, urlencode

import aiofiles
import aiofiles.os

from scholar.config.settings import settings
from scholar.src.core.errors import ValidationError
from scholar.src.core.models import BlobConfirmation
from scholar.src.utils.logger import get_logger

logger = get_logger(__name__)


@runtime_checkable
class BlobStore(Protocol):
    async def download(self, path: str) -> bytes: ...

    async def upload(self, path: str, data: bytes, content_type: str) -> BlobConfirmation: ...

    def signed_upload_url(self, path: str, content_type: str, ttl: int) -> str: ...


class LocalBlobStore:
    """
    Filesystem ``BlobStore`` rooted at ``root``.

    Parameters
    ----------
    root
        Base directory.  Defaults to ``settings.BLOB_STORE_DIR``.
    signing_key
        HMAC key for upload URLs.  Defaults to ``settings.UPLOAD_SIGNING_KEY``.
    base_url
        Prefix of generated upload URLs.  Defaults to ``settings.UPLOAD_BASE_URL``.
    """

    __slots__ = ("_root", "_signing_key", "_base_url")

    def __init__(self, root: str | Path | None = None, signing_key: str | None = None, base_url: str | None = None) -> None:
        self._root = Path(root or settings.BLOB_STORE_DIR).resolve()
        self._root.mkdir(parents=True, exist_ok=True)
        self._signing_key = (signing_key or settings.UPLOAD_SIGNING_KEY.get_secret_value()).encode("utf-8")
        self._base_url = (base_url or settings.UPLOAD_BASE_URL).rstrip("/")


    def _resolve(self, path: str) -> Path:
        """Map a storage key to a file under root, rejecting traversal."""
        if not path or ".." in path.split("/") or path.startswith("/") or path.startswith("\\"):
            raise ValidationError(f"Invalid storage key: {path!r}")

        file_path = (self._root / path).resolve()
        if not file_path.is_relative_to(self._root):
            raise ValidationError(f"Path traversal attempt detected: {path!r}")
        return file_path


    async def upload(self, path: str, data: bytes, content_type: str) -> BlobConfirmation:
        file_path = self._resolve(path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        async with aiofiles.open(file_path, "wb") as f:
            await f.write(data)

        logger.info("[BLOB] Stored %s (%d bytes, %s)", path, len(data), content_type)
        return BlobConfirmation(path=path, size=len(data), content_type=content_type)


    async def download(self, path: str) -> bytes:
        file_path = self._resolve(path)
        if not await aiofiles.os.path.exists(file_path):
            raise FileNotFoundError(f"Blob not found: {path}")

        async with aiofiles.open(file_path, "rb") as f:
            return await f.read()


    def signed_upload_url(self, path: str, content_type: str, ttl: int, now: float | None = None) -> str:
        """Return an upload URL for *path* valid for *ttl* seconds."""
        self._resolve(path)
        expires = int(now if now is not None else time.time()) + int(ttl)
        signature = self._sign(path, content_type, expires)
        query = urlencode({"contentType": content_type, "expires": expires, "signature": signature})
        return f"{self._base_url}/{quote(path)}?{query}"


    def verify_signature(self, path: str, content_type: str, expires: int, signature: str, now: float | None = None) -> bool:
        """``True`` if *signature* matches and has not expired."""
        current = now if now is not None else time.time()
        if current > expires:
            return False
        return hmac.compare_digest(self._sign(path, content_type, int(expires)), signature)


    def _sign(self, path: str, content_type: str, expires: int) -> str:
        message = f"{path}\n{content_type}\n{expires}".encode("utf-8")
        return hmac.new(self._signing_key, message, hashlib.sha256).hexdigest()
