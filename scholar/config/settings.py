"""
Scholar - Configuration
========================
One ``Settings`` object, read from the process environment and
``scholar/.env`` by ``pydantic-settings``.  Import the module-level
``settings``; components take explicit constructor arguments and only
fall back to it.

Secrets
-------
``GOOGLE_API_KEY``, ``MONGO_URI`` and ``UPLOAD_SIGNING_KEY`` are
``SecretStr`` fields without defaults: start-up fails with a pydantic
``ValidationError`` naming whichever is missing, and none of them is
ever rendered by ``repr`` or in log output.  ``UPLOAD_SIGNING_KEY``
signs the upload URLs issued by ``PaperService.request_upload``.

Paths
-----
Data directories hang off the package directory (``BASE_DIR``) unless
overridden: ``data/blobs`` for uploaded files, ``data/lancedb`` for the
vector indexes.

Concurrency
-----------
``MAX_WORKERS`` caps the embedding batches in flight for one paper.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Scholar runtime configuration; field names match the env variables.

    Attributes
    ----------
    GOOGLE_API_KEY : SecretStr
        API key for Google AI Studio (Gemini embeddings + generation).
        **Required.**
    MONGO_URI : SecretStr
        MongoDB connection string for the paper / conversation documents.
        **Required.**
    UPLOAD_SIGNING_KEY : SecretStr
        HMAC key for signed upload URLs.  **Required.**
    ENV : Literal["dev", "prod"]
        Picks the default log level (DEBUG in dev, WARNING in prod).
    LOG_LEVEL : str | None
        Explicit log level name; wins over ``ENV`` when set.
    CHUNK_SIZE / CHUNK_OVERLAP : int
        Window and overlap (characters) used when chunking extracted text.
    EMBED_BATCH_SIZE : int
        Texts per ``aembed_documents`` call during ingestion.
    SEARCH_TOP_K : int
        Number of passages retrieved per question.
    PUBLIC_INDEX_ID / PRIVATE_INDEX_TEMPLATE : str
        Data store naming for the shared and per-user indexes.
    UPSTREAM_TIMEOUT_SECONDS : float
        Deadline applied to every embedding / search / generation call.
    """

    # ── Resolved Absolute Paths ────────────────────────────────────────
    BASE_DIR: Path = Path(__file__).resolve().parent.parent
    BLOB_STORE_DIR: Path = BASE_DIR / "data" / "blobs"
    LANCEDB_PATH: Path = BASE_DIR / "data" / "lancedb"

    # ── Runtime Mode / Logging ─────────────────────────────────────────
    ENV: Literal["dev", "prod"] = "dev"
    LOG_LEVEL: str | None = None

    # ── API Keys (REQUIRED — no default) ───────────────────────────────
    GOOGLE_API_KEY: SecretStr

    # ── MongoDB (REQUIRED — no default) ────────────────────────────────
    MONGO_URI: SecretStr
    MONGO_DB_NAME: str = "scholar"
    PAPERS_COLLECTION: str = "papers"
    CONVERSATIONS_COLLECTION: str = "conversations"

    # ── Uploads ────────────────────────────────────────────────────────
    UPLOAD_SIGNING_KEY: SecretStr
    UPLOAD_ROOT: str = "papers"
    UPLOAD_BASE_URL: str = "http://localhost:8000/uploads"
    UPLOAD_URL_TTL_SECONDS: int = 15 * 60

    # ── Ingestion Parameters ───────────────────────────────────────────
    CHUNK_SIZE: int = 1000
    CHUNK_OVERLAP: int = 200

    # ── Model Configuration ────────────────────────────────────────────
    EMBEDDING_MODEL: str = "models/gemini-embedding-001"
    EMBED_BATCH_SIZE: int = 16
    LLM_MODEL: str = "gemini-2.0-flash"
    LLM_TEMPERATURE: float = 0.3
    LLM_MAX_OUTPUT_TOKENS: int = 1024
    LLM_TOP_P: float = 0.8
    LLM_TOP_K: int = 40

    # ── Retrieval ──────────────────────────────────────────────────────
    SEARCH_TOP_K: int = 5
    PUBLIC_INDEX_ID: str = "public-research"
    PRIVATE_INDEX_TEMPLATE: str = "user-{user_id}-private"
    HISTORY_LIMIT: int = 20

    # ── Concurrency / Deadlines ────────────────────────────────────────
    MAX_WORKERS: int = 4
    UPSTREAM_TIMEOUT_SECONDS: float = 60.0

    # ── Validators ─────────────────────────────────────────────────────

    @field_validator("CHUNK_SIZE")
    @classmethod
    def _chunk_size_positive(cls, v: int) -> int:
        if v < 100:
            raise ValueError(f"CHUNK_SIZE must be ≥ 100, got {v}")
        return v


    @field_validator("CHUNK_OVERLAP")
    @classmethod
    def _overlap_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"CHUNK_OVERLAP must be ≥ 0, got {v}")
        return v


    @field_validator("MAX_WORKERS")
    @classmethod
    def _workers_range(cls, v: int) -> int:
        if not 1 <= v <= 16:
            raise ValueError(f"MAX_WORKERS must be 1–16, got {v}")
        return v


    @field_validator("SEARCH_TOP_K")
    @classmethod
    def _top_k_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"SEARCH_TOP_K must be ≥ 1, got {v}")
        return v


    @field_validator("LOG_LEVEL")
    @classmethod
    def _known_log_level(cls, v: str | None) -> str | None:
        if v is not None and v.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"LOG_LEVEL must be a standard level name, got {v!r}")
        return v

    # ── Pydantic Settings Configuration ────────────────────────────────
    model_config = SettingsConfigDict(env_file=Path(__file__).resolve().parent.parent / ".env", env_file_encoding="utf-8", extra="ignore")


# ── Singleton Instance ─────────────────────────────────────────────────
# Import this throughout the project:
#     from scholar.config.settings import settings
settings = Settings()
