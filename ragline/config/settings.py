"""
Ragline - Centralized Configuration
====================================
Uses ``pydantic-settings`` (``BaseSettings``) to load *all* configuration
from environment variables and the project-level ``.env`` file.

Security
--------
- ``GOOGLE_API_KEY`` is typed as ``SecretStr`` and has **no default value**.
  If the key is missing at startup, Pydantic raises a ``ValidationError``
  with a clear error message.  The raw value is never exposed in repr,
  logs, or tracebacks.

Determinism
-----------
``LLM_TEMPERATURE`` is pinned to ``0.0``.  Answers are part of a grounded
retrieval contract, so any other value is rejected at startup.

Chunking
--------
``CHUNK_SIZE`` / ``CHUNK_OVERLAP`` are only range-checked here.  The
cross-field rule ``CHUNK_OVERLAP < CHUNK_SIZE`` is enforced by the chunker
itself and surfaces as ``InvalidConfiguration``, so request-level
overrides and the defaults go through the same check.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings.

    Every field is loaded from environment variables (or ``.env``).
    Fields *without* a default are **required**: the app refuses to
    start until they are provided.

    Attributes
    ----------
    GOOGLE_API_KEY : SecretStr
        API key for Google AI Studio (Gemini embeddings + chat).  **Required.**
    ENV : Literal["dev", "prod"]
        Environment mode controlling logging verbosity.
    CHUNK_SIZE : int
        Window width, in characters, used by the chunker.
    CHUNK_OVERLAP : int
        Characters shared by consecutive windows (``0`` = disjoint windows).
    SEARCH_RESULTS_LIMIT : int
        Default number of units returned by the retriever.
    SIMILARITY_THRESHOLD : float | None
        Default minimum cosine similarity for a unit to count as relevant.
    DUPLICATE_ID_POLICY : Literal["reject", "overwrite"]
        What the vector store does when a chunk id already exists.
    STORE_TIMEOUT_SECONDS / LLM_TIMEOUT_SECONDS : float
        Upper bound on a single external call before it is reported as failed.
    """

    # ── Resolved Absolute Paths ────────────────────────────────────────
    BASE_DIR: Path = Path(__file__).resolve().parent.parent
    DATA_RAW_DIR: Path = BASE_DIR / "data" / "raw"
    LANCEDB_PATH: Path = BASE_DIR / "data" / "lancedb"

    # ── Environment Mode ───────────────────────────────────────────────
    ENV: Literal["dev", "prod"] = "dev"

    # ── API Keys (REQUIRED — no default) ───────────────────────────────
    GOOGLE_API_KEY: SecretStr

    # ── Ingestion Parameters ───────────────────────────────────────────
    CHUNK_SIZE: int = 500
    CHUNK_OVERLAP: int = 0
    DUPLICATE_ID_POLICY: Literal["reject", "overwrite"] = "reject"

    # ── Retrieval Parameters ───────────────────────────────────────────
    SEARCH_RESULTS_LIMIT: int = 3
    SIMILARITY_THRESHOLD: float | None = None

    # ── Model Configuration ────────────────────────────────────────────
    EMBEDDING_MODEL: str = "models/gemini-embedding-001"
    LLM_MODEL: str = "gemini-2.0-flash"
    LLM_TEMPERATURE: float = 0.0

    # ── Timeouts ───────────────────────────────────────────────────────
    STORE_TIMEOUT_SECONDS: float = 15.0
    LLM_TIMEOUT_SECONDS: float = 60.0

    # ── LanceDB ────────────────────────────────────────────────────────
    LANCEDB_TABLE_NAME: str = "ragline_chunks"

    # ── Concurrency ────────────────────────────────────────────────────
    MAX_WORKERS: int = 4

    # ── HTTP ───────────────────────────────────────────────────────────
    HOST: str = "0.0.0.0"
    PORT: int = 4000
    CORS_ORIGINS: list[str] = ["*"]

    # ── Validators ─────────────────────────────────────────────────────

    @field_validator("CHUNK_SIZE", "SEARCH_RESULTS_LIMIT")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"must be > 0, got {v}")
        return v


    @field_validator("CHUNK_OVERLAP")
    @classmethod
    def _overlap_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"CHUNK_OVERLAP must be ≥ 0, got {v}")
        return v


    @field_validator("SIMILARITY_THRESHOLD")
    @classmethod
    def _threshold_range(cls, v: float | None) -> float | None:
        if v is not None and not 0.0 <= v <= 1.0:
            raise ValueError(f"SIMILARITY_THRESHOLD must be in [0, 1], got {v}")
        return v


    @field_validator("LLM_TEMPERATURE")
    @classmethod
    def _temperature_pinned(cls, v: float) -> float:
        if v != 0.0:
            raise ValueError(f"LLM_TEMPERATURE is fixed at 0.0, got {v}")
        return v


    @field_validator("STORE_TIMEOUT_SECONDS", "LLM_TIMEOUT_SECONDS")
    @classmethod
    def _timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"timeout must be > 0, got {v}")
        return v


    @field_validator("MAX_WORKERS")
    @classmethod
    def _workers_range(cls, v: int) -> int:
        if not 1 <= v <= 16:
            raise ValueError(f"MAX_WORKERS must be 1–16, got {v}")
        return v

    # ── Pydantic Settings Configuration ────────────────────────────────
    model_config = SettingsConfigDict(env_file=Path(__file__).resolve().parent.parent.parent / ".env", env_file_encoding="utf-8", extra="ignore")


# ── Singleton Instance ─────────────────────────────────────────────────
# Import this throughout the project:
#     from ragline.config.settings import settings
settings = Settings()
