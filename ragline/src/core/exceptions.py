"""
Ragline - Error Taxonomy
=========================
Every failure the pipeline reports is a ``RaglineError`` subclass that
names the pipeline stage it came from.  The taxonomy is transport-agnostic;
HTTP status mapping lives in ``ragline.src.api.routes``.

``No matches found`` and an empty chunk set are successes and never
raise.
"""

from __future__ import annotations

from typing import Any, Literal

Stage = Literal["configuration", "ingestion", "retrieval", "synthesis"]


class RaglineError(Exception):
    """Base exception for all pipeline errors."""

    stage: Stage = "configuration"

    def __init__(self, message: str, stage: Stage | None = None, details: dict[str, Any] | None = None) -> None:
        self.message = message
        if stage is not None:
            self.stage = stage
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"[{self.stage}] {self.message} | Details: {self.details}"
        return f"[{self.stage}] {self.message}"


class InvalidConfiguration(RaglineError):
    """Chunking parameters are unusable. Rejected before any processing."""

    stage: Stage = "ingestion"


class InvalidQuery(RaglineError):
    """Empty or malformed retrieval request. Not retried."""

    stage: Stage = "retrieval"


class StoreUnavailable(RaglineError):
    """Vector store transport or backend failure (ingestion or retrieval)."""

    stage: Stage = "retrieval"


class DuplicateId(RaglineError):
    """Chunk ids collided and the store policy is to reject."""

    stage: Stage = "ingestion"

    def __init__(self, ids: list[str], details: dict[str, Any] | None = None) -> None:
        self.ids = list(ids)
        details = details or {}
        details["ids"] = self.ids[:10]
        details["count"] = len(self.ids)
        super().__init__(f"{len(self.ids)} chunk id(s) already exist", details=details)


class SynthesisFailed(RaglineError):
    """Language-model call failed. No fallback answer is produced."""

    stage: Stage = "synthesis"
