"""
Ragline - Core Data Model
==========================
Immutable value types passed between pipeline stages.

``Document`` and ``Chunk`` become durable once written to the vector
store.  ``RetrievalQuery``, ``RetrievedUnit``, ``AssembledContext`` and
``Answer`` are request-scoped.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class Document:
    id: str
    raw_text: str
    source_name: str
    content_type: str = "text/plain"


@dataclass(frozen=True, slots=True)
class Chunk:
    """One bounded window of a document's normalised text."""

    id: str
    document_id: str
    text: str
    sequence_index: int
    source_name: str


@dataclass(frozen=True, slots=True)
class RetrievalQuery:
    text: str
    limit: int = 3
    similarity_threshold: float | None = None


@dataclass(frozen=True, slots=True)
class RetrievedUnit:
    """A chunk returned by a similarity query, with its cosine similarity."""

    chunk_text: str
    similarity_score: float
    source_metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class AssembledContext:
    """
    Prompt-ready context built from retrieved units.

    Falsy when empty; use ``EMPTY_CONTEXT`` as the no-context sentinel.
    """

    text: str
    units: tuple[RetrievedUnit, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.units)


EMPTY_CONTEXT = AssembledContext(text="", units=())


@dataclass(frozen=True, slots=True)
class Answer:
    text: str
    grounded: bool
    source_units: tuple[RetrievedUnit, ...] = ()


@dataclass(frozen=True, slots=True)
class IngestionResult:
    document_id: str
    source_name: str
    chunk_count: int
    inserted_count: int
    elapsed_ms: float = 0.0
