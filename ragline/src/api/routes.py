"""
ragline/src/api/routes.py — API Route Definitions

Responsibility:
    Thin HTTP controllers over the RAG pipeline:
      - POST /documents    → chunk + store a document
      - POST /query        → retrieve, assemble and synthesize an answer
      - GET  /collections  → list tables in the vector store
      - GET  /health       → liveness

    Handlers validate the request shape, delegate to the process-wide
    ``RAGPipeline`` held on ``app.state`` and format the response.  No
    chunking, ranking or prompt logic lives here.

Error mapping:
    ``STATUS_BY_ERROR`` is the single place the transport-agnostic error
    taxonomy becomes HTTP status codes.  Unknown ``RaglineError``
    subclasses fall back to 500.
"""

from __future__ import annotations

import asyncio
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ragline.src.core.exceptions import DuplicateId, InvalidConfiguration, InvalidQuery, RaglineError, StoreUnavailable, SynthesisFailed
from ragline.src.core.models import RetrievedUnit
from ragline.src.core.rag_engine import RAGPipeline
from ragline.src.utils.logger import get_logger

logger = get_logger(__name__)

STATUS_BY_ERROR: dict[type[RaglineError], int] = {
    InvalidConfiguration: 400,
    InvalidQuery: 422,
    DuplicateId: 409,
    StoreUnavailable: 503,
    SynthesisFailed: 502,
}


# ── Request / Response Models ─────────────────────────────────────────

class IngestRequest(BaseModel):
    text: str
    source_name: str = Field(min_length=1)
    content_type: str = "text/plain"
    chunk_size: int | None = None
    overlap: int | None = None


class IngestResponse(BaseModel):
    document_id: str
    source_name: str
    chunk_count: int
    inserted_count: int


class QueryRequest(BaseModel):
    query: str
    limit: int | None = None
    similarity_threshold: float | None = None


class SourceUnit(BaseModel):
    text: str
    score: float
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_unit(cls, unit: RetrievedUnit) -> "SourceUnit":
        return cls(text=unit.chunk_text, score=unit.similarity_score, metadata=unit.source_metadata)


class QueryResponse(BaseModel):
    answer: str
    grounded: bool
    sources: list[SourceUnit]


class HealthResponse(BaseModel):
    status: str


# ── Dependencies ──────────────────────────────────────────────────────

def get_pipeline(request: Request) -> RAGPipeline:
    return request.app.state.pipeline


router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    return HealthResponse(status="healthy")


@router.post("/documents", response_model=IngestResponse, status_code=status.HTTP_201_CREATED)
async def ingest_document(body: IngestRequest, pipeline: RAGPipeline = Depends(get_pipeline)) -> IngestResponse:
    result = await asyncio.to_thread(pipeline.ingestion.ingest_text, body.text, body.source_name, body.content_type, body.chunk_size, body.overlap)
    return IngestResponse(document_id=result.document_id, source_name=result.source_name, chunk_count=result.chunk_count, inserted_count=result.inserted_count)


@router.post("/query", response_model=QueryResponse)
async def query(body: QueryRequest, pipeline: RAGPipeline = Depends(get_pipeline)) -> QueryResponse:
    answer = await pipeline.answer(body.query, limit=body.limit, similarity_threshold=body.similarity_threshold)
    return QueryResponse(answer=answer.text, grounded=answer.grounded, sources=[SourceUnit.from_unit(u) for u in answer.source_units])


@router.get("/collections", response_model=list[str])
async def list_collections(pipeline: RAGPipeline = Depends(get_pipeline)) -> list[str]:
    list_tables = getattr(pipeline.store, "list_tables", None)
    if list_tables is None:
        return []
    return await asyncio.to_thread(list_tables)


# ── Error Mapping ─────────────────────────────────────────────────────

async def ragline_error_handler(request: Request, exc: RaglineError) -> JSONResponse:
    status_code = next((code for err_type, code in STATUS_BY_ERROR.items() if isinstance(exc, err_type)), status.HTTP_500_INTERNAL_SERVER_ERROR)
    if status_code >= 500:
        logger.error("[API] %s %s failed at %s stage: %s", request.method, request.url.path, exc.stage, exc)
    else:
        logger.warning("[API] %s %s rejected (%s): %s", request.method, request.url.path, type(exc).__name__, exc.message)
    return JSONResponse(status_code=status_code, content={"error": type(exc).__name__, "stage": exc.stage, "detail": exc.message, "details": exc.details})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RaglineError, ragline_error_handler)  # type: ignore[arg-type]
