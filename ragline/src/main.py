"""
ragline/src/main.py — Application Entry Point

Responsibility:
    FastAPI application factory.  Creates the FastAPI instance, registers
    the routes from ``ragline/src/api/routes.py``, configures CORS and the
    error-taxonomy exception handler, and owns the pipeline lifecycle.

Lifecycle:
    The lifespan builds one process-wide ``RAGPipeline`` (embedder, chat
    model, LanceDB connection) at startup and closes it at shutdown.
    Tests pass a pre-built pipeline to ``create_app``.

Run:
    python -m ragline.src.main
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ragline.config.settings import settings
from ragline.src.api.routes import register_error_handlers, router
from ragline.src.core.rag_engine import RAGPipeline, build_pipeline
from ragline.src.utils.logger import get_logger

logger = get_logger(__name__)


def create_app(pipeline: RAGPipeline | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        pipeline: Pre-built pipeline.  If *None*, one is built on startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.pipeline = pipeline or build_pipeline()
        logger.info("[API] Pipeline ready.")
        try:
            yield
        finally:
            app.state.pipeline.close()
            logger.info("[API] Pipeline shut down.")

    app = FastAPI(title="Ragline", description="Retrieval-augmented question answering over ingested documents", version="0.1.0", lifespan=lifespan)

    app.add_middleware(CORSMiddleware, allow_origins=settings.CORS_ORIGINS, allow_methods=["*"], allow_headers=["*"])

    register_error_handlers(app)
    app.include_router(router)
    return app


if __name__ == "__main__":
    uvicorn.run(create_app(), host=settings.HOST, port=settings.PORT)
