"""FastAPI server — ingestion endpoint plus the pipeline timers in its lifespan."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from attestor import __version__
from attestor.api.routes import ingest_router, status_router
from attestor.config import Settings, get_settings
from attestor.pipeline import AttestationPipeline

logger = logging.getLogger(__name__)


def create_app(
    cfg: Settings | None = None,
    pipeline: AttestationPipeline | None = None,
    start_pipeline: bool = True,
) -> FastAPI:
    """Create the attestor app. Pass *pipeline* to reuse an existing one."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if pipeline is not None:
            app.state.pipeline = pipeline
        else:
            app.state.pipeline = AttestationPipeline(cfg or get_settings())

        if start_pipeline:
            await app.state.pipeline.start()
        try:
            yield
        finally:
            if app.state.pipeline.running:
                await app.state.pipeline.stop()

    app = FastAPI(
        title="Uptime Attestor",
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(ingest_router)
    app.include_router(status_router, prefix="/api")
    return app
