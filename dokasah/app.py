"""
FastAPI application factory for the dokasah backend.

Serve with ``uvicorn --factory dokasah.app:create_app``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from dokasah.config import Settings, get_settings
from dokasah.db import DbClient
from dokasah.dependencies import build_db_client, build_storage_client
from dokasah.errors import DokasahError
from dokasah.routes import router
from dokasah.storage import StorageClient

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    db: Optional[DbClient] = None,
    storage: Optional[StorageClient] = None,
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        logger.info("Shutting down, releasing database connections")
        app.state.db.close()

    app = FastAPI(title="Dokasah Backend (FastAPI)", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = db if db is not None else build_db_client(settings)
    app.state.storage = storage if storage is not None else build_storage_client(settings)
    logger.info(
        "Backends: db=%s storage=%s",
        app.state.db.__class__.__name__,
        app.state.storage.__class__.__name__,
    )

    @app.exception_handler(DokasahError)
    async def handle_domain_error(request: Request, exc: DokasahError):
        return JSONResponse(status_code=exc.status_code, content={"message": exc.message})

    app.include_router(router, prefix=settings.api_prefix)
    return app
