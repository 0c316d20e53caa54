"""FastAPI application factory.

Assembles CORS and all API routers.
This module is the authoritative app object; app/main.py re-exports it.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes.health import router as health_router
from app.api.routes.storage import router as storage_router
from app.api.routes.surges import router as surges_router
from app.core.logging import setup_logging
from app.core.settings import get_settings
from app.surge.work_queue import shutdown_executor

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    setup_logging()
    yield
    # Let queued packet builds finish before the process exits.
    logger.info("Waiting for in-flight packet builds")
    shutdown_executor(wait=True)


settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(surges_router)
app.include_router(storage_router)
