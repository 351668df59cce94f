import asyncio
import logging
import os

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from app.api import documents, health, search, suggestions
from app.api.dependencies import search_limiter, suggestion_limiter
from app.api.errors import request_validation_handler, search_error_handler, unhandled_exception_handler
from app.config import settings
from app.core.errors import SearchError
from app.core.history import history_service
from app.core.maintenance import run_maintenance
from app.core.resilience import fallback_manager
from app.storage.document_store import document_store
from app.storage.history_store import history_store
from app.utils.logging_utils import setup_logging

logger = logging.getLogger(__name__)


async def _maintenance_loop(interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await asyncio.to_thread(run_maintenance, [search_limiter, suggestion_limiter])
        except Exception:
            logger.exception("Maintenance pass failed.")


def create_app() -> FastAPI:
    setup_logging()

    app = FastAPI(
        title="Document Search",
        description="Search, suggestions and context retrieval over user documents",
        version="0.1.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(SearchError, search_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(health.router)
    app.include_router(documents.router)
    app.include_router(search.router)
    app.include_router(suggestions.router)

    tasks: list[asyncio.Task] = []

    @app.on_event("startup")
    async def startup() -> None:
        """Restore both stores from disk and schedule housekeeping."""
        tasks.append(asyncio.create_task(_maintenance_loop(settings.maintenance_interval_seconds)))
        if not settings.persistence_enabled:
            return
        os.makedirs(settings.index_dir, exist_ok=True)
        document_store.load(settings.index_dir)
        history_store.load(settings.index_dir)
        history_service.purge()
        logger.info(
            "Loaded %d documents and %d history entries from %s.",
            len(document_store), len(history_store), settings.index_dir,
        )

    @app.on_event("shutdown")
    async def shutdown() -> None:
        for task in tasks:
            task.cancel()
        if settings.persistence_enabled:
            try:
                document_store.save(settings.index_dir)
                history_store.save(settings.index_dir)
            except OSError as exc:
                logger.error("Failed to persist stores on shutdown: %s", exc)
        fallback_manager.shutdown()

    return app


app = create_app()
