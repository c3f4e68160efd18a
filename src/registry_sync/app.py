"""FastAPI application factory for Registry-Sync."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from registry_sync.common.config import get_settings
from registry_sync.common.exceptions import InvalidQueryError, RegistrySyncError
from registry_sync.common.schemas import ErrorResponse, HealthResponse

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        from registry_sync.deps import (
            chain_available,
            get_backfill_controller,
            get_db,
            get_live_controller,
        )
        from registry_sync.sync.runner import start_sync, stop_sync

        db = get_db()
        await db.init()
        await db.create_all()

        sync_task = None
        if chain_available():
            sync_task = asyncio.create_task(
                start_sync(settings, get_backfill_controller(), get_live_controller())
            )
        else:
            logger.warning("Chain connection not configured; event listener will not start")
        yield
        # Shutdown
        if sync_task is not None:
            await stop_sync(get_backfill_controller(), get_live_controller())
            sync_task.cancel()
            try:
                await sync_task
            except asyncio.CancelledError:
                pass
        await db.close()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.exception_handler(RegistrySyncError)
    async def registry_error_handler(request: Request, exc: RegistrySyncError):
        status_code = 400 if isinstance(exc, InvalidQueryError) else 503
        body = ErrorResponse(error=exc.message, code=exc.code)
        return JSONResponse(status_code=status_code, content=body.model_dump())

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(version=settings.api_version)

    # Mount routers
    from registry_sync.ledger.router import router as ledger_router

    app.include_router(ledger_router, prefix=settings.api_prefix, tags=["ledger"])

    return app
