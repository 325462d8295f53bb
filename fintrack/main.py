from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from fintrack.api.router import router as api_router
from fintrack.connect.router import router as connect_router
from fintrack.connect.service import discover_accounts, discover_providers
from fintrack.core.config import Settings, get_settings
from fintrack.core.context import AppContext
from fintrack.core.logging import configure_logging, request_id_middleware, sanitize_db_url
from fintrack.db.init import create_tables
from fintrack.errors import (
    AuthError,
    CredentialsNotFoundError,
    DecodeError,
    FintrackError,
    NetworkError,
    StoreError,
    UpstreamError,
)

logger = structlog.get_logger(__name__)

ERROR_STATUS = {
    AuthError: status.HTTP_401_UNAUTHORIZED,
    CredentialsNotFoundError: status.HTTP_404_NOT_FOUND,
    NetworkError: status.HTTP_502_BAD_GATEWAY,
    UpstreamError: status.HTTP_502_BAD_GATEWAY,
    DecodeError: status.HTTP_502_BAD_GATEWAY,
    StoreError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


async def fintrack_error_handler(request: Request, exc: FintrackError) -> JSONResponse:
    """Translate aggregator and store errors raised by live API routes."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type in type(exc).__mro__:
        if error_type in ERROR_STATUS:
            status_code = ERROR_STATUS[error_type]
            break

    logger.warning(
        "api.request_failed",
        status=status_code,
        error=str(exc),
        error_type=type(exc).__name__,
    )

    body = {"detail": str(exc)}
    if isinstance(exc, AuthError):
        body["code"] = exc.code
    return JSONResponse(status_code=status_code, content=body)


def create_app(
    settings: Optional[Settings] = None, context: Optional[AppContext] = None
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use (defaults to ``get_settings()``)
        context: Prebuilt context (tests inject one); built from settings otherwise
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.ENV, settings.DEBUG)
        logger.info(
            "app.starting",
            env=settings.ENV,
            database=sanitize_db_url(settings.database_url),
            truelayer_env=settings.TRUELAYER_ENV,
        )

        ctx = context or AppContext.create(settings)
        app.state.context = ctx
        sync_task: Optional[asyncio.Task] = None

        try:
            await create_tables(ctx.engine)

            # Discovery is fail-fast: any error aborts startup
            if settings.DISCOVER_ON_STARTUP:
                await discover_providers(ctx)
                await discover_accounts(ctx)

            if ctx.scheduler.config.enabled:
                sync_task = ctx.scheduler.spawn()
            else:
                logger.warning("app.sync_disabled")

            logger.info("app.started")
            yield
        finally:
            logger.info("app.stopping")
            if sync_task is not None:
                sync_task.cancel()
                try:
                    await sync_task
                except asyncio.CancelledError:
                    pass
            await ctx.aclose()
            logger.info("app.stopped")

    app = FastAPI(title="FinTrack", version="0.1.0", lifespan=lifespan)
    app.middleware("http")(request_id_middleware)
    app.add_exception_handler(FintrackError, fintrack_error_handler)  # type: ignore[arg-type]
    app.include_router(connect_router)
    app.include_router(api_router)

    @app.get("/", name="index")
    def index():
        return {"status": "ok", "service": "fintrack"}

    @app.get("/healthz")
    def healthz():
        return {"status": "healthy", "env": settings.ENV}

    return app


app = create_app()
