"""FastAPI application entry point."""
import time
import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from cexpi.api.dependencies import build_sweep_use_case
from cexpi.api.errors import register_exception_handlers
from cexpi.api.routes import admin, health, listings, payments, users
from cexpi.config import settings
from cexpi.infrastructure.database.connection import dispose_engine
from cexpi.infrastructure.logging_config import setup_logging
from cexpi.infrastructure.scheduling.expiration_sweeper import ExpirationSweeper

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging(settings.log_level, settings.log_json)
    logger.info("marketplace_starting", storage_backend=settings.storage_backend)

    sweeper: ExpirationSweeper | None = None
    if settings.sweep_enabled:
        sweeper = ExpirationSweeper(build_sweep_use_case, settings.sweep_interval_seconds)
        sweeper.start()
    app.state.sweeper = sweeper

    yield

    if sweeper is not None:
        await sweeper.stop()
    await dispose_engine()
    logger.info("marketplace_stopping")


async def add_request_id(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    start_time = time.perf_counter()
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        method=request.method,
        path=request.url.path,
    )
    try:
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "request_completed",
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )
        return response
    finally:
        structlog.contextvars.clear_contextvars()


def create_app() -> FastAPI:
    app = FastAPI(
        title="CexPi Marketplace",
        description="Classified-ads marketplace backend with Pi Network listing payments.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(add_request_id)

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(users.router)
    app.include_router(payments.router)
    app.include_router(listings.router)
    app.include_router(admin.router)

    return app


app = create_app()
