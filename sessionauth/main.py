"""
FastAPI Application - Session Auth API
Login, token refresh with rotation, logout and email verification
"""

import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from sessionauth.api.error_handling import register_exception_handlers
from sessionauth.config import settings
from sessionauth.core.database import create_tables, dispose_engine
from sessionauth.core.logging import (
    clear_request_context,
    configure_logging,
    get_logger,
    set_request_context,
)
from sessionauth.services.rate_limit import build_rate_limiter
from sessionauth.tasks.queue import close_queue

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager for startup and shutdown events"""
    configure_logging()
    logger.info(
        "api_starting",
        environment=settings.ENVIRONMENT,
        rate_limit_backend=settings.RATE_LIMIT_BACKEND,
    )
    if settings.DB_AUTO_CREATE:
        await create_tables()

    app.state.rate_limiter.start()
    yield
    await app.state.rate_limiter.stop()
    await close_queue()
    await dispose_engine()
    logger.info("api_shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Authentication and session lifecycle for the todo app",
    version=settings.VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Created with the app so it exists even when the lifespan is not run
app.state.rate_limiter = build_rate_limiter()

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-RateLimit-Limit", "X-RateLimit-Remaining", "Retry-After"],
)


@app.middleware("http")
async def request_context(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Tag every log line of a request with its X-Request-ID."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    set_request_context(request_id)
    try:
        response = await call_next(request)
    finally:
        clear_request_context()
    response.headers["X-Request-ID"] = request_id
    return response


register_exception_handlers(app)


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint"""
    return {"status": "healthy"}


from sessionauth.api.v1 import router as api_v1_router  # noqa: E402

app.include_router(api_v1_router, prefix=settings.API_V1_STR)
