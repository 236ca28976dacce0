"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from oraculo.api.common.auth_router import router as auth_router
from oraculo.api.v1.chat_router import router as chat_router
from oraculo.api.v1.search_config_router import router as search_config_router
from oraculo.core.config import settings
from oraculo.core.database import Base, async_session_factory, engine
from oraculo.core.exceptions import (
    AppException,
    app_exception_handler,
    validation_exception_handler,
)
from oraculo.core.logging_config import configure_logging
from oraculo.core.middleware import AuthMiddleware
from oraculo.core.rate_limit import limiter, rate_limit_exceeded_handler
from oraculo.core.redis import close_redis, init_redis
from oraculo.schemas.response_schema import ApiResponse, success_response
from oraculo.services.chat_registry import close_chat_registry, init_chat_registry
from oraculo.services.chat_store import ChatStore
from oraculo.services.generation_client import GenerationClient

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown events."""
    configure_logging(settings.logging.level, settings.logging.json_format)
    logger.info(
        "Starting application",
        app_name=settings.app.name,
        environment=settings.app.env,
        webhook_configured=settings.webhook.is_configured,
    )
    await init_redis()
    if settings.app.is_development:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    init_chat_registry(
        ChatStore(async_session_factory),
        GenerationClient(settings.webhook),
        settings.chat,
    )
    yield
    await close_chat_registry()
    await close_redis()
    await engine.dispose()
    logger.info("Shutting down application")


app = FastAPI(
    title=settings.app.name,
    description="Oráculo - sincronização de conversas com o fluxo de geração",
    version="0.1.0",
    lifespan=lifespan,
    debug=settings.app.debug,
)

app.state.limiter = limiter

# Exception handlers
app.add_exception_handler(AppException, app_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)  # type: ignore[arg-type]
app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]

# Middleware (registration order: inner→outer, execution order: outer→inner)
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(AuthMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.app.is_development else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", response_model=ApiResponse[dict])
async def health_check() -> dict:
    """Health check endpoint."""
    return success_response({"status": "healthy"})


@app.get("/", response_model=ApiResponse[dict])
async def root() -> dict:
    """Root endpoint."""
    return success_response(
        {
            "app": settings.app.name,
            "version": "0.1.0",
            "docs": "/docs",
        }
    )


# Register routers
app.include_router(auth_router)
app.include_router(chat_router)
app.include_router(search_config_router)


def run() -> None:
    """Serve the application with uvicorn."""
    import uvicorn

    uvicorn.run(
        "oraculo.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.app.is_development,
    )
