"""FastAPI application factory for the GymBook API."""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException

from gymbook import __version__
from gymbook.core.config import Settings, get_settings
from gymbook.core.exceptions import ApiError
from gymbook.middleware import CorrelationMiddleware, ErrorHandlerMiddleware
from gymbook.models.db_connection import DatabasePool
from gymbook.services.auth_service import AuthService
from web.exception_handlers import (
    api_error_handler,
    http_exception_handler,
    rate_limit_exceeded_handler,
    validation_exception_handler,
)
from web.middleware import SecurityHeadersMiddleware
from web.rate_limit import configure_limiter
from web.routes import api_v1


def create_app(
    settings: Optional[Settings] = None,
    db: Optional[DatabasePool] = None,
    auth_service: Optional[AuthService] = None,
) -> FastAPI:
    """
    Factory function to create the FastAPI application.

    When ``db`` is supplied the caller owns the pool and the app never opens
    or closes it (the process shell does this). Otherwise the lifespan opens a
    pool on startup and closes it on shutdown.

    Args:
        settings: Application settings (defaults to the loaded settings)
        db: Connection pool shared with the caller
        auth_service: Auth service override, mainly for tests

    Returns:
        Configured FastAPI application instance
    """
    settings = settings or get_settings()
    owns_pool = db is None
    pool = db or DatabasePool(settings.database, is_production=settings.is_production())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("FastAPI application starting up...")
        if owns_pool:
            await pool.open()
        yield
        logger.info("FastAPI application shutting down...")
        if owns_pool:
            await pool.shutdown()

    is_dev = settings.is_development()
    app = FastAPI(
        title="GymBook API",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if is_dev else None,
        redoc_url="/redoc" if is_dev else None,
        openapi_url="/openapi.json" if is_dev else None,
    )

    app.state.settings = settings
    app.state.db = pool
    app.state.auth_service = auth_service or AuthService(pool, settings)
    app.state.limiter = configure_limiter(settings.rate_limit)

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    # Added last runs first: correlation id wraps everything
    app.add_middleware(ErrorHandlerMiddleware, is_production=settings.is_production())
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(SecurityHeadersMiddleware, is_production=settings.is_production())
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors.origins),
        allow_credentials=settings.cors.credentials,
        allow_methods=list(settings.cors.methods),
        allow_headers=list(settings.cors.allowed_headers),
        max_age=3600,
    )
    app.add_middleware(CorrelationMiddleware)

    app.include_router(api_v1)
    return app
