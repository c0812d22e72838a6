"""
FastAPI application factory and configuration.

This module creates the FastAPI application instance,
configures exception handlers, routers and lifespan events.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from psycopg_pool import ConnectionPool
from slowapi.errors import RateLimitExceeded

from src.adapters.repository.postgres import run_migrations
from src.api.dependencies import Services, build_services, get_services
from src.api.errors import register_exception_handlers
from src.api.rate_limiting import configure_rate_limits, limiter, rate_limit_exceeded_handler
from src.api.v1 import router as v1_router
from src.config.logging_config import configure_logging
from src.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)

# OpenAPI tags for documentation grouping
tags_metadata = [
    {"name": "auth", "description": "Registration by emailed code, login and session tokens"},
    {"name": "users", "description": "Profiles and follows"},
    {"name": "posts", "description": "Posts, likes, comments and the home feed"},
    {"name": "pages", "description": "Club and society pages"},
    {"name": "messages", "description": "Direct conversations"},
]


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings to use instead of the environment
        services: Pre-built service container; skips pool creation entirely
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        FastAPI lifespan context manager.

        Manages application startup and shutdown:
        - Creates database connection pool and runs migrations (postgres backend)
        - Wires the service container into app state
        - Closes the pool and email transport on shutdown
        """
        logger.info("Starting application (%s, %s storage)...", settings.environment, settings.storage_backend)
        pool: ConnectionPool | None = None

        if services is not None:
            app.state.services = services
        else:
            if settings.storage_backend == "postgres":
                logger.info("Connecting to database...")
                pool = ConnectionPool(
                    conninfo=settings.database_url,
                    min_size=settings.pool_min_size,
                    max_size=settings.pool_max_size,
                )
                logger.info("Running database migrations...")
                run_migrations(pool)
            app.state.services = build_services(settings, pool=pool)

        logger.info("Application startup complete")

        yield

        logger.info("Shutting down application...")
        close = getattr(app.state.services.email_sender, "close", None)
        if close is not None:
            close()
        if pool is not None:
            pool.close()
            logger.info("Database connection pool closed")

    app = FastAPI(
        title="campus-auth",
        description="Campus social API - Email-verified registration, JWT sessions, profiles, posts, pages and messages",
        version="0.1.0",
        openapi_tags=tags_metadata,
        lifespan=lifespan,
    )
    register_exception_handlers(app)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    # Rate limiting on code issuance and credential checks
    configure_rate_limits(settings)
    app.state.limiter = limiter

    app.include_router(v1_router, prefix="/v1")

    @app.get("/health", tags=["health"])
    def health_check(services: Services = Depends(get_services)) -> dict[str, str]:
        """
        Health check endpoint with storage validation.

        Returns 200 OK if application and storage are healthy.
        Raises exception if the storage backend is unreachable.
        """
        with services.store.transaction() as session:
            session.get_identity_by_email("health@check.invalid")
        return {"status": "healthy", "environment": services.settings.environment}

    return app


app = create_app()
