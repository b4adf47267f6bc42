"""cat-engine service entry point.

Initializes the FastAPI application with:
- structlog logging configured from Settings
- Async SQLAlchemy engine for validations, assessments, users and the audit trail
- Domain exception handlers rendering {"code", "message"} bodies
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from cat_engine.api.handlers import register_exception_handlers
from cat_engine.api.router import router
from cat_engine.database import close_database, create_schema, init_database
from cat_engine.observability import configure_logging, get_logger
from cat_engine.settings import get_settings

logger = get_logger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle.

    Args:
        app: The FastAPI application instance.

    Yields:
        None
    """
    configure_logging(settings.log_level, json_output=settings.log_json)

    logger.info("Initializing database", service=settings.service_name)
    init_database(settings.database_url, echo=settings.database_echo)
    if settings.schema_bootstrap_enabled:
        await create_schema()

    app.state.settings = settings
    logger.info("cat-engine startup complete", server_url=settings.server_url)

    yield

    logger.info("Shutting down cat-engine")
    await close_database()
    logger.info("cat-engine shutdown complete")


def create_app() -> FastAPI:
    """Build the FastAPI application with routes and exception handlers."""
    application = FastAPI(
        title="cat-engine",
        version="0.1.0",
        description="Validation and assessment lifecycle service",
        lifespan=lifespan,
    )
    register_exception_handlers(application)
    application.include_router(router, prefix="/api/v1")

    @application.get("/health/live", tags=["health"])
    async def liveness() -> dict[str, str]:
        return {"status": "ok", "service": settings.service_name}

    return application


app: FastAPI = create_app()
