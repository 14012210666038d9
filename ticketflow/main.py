"""
ticketflow - Ticket Lifecycle Orchestrator

Main entry point for the FastAPI application.
"""

from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI

from ticketflow.api import cancel_watchers, router
from ticketflow.config import get_settings
from ticketflow.db import close_db, create_all_tables, get_connection, init_db
from ticketflow.health import VERSION, health_payload

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()
settings = get_settings()


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    """Open the connection pool and create tables; tear down on shutdown."""
    logger.info("ticketflow_starting", version=VERSION, environment=settings.environment)

    await init_db()
    async with get_connection() as conn:
        await create_all_tables(conn)
    logger.info("database_initialized")

    try:
        yield
    finally:
        logger.info("ticketflow_shutting_down")
        await cancel_watchers()
        await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    fastapi_app = FastAPI(
        title="ticketflow",
        description="Kanban ticket lifecycle orchestrator",
        version=VERSION,
        lifespan=lifespan,
    )
    fastapi_app.include_router(router)

    @fastapi_app.get("/health")
    async def health_check():
        """Health check endpoint for monitoring."""
        return await health_payload()

    return fastapi_app


app = create_app()


def main() -> None:
    uvicorn.run(
        "ticketflow.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    main()
