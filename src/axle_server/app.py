"""Litestar application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from advanced_alchemy.config.asyncio import AsyncSessionConfig
from litestar import Litestar
from litestar.contrib.sqlalchemy.plugins import SQLAlchemyAsyncConfig, SQLAlchemyPlugin
from litestar.openapi import OpenAPIConfig
from sqlalchemy.ext.asyncio import AsyncEngine

from axle_server import __version__
from axle_server.api import api_routers
from axle_server.core.config import settings
from axle_server.core.database import close_database, engine, init_database
from axle_server.services.scheduler import SuggestionScheduler


def configure_logging(level: str | None = None) -> None:
    """Configure structured JSON logging.

    Args:
        level: Log level name (defaults to LOG_LEVEL)
    """
    logging.basicConfig(format="%(message)s", level=level or settings.log_level)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()

logger = structlog.get_logger()


def create_app(
    db_engine: AsyncEngine | None = None,
    scheduler: SuggestionScheduler | None = None,
) -> Litestar:
    """Create Litestar application.

    Args:
        db_engine: Engine for request sessions (defaults to the global engine)
        scheduler: Daily job scheduler (defaults to one on the global engine)

    Returns:
        Configured Litestar app instance
    """
    app_engine = db_engine or engine
    app_scheduler = scheduler or SuggestionScheduler()

    @asynccontextmanager
    async def lifespan(app: Litestar) -> AsyncIterator[None]:
        """Check the database, run the scheduler, clean up on shutdown."""
        logger.info(
            "Starting axle-server",
            version=__version__,
            daily_job_enabled=settings.daily_job_enabled,
            daily_job_hour=settings.daily_job_hour,
        )

        await init_database(app_engine)

        app.state.scheduler = app_scheduler
        await app_scheduler.start()

        try:
            yield
        finally:
            await app_scheduler.stop()
            if db_engine is None:
                await close_database()
            logger.info("Shutdown complete")

    return Litestar(
        route_handlers=api_routers,
        lifespan=[lifespan],
        openapi_config=OpenAPIConfig(
            title="axle-server API",
            version=__version__,
            description="Daily health scoring and workout suggestions",
        ),
        plugins=[
            SQLAlchemyPlugin(
                config=SQLAlchemyAsyncConfig(
                    engine_instance=app_engine,
                    session_dependency_key="session",
                    session_config=AsyncSessionConfig(expire_on_commit=False),
                ),
            ),
        ],
        debug=settings.log_level == "DEBUG",
    )


# Application instance
app = create_app()
