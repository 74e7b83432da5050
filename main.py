"""
Main application entry point
Starts the FastAPI server and the monitoring workers
"""
import sys
import uvicorn
from contextlib import asynccontextmanager
import logging

from dexarb.config.logging_config import setup_logging
from dexarb.api.rest_api import create_app
from dexarb.config.settings import get_settings, validate_settings
from dexarb.core.exceptions import ConfigurationError
from dexarb.core.service_manager import ServiceManager

logger = logging.getLogger(__name__)


def build_app():
    """Load settings, wire services and return the ASGI app"""
    settings = get_settings()
    setup_logging(settings)
    validate_settings(settings)

    services = ServiceManager(settings)

    @asynccontextmanager
    async def lifespan(app):
        """Application lifespan manager"""
        # Startup
        await services.initialize()
        await services.start()

        yield

        # Shutdown
        await services.cleanup()

    return create_app(services, lifespan=lifespan)


if __name__ == "__main__":
    try:
        app = build_app()
    except ConfigurationError as e:
        logger.critical(f"Invalid configuration: {e.message}")
        sys.exit(1)

    settings = get_settings()
    uvicorn.run(
        app,
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower()
    )
