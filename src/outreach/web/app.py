"""FastAPI application for Branch Outreach.

Creates the FastAPI app with:
- Lifespan context manager that loads config and wires the services
- The JSON API router (customers, letters, email, health)

Usage:
    from outreach.web.app import create_app

    app = create_app()
    # Run with: uvicorn.run(app, host="127.0.0.1", port=8000)
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from outreach.core.logging import configure_logging, get_logger

logger = get_logger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize dependencies on startup.

    On startup:
    1. Load config (built-in defaults when no config file exists)
    2. Build the classification engine, pipelines and collaborators

    If config is invalid the app still starts with services set to None,
    and the health endpoint reports the problem.
    """
    from outreach.config import get_config
    from outreach.core.errors import ConfigLoadError, ConfigValidationError
    from outreach.services import build_services

    try:
        config = get_config(allow_missing=True)
    except (ConfigLoadError, ConfigValidationError) as e:
        logger.error("config_load_failed", error=str(e))
        app.state.config = None
        app.state.services = None
        yield
        return

    configure_logging(log_level=config.logging.level, json_output=config.logging.json_output)
    app.state.config = config
    app.state.services = build_services(config)
    logger.info("app_started", bank=config.bank.name)

    yield

    logger.info("app_stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance
    """
    from outreach.web.routes import api_router

    app = FastAPI(
        title="Branch Outreach",
        description="Customer classification, letter generation and email outreach",
        version=VERSION,
        lifespan=lifespan,
    )
    app.include_router(api_router)

    return app
