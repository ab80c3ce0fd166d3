"""
FastAPI application factory and configuration.

This module creates and configures the FastAPI application with its
middleware, the WebSocket relay endpoint and the health routes.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from ...application.container import Container
from ...application.startup import ApplicationStartup
from ...infrastructure.config.models import ApplicationConfig
from .middleware import ErrorHandlerMiddleware
from .routers import health, terminal


def _lifespan(startup: Optional[ApplicationStartup]) -> Any:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Start components on startup and stop them on shutdown."""
        logger.info("Application starting up...")
        if startup is not None:
            await startup.start_application()

        yield

        logger.info("Application shutting down...")
        if startup is not None:
            await startup.stop_application()

    return lifespan


def create_app(
    container: Container,
    config: ApplicationConfig,
    startup: Optional[ApplicationStartup] = None
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        container: Dependency injection container with services configured
        config: Application configuration
        startup: Component lifecycle to run inside the app lifespan

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title=config.name,
        version=config.version,
        description="WebSocket relay between browser terminals and SSH servers",
        debug=config.debug,
        lifespan=_lifespan(startup)
    )

    app.state.container = container
    app.state.config = config

    _configure_middleware(app, config)
    _register_routes(app)

    logger.info(f"FastAPI application created: {config.name} v{config.version}")
    return app


def _configure_middleware(app: FastAPI, config: ApplicationConfig) -> None:
    """Configure application middleware."""
    app.add_middleware(ErrorHandlerMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    logger.debug("Middleware configured")


def _register_routes(app: FastAPI) -> None:
    """Register API routes."""
    app.include_router(
        health.router,
        prefix="/health",
        tags=["health"]
    )

    app.include_router(
        terminal.router,
        tags=["terminal"]
    )

    @app.get("/", tags=["root"])
    async def root() -> Dict[str, Any]:
        """Root endpoint with basic application information."""
        return {
            "name": app.title,
            "version": app.version,
            "status": "running",
            "websocket_urls": ["/", "/ws"],
            "health_url": "/health"
        }

    logger.debug("Routes registered")
