"""
FastAPI dependency injection utilities.

Routes and WebSocket endpoints reach the application container and the
services it holds through these dependency functions.
"""

from typing import Any, Callable, Type, TypeVar

from fastapi import Depends, HTTPException, Request, WebSocket, status

from ...application.container import Container
from ...application.relays import RelayFactory
from ...core.services.registry import ConnectionRegistry
from ...infrastructure.config.models import ApplicationConfig

T = TypeVar('T')


def get_container(request: Request) -> Container:
    """
    Get the dependency injection container from the request.

    Raises:
        HTTPException: If container is not available
    """
    if not hasattr(request.app.state, "container"):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Application container not available"
        )

    return request.app.state.container  # type: ignore[no-any-return]


def get_config(request: Request) -> ApplicationConfig:
    """
    Get the application configuration from the request.

    Raises:
        HTTPException: If configuration is not available
    """
    if not hasattr(request.app.state, "config"):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Application configuration not available"
        )

    return request.app.state.config  # type: ignore[no-any-return]


def get_component(service_type: Type[T]) -> Callable[..., T]:
    """
    Create a dependency function that resolves a specific service type.
    """
    def _get_component(container: Container = Depends(get_container)) -> T:
        try:
            return container.resolve(service_type)
        except Exception as e:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Service {service_type.__name__} not available: {str(e)}"
            )

    return _get_component


get_registry = get_component(ConnectionRegistry)


def get_relay_factory(websocket: WebSocket) -> RelayFactory:
    """Resolve the relay factory for a WebSocket endpoint."""
    container: Any = getattr(websocket.app.state, "container", None)
    if container is None:
        raise RuntimeError("Application container not available")
    return container.resolve(RelayFactory)  # type: ignore[no-any-return]
