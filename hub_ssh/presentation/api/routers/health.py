"""
Health check API endpoints.

This module provides health check endpoints for monitoring the relay
and its long-lived components.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends

from ....application.container import Container
from ....core.interfaces.lifecycle import IComponent
from ....core.services.registry import ConnectionRegistry
from ....infrastructure.config.models import ApplicationConfig
from ..dependencies import get_config, get_container, get_registry

router = APIRouter()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _application_info(config: ApplicationConfig) -> Dict[str, Any]:
    return {
        "name": config.name,
        "version": config.version,
        "environment": config.environment
    }


@router.get("/")
async def health_check(
    config: ApplicationConfig = Depends(get_config),
    registry: ConnectionRegistry = Depends(get_registry)
) -> Dict[str, Any]:
    """
    Basic health check endpoint.

    Returns overall application health and the number of live relays.
    """
    return {
        "status": "healthy",
        "timestamp": _now(),
        "application": _application_info(config),
        "live_relays": len(registry)
    }


@router.get("/detailed")
async def detailed_health_check(
    container: Container = Depends(get_container),
    config: ApplicationConfig = Depends(get_config)
) -> Dict[str, Any]:
    """
    Detailed health check with component status.

    Returns health status for every registered component.
    """
    components_health = {}
    overall_healthy = True

    for service_type in container.get_registrations():
        component = container.try_resolve(service_type)
        if not isinstance(component, IComponent):
            continue

        try:
            health_info = await component.check_health()
        except Exception as e:
            health_info = {
                "healthy": False,
                "status": "error",
                "details": {"error": str(e)}
            }

        components_health[component.name] = health_info
        if not health_info.get("healthy", True):
            overall_healthy = False

    return {
        "status": "healthy" if overall_healthy else "degraded",
        "timestamp": _now(),
        "application": _application_info(config),
        "components": components_health
    }


@router.get("/live")
async def liveness_check() -> Dict[str, Any]:
    """Liveness check: the process is up and serving HTTP."""
    return {
        "alive": True,
        "timestamp": _now()
    }
