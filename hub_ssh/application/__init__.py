"""
Application layer: dependency injection and component lifecycle.
"""

from .container import Container, ServiceLifetime
from .relays import RelayFactory
from .startup import ApplicationStartup

__all__ = [
    "Container",
    "ServiceLifetime",
    "RelayFactory",
    "ApplicationStartup",
]
