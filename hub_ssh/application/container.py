"""
Dependency injection container for the relay's long-lived services.

Services are registered either as ready-made instances or as factories that
receive the container and build their instance on first resolution.
"""

from enum import Enum, auto
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from loguru import logger

T = TypeVar('T')

Factory = Callable[["Container"], Any]


class ServiceLifetime(Enum):
    """Service lifetime management options."""
    SINGLETON = auto()  # Single instance shared across application
    TRANSIENT = auto()  # New instance created each time


class ServiceRegistration:
    """Registration information for a service."""

    def __init__(self,
                 service_type: Type[Any],
                 factory: Optional[Factory] = None,
                 instance: Any = None,
                 lifetime: ServiceLifetime = ServiceLifetime.SINGLETON):
        self.service_type = service_type
        self.factory = factory
        self.instance = instance
        self.lifetime = lifetime if factory is not None else ServiceLifetime.SINGLETON


class ServiceNotRegisteredException(Exception):
    """Raised when trying to resolve an unregistered service."""
    pass


class ServiceResolutionException(Exception):
    """Raised when a factory fails to build its service."""
    pass


class CircularDependencyException(Exception):
    """Raised when factories depend on each other in a cycle."""
    pass


class Container:
    """
    Lightweight dependency injection container.

    Supports singleton and transient factories and detects circular
    factory dependencies.
    """

    def __init__(self) -> None:
        self._services: Dict[Type[Any], ServiceRegistration] = {}
        self._resolution_stack: List[Type[Any]] = []

    def register_instance(self, service_type: Type[T], instance: T) -> None:
        """Register a specific instance as a singleton."""
        self._services[service_type] = ServiceRegistration(service_type, instance=instance)
        logger.debug(f"Registered instance of {service_type.__name__}")

    def register_factory(self,
                         service_type: Type[T],
                         factory: Callable[["Container"], T],
                         lifetime: ServiceLifetime = ServiceLifetime.SINGLETON) -> None:
        """
        Register a factory for a service.

        Args:
            service_type: Interface or base type
            factory: Callable receiving this container and returning the service
            lifetime: Service lifetime management
        """
        self._services[service_type] = ServiceRegistration(
            service_type, factory=factory, lifetime=lifetime)
        logger.debug(f"Registered {service_type.__name__} with {lifetime.name} lifetime")

    def resolve(self, service_type: Type[T]) -> T:
        """
        Resolve a service instance.

        Raises:
            ServiceNotRegisteredException: If service not registered
            ServiceResolutionException: If the factory fails
            CircularDependencyException: If factories form a cycle
        """
        if service_type in self._resolution_stack:
            cycle = " -> ".join([t.__name__ for t in self._resolution_stack] +
                                [service_type.__name__])
            raise CircularDependencyException(f"Circular dependency detected: {cycle}")

        registration = self._services.get(service_type)
        if registration is None:
            raise ServiceNotRegisteredException(
                f"Service {service_type.__name__} is not registered")

        if registration.instance is not None:
            return registration.instance  # type: ignore[no-any-return]

        assert registration.factory is not None
        self._resolution_stack.append(service_type)
        try:
            instance = registration.factory(self)
        except (ServiceNotRegisteredException, CircularDependencyException):
            raise
        except Exception as e:
            raise ServiceResolutionException(
                f"Failed to resolve {service_type.__name__}: {e}") from e
        finally:
            self._resolution_stack.pop()

        if registration.lifetime == ServiceLifetime.SINGLETON:
            registration.instance = instance
        return instance  # type: ignore[no-any-return]

    def try_resolve(self, service_type: Type[T]) -> Optional[T]:
        """Resolve a service, returning None when it is unavailable."""
        try:
            return self.resolve(service_type)
        except (ServiceNotRegisteredException, ServiceResolutionException, CircularDependencyException):
            return None

    def is_registered(self, service_type: Type[Any]) -> bool:
        return service_type in self._services

    def get_registrations(self) -> Dict[Type[Any], ServiceRegistration]:
        """Get all service registrations (for debugging)."""
        return self._services.copy()
