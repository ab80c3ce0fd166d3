"""
Application startup and configuration logic.

This module registers the relay's services with the DI container and runs
the start/stop sequence of its long-lived components.
"""

from typing import List, Type

from loguru import logger

from .container import Container
from .relays import RelayFactory
from ..core.interfaces.lifecycle import IComponent
from ..core.interfaces.profiles import IProfileStore
from ..core.services.credentials import CredentialResolver
from ..core.services.registry import ConnectionRegistry
from ..infrastructure.config.models import ApplicationConfig
from ..infrastructure.profiles.stores import create_profile_store


class ApplicationStartup:
    """
    Manages application startup and service configuration.

    Components start in ``STARTUP_ORDER`` and stop in reverse, so the
    registry closes every live relay before the profile store goes away.
    """

    STARTUP_ORDER: List[Type[IComponent]] = [
        IProfileStore,
        ConnectionRegistry,
    ]

    def __init__(self, container: Container) -> None:
        self._container = container
        self._started_components: List[IComponent] = []

    def configure_services(self, config: ApplicationConfig) -> None:
        """
        Register all application services.

        Args:
            config: Application configuration
        """
        logger.info("Configuring application services...")

        self._container.register_instance(ApplicationConfig, config)
        self._container.register_factory(
            IProfileStore,  # type: ignore[type-abstract]
            lambda c: create_profile_store(c.resolve(ApplicationConfig).profiles))
        self._container.register_factory(
            ConnectionRegistry, lambda c: ConnectionRegistry())
        self._container.register_factory(
            CredentialResolver,
            lambda c: CredentialResolver(c.resolve(IProfileStore)))  # type: ignore[type-abstract]
        self._container.register_factory(
            RelayFactory,
            lambda c: RelayFactory(
                c.resolve(ApplicationConfig),
                c.resolve(CredentialResolver),
                c.resolve(ConnectionRegistry)))

        logger.info("Service configuration completed")

    async def start_application(self) -> None:
        """Start all components in order, unwinding on failure."""
        logger.info("Starting application components...")

        for component_type in self.STARTUP_ORDER:
            component = self._container.resolve(component_type)
            try:
                await component.start()
            except Exception as e:
                logger.error(f"Failed to start component {component.name}: {e}")
                await self.stop_application()
                raise

            self._started_components.append(component)
            logger.info(f"Started component: {component.name}")

        logger.info("Application startup completed successfully")

    async def stop_application(self) -> None:
        """Stop all started components in reverse order."""
        logger.info("Stopping application components...")

        for component in reversed(self._started_components):
            try:
                await component.stop()
                logger.info(f"Stopped component: {component.name}")
            except Exception as e:
                logger.error(f"Error stopping component {component.name}: {e}")

        self._started_components.clear()
        logger.info("Application shutdown completed")

    @property
    def started_components(self) -> List[IComponent]:
        return list(self._started_components)
