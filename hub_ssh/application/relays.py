"""
Relay instance factory.

Binds the process-wide collaborators (credential resolver, connection
registry, configuration) to the asyncssh adapters so the presentation layer
only has to supply a client channel.
"""

from typing import Awaitable, Callable

from ..core.interfaces.channel import IClientChannel
from ..core.interfaces.ssh import CloseHandler, IFileTransfer, ISSHSession, MessageSender, OutputHandler
from ..core.services.credentials import CredentialResolver
from ..core.services.registry import ConnectionRegistry
from ..core.services.relay import RelayInstance
from ..infrastructure.config.models import ApplicationConfig
from ..infrastructure.ssh.session import SSHSession
from ..infrastructure.ssh.sftp import FileTransferRelay


class RelayFactory:
    """Creates one relay instance per client connection."""

    def __init__(
        self,
        config: ApplicationConfig,
        resolver: CredentialResolver,
        registry: ConnectionRegistry
    ) -> None:
        self._config = config
        self._resolver = resolver
        self._registry = registry

    def create(self, channel: IClientChannel) -> RelayInstance:
        return RelayInstance(
            channel=channel,
            resolver=self._resolver,
            registry=self._registry,
            session_factory=self._create_session,
            file_transfer_factory=self._create_file_transfer,
            max_buffered_input=self._config.relay.max_buffered_input,
        )

    def _create_session(self, on_output: OutputHandler, on_closed: CloseHandler) -> ISSHSession:
        return SSHSession(self._config.ssh, on_output, on_closed)

    def _create_file_transfer(
        self,
        session: ISSHSession,
        send: MessageSender,
        on_failed: Callable[[], Awaitable[None]]
    ) -> IFileTransfer:
        return FileTransferRelay(session, send, on_failed, self._config.sftp)
