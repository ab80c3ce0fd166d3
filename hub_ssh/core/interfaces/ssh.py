"""
SSH service interfaces for the relay engine.

This module defines the contracts between a relay instance and the
resources it owns: the SSH session (transport plus interactive shell) and
the file-transfer sub-channel opened on that same transport.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from ..domain.descriptor import ConnectionDescriptor
from ..domain.errors import RelayError


OutputHandler = Callable[[bytes], Awaitable[None]]
"""Receives shell output, in remote order."""

CloseHandler = Callable[[Optional[RelayError]], Awaitable[None]]
"""Called once when the session ends; ``None`` means a clean close."""

MessageSender = Callable[[Dict[str, Any]], Awaitable[None]]
"""Sends one structured message to the client channel."""


class SessionStatus(Enum):
    """SSH session status."""
    NEW = "new"
    CONNECTING = "connecting"
    READY = "ready"
    CLOSED = "closed"


class ISSHSession(ABC):
    """One outbound SSH transport with one interactive shell channel."""

    @abstractmethod
    async def open(self, descriptor: ConnectionDescriptor) -> None:
        """
        Connect, authenticate and open the shell.

        Returns only once the shell channel is open.

        Raises:
            ConnectError: Transport unreachable, refused or timed out
            AuthError: Credentials rejected
            SSHProtocolError: SSH negotiation failed
            ShellOpenError: Transport is up but the shell could not be opened
        """
        pass

    @abstractmethod
    def write(self, data: bytes) -> None:
        """Write bytes to the shell input."""
        pass

    @abstractmethod
    def resize(self, cols: int, rows: int, width: int = 0, height: int = 0) -> None:
        """Change the shell's terminal window dimensions."""
        pass

    @abstractmethod
    async def open_sftp(self) -> Any:
        """Open an SFTP client on the session's transport."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the shell and transport. Safe to call more than once."""
        pass

    @property
    @abstractmethod
    def is_live(self) -> bool:
        """True while the shell is open and the transport is up."""
        pass

    @property
    @abstractmethod
    def status(self) -> SessionStatus:
        """Current session status."""
        pass


class IFileTransfer(ABC):
    """File-transfer sub-channel with correlated asynchronous operations."""

    @abstractmethod
    async def init(self) -> None:
        """
        Attach the sub-channel. Idempotent once ready.

        Raises:
            NotConnectedError: No live SSH session
            SubsystemError: The sub-channel could not be opened
        """
        pass

    @abstractmethod
    def submit_list(self, path: str) -> None:
        """Start a directory listing; the result is sent to the client."""
        pass

    @abstractmethod
    def submit_stat(self, path: str) -> None:
        """Start a stat call; the result is sent to the client."""
        pass

    @abstractmethod
    def submit_download(self, path: str, file_id: Optional[str]) -> None:
        """Start a download tagged with ``file_id``."""
        pass

    @abstractmethod
    def submit_upload(self, path: str, filename: str, file_id: Optional[str], data: bytes) -> None:
        """Start an upload tagged with ``file_id``."""
        pass

    @abstractmethod
    async def fail_all(self, message: str) -> None:
        """Answer every pending operation with ``sftp_error`` and release the sub-channel."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Cancel pending operations silently and release the sub-channel."""
        pass

    @property
    @abstractmethod
    def is_ready(self) -> bool:
        """True once the sub-channel is open."""
        pass

    @property
    @abstractmethod
    def pending_count(self) -> int:
        """Number of in-flight operations."""
        pass
