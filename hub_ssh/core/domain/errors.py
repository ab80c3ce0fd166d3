"""
Error taxonomy for the relay engine.

Every error carries a human-readable ``message`` that is safe to send to the
browser client. The class decides how far a failure propagates: resolution
errors never touch resources, connection errors abort authentication,
stream errors tear the whole relay down, subsystem errors tear down only the
file-transfer sub-channel and operation errors affect one correlation id.
"""

from typing import Optional


class RelayError(Exception):
    """Base class for all relay errors."""

    default_message = "Relay error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# Resolution errors (raised before any resource is opened)

class ResolutionError(RelayError):
    """Connect request could not be turned into a connection descriptor."""


class InvalidInputError(ResolutionError):
    default_message = "Invalid connection request"


class NotFoundError(ResolutionError):
    default_message = "Session not found"


class MissingCredentialsError(ResolutionError):
    default_message = "No valid credentials stored for this session"


# Connection errors (abort the authenticating state)

class ConnectionFailure(RelayError):
    """SSH transport or shell could not be established."""


class ConnectError(ConnectionFailure):
    default_message = "Connection failed. Please check the host and port."


class AuthError(ConnectionFailure):
    default_message = "Authentication failed. Please check your credentials."


class SSHProtocolError(ConnectionFailure):
    default_message = "Protocol error"


class ShellOpenError(ConnectionFailure):
    default_message = "Cannot start shell"


# Session errors

class StreamError(RelayError):
    default_message = "Shell error"


# File-transfer errors

class FileTransferError(RelayError):
    """Base class for errors surfaced as ``sftp_error``."""


class NotConnectedError(FileTransferError):
    default_message = "SSH connection not established"


class SubsystemError(FileTransferError):
    default_message = "Failed to initialize SFTP"


class OperationError(FileTransferError):
    default_message = "SFTP operation failed"
