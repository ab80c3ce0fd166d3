"""
Domain models for the relay engine: connection descriptors, wire messages
and the error taxonomy.
"""

from .descriptor import AuthKind, ConnectionDescriptor, StoredProfile, DEFAULT_SSH_PORT
from .errors import (
    RelayError, ResolutionError, InvalidInputError, NotFoundError, MissingCredentialsError,
    ConnectionFailure, ConnectError, AuthError, SSHProtocolError, ShellOpenError,
    StreamError, FileTransferError, NotConnectedError, SubsystemError, OperationError
)

__all__ = [
    "AuthKind",
    "ConnectionDescriptor",
    "StoredProfile",
    "DEFAULT_SSH_PORT",
    "RelayError",
    "ResolutionError",
    "InvalidInputError",
    "NotFoundError",
    "MissingCredentialsError",
    "ConnectionFailure",
    "ConnectError",
    "AuthError",
    "SSHProtocolError",
    "ShellOpenError",
    "StreamError",
    "FileTransferError",
    "NotConnectedError",
    "SubsystemError",
    "OperationError",
]
