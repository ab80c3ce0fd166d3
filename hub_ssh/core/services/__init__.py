"""
Core relay services.

These services implement the relay engine on top of the core interfaces and
carry no dependency on asyncssh or the web framework.
"""

from .credentials import CredentialResolver, parse_port
from .registry import ConnectionRegistry, RegistryEntry
from .relay import FileTransferFactory, RelayInstance, RelayState, SessionFactory

__all__ = [
    'CredentialResolver',
    'parse_port',
    'ConnectionRegistry',
    'RegistryEntry',
    'RelayInstance',
    'RelayState',
    'SessionFactory',
    'FileTransferFactory',
]
