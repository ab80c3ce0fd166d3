"""
Core module containing the relay engine, domain models, and service interfaces.

This module defines the core abstractions and business logic of the Hub SSH
relay, independent of asyncssh, FastAPI and other infrastructure concerns.
"""

from .interfaces.lifecycle import IStartable, IStoppable, IHealthCheckable, IComponent
from .interfaces.channel import IClientChannel
from .interfaces.profiles import IProfileStore
from .interfaces.ssh import ISSHSession, IFileTransfer
from .domain.descriptor import AuthKind, ConnectionDescriptor, StoredProfile
from .domain.errors import RelayError

__all__ = [
    "IStartable",
    "IStoppable",
    "IHealthCheckable",
    "IComponent",
    "IClientChannel",
    "IProfileStore",
    "ISSHSession",
    "IFileTransfer",
    "AuthKind",
    "ConnectionDescriptor",
    "StoredProfile",
    "RelayError",
]
