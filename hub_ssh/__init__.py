"""
Hub SSH - WebSocket relay between browser terminals and SSH servers.

Each browser connection gets a relay instance that resolves credentials,
opens an SSH transport with an interactive shell, and optionally runs SFTP
file transfers over the same transport.
"""

__version__ = "0.1.0"

from .core.interfaces.lifecycle import IStartable, IStoppable, IHealthCheckable, IComponent
from .core.domain.descriptor import AuthKind, ConnectionDescriptor, StoredProfile
from .core.domain.errors import RelayError
from .application.container import Container

__all__ = [
    "IStartable",
    "IStoppable",
    "IHealthCheckable",
    "IComponent",
    "AuthKind",
    "ConnectionDescriptor",
    "StoredProfile",
    "RelayError",
    "Container",
]
