"""
Core interfaces defining the contracts between the relay engine and the
resources it drives.
"""

from .lifecycle import IStartable, IStoppable, IHealthCheckable, IComponent
from .profiles import IProfileStore
from .channel import IClientChannel
from .ssh import (
    ISSHSession, IFileTransfer, SessionStatus,
    OutputHandler, CloseHandler, MessageSender
)

__all__ = [
    "IStartable",
    "IStoppable",
    "IHealthCheckable",
    "IComponent",
    "IProfileStore",
    "IClientChannel",
    "ISSHSession",
    "IFileTransfer",
    "SessionStatus",
    "OutputHandler",
    "CloseHandler",
    "MessageSender",
]
