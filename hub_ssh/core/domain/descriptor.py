"""
Connection descriptor domain model.

A descriptor is the resolved, validated set of parameters used to open one
SSH transport. It is built once per connect attempt and never changes.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


DEFAULT_SSH_PORT = 22


class AuthKind(Enum):
    """Supported authentication methods."""
    PASSWORD = "password"
    PRIVATE_KEY = "privateKey"

    @classmethod
    def parse(cls, value: object) -> Optional["AuthKind"]:
        """Map a wire value onto an auth kind, ``None`` when unknown."""
        for kind in cls:
            if value == kind.value:
                return kind
        return None


@dataclass(frozen=True)
class ConnectionDescriptor:
    """
    Immutable connection parameters for one SSH transport.

    Secret material is excluded from ``repr`` so a descriptor can never leak
    credentials through a log line or traceback.
    """

    host: str
    username: str
    auth_kind: AuthKind
    secret: str = field(repr=False)
    port: int = DEFAULT_SSH_PORT
    passphrase: Optional[str] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("Descriptor host cannot be empty")
        if not self.username:
            raise ValueError("Descriptor username cannot be empty")
        if not (1 <= self.port <= 65535):
            raise ValueError(f"Port must be between 1 and 65535, got {self.port}")
        if not self.secret:
            raise ValueError("Descriptor secret cannot be empty")

    @property
    def address(self) -> str:
        """``user@host:port`` form used in log messages."""
        return f"{self.username}@{self.host}:{self.port}"


@dataclass(frozen=True)
class StoredProfile:
    """Connection profile as returned by a profile store."""

    profile_id: str
    host: str
    username: str
    auth: str
    port: Optional[int] = DEFAULT_SSH_PORT
    password: Optional[str] = field(default=None, repr=False)
    private_key: Optional[str] = field(default=None, repr=False)
    passphrase: Optional[str] = field(default=None, repr=False)
    name: Optional[str] = None
