"""
Client channel interface.

A client channel is the browser-facing, message-oriented transport a relay
instance writes to. The presentation layer adapts a WebSocket to it.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict


class IClientChannel(ABC):
    """Outbound side of one browser connection."""

    @abstractmethod
    async def send_json(self, message: Dict[str, Any]) -> None:
        """Send a structured control message."""
        pass

    @abstractmethod
    async def send_bytes(self, data: bytes) -> None:
        """Send an opaque binary frame."""
        pass

    @abstractmethod
    async def close(self, code: int = 1000) -> None:
        """Close the channel. Safe to call more than once."""
        pass

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True while frames can still be sent."""
        pass
