"""
API router modules for the HTTP and WebSocket endpoints.
"""

from . import health, terminal

__all__ = [
    "health",
    "terminal",
]
