"""
FastAPI application serving the WebSocket relay and health endpoints.
"""

from .app import create_app

__all__ = ["create_app"]
