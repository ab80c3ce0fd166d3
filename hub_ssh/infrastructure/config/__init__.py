"""
Configuration infrastructure: dataclass models plus a YAML/JSON loader
with environment variable overrides.
"""

from .models import (
    ApplicationConfig, ServerConfig, SSHConfig, SFTPConfig,
    RelayConfig, ProfilesConfig, LoggingConfig
)
from .loader import ConfigLoader

__all__ = [
    "ApplicationConfig",
    "ServerConfig",
    "SSHConfig",
    "SFTPConfig",
    "RelayConfig",
    "ProfilesConfig",
    "LoggingConfig",
    "ConfigLoader",
]
