"""
Configuration models and data structures.

This module defines the configuration models used throughout the application,
providing type safety and validation for configuration values.
"""

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional


MIB = 1024 * 1024


@dataclass
class ServerConfig:
    """HTTP/WebSocket server configuration."""
    host: str = "0.0.0.0"
    port: int = 8080
    max_message_size: int = 16 * MIB
    ws_ping_interval: float = 20.0
    ws_ping_timeout: float = 20.0
    allowed_origins: List[str] = field(default_factory=lambda: ["*"])


@dataclass
class SSHConfig:
    """Outbound SSH connection settings shared by every relay."""
    ready_timeout: float = 20.0
    keepalive_interval: float = 15.0
    keepalive_count_max: int = 10
    term_type: str = "xterm-256color"
    initial_cols: int = 80
    initial_rows: int = 24
    read_size: int = 65536
    # None accepts any host key
    known_hosts: Optional[str] = None
    client_version: str = "HubSSH_Relay_1.0"
    encryption_algs: List[str] = field(default_factory=lambda: [
        "aes128-ctr",
        "aes192-ctr",
        "aes256-ctr",
        "aes128-gcm@openssh.com",
        "aes256-gcm@openssh.com",
    ])


@dataclass
class SFTPConfig:
    """File-transfer sub-channel settings."""
    init_timeout: float = 15.0
    max_transfer_size: int = 16 * MIB


@dataclass
class RelayConfig:
    """Per-connection relay settings."""
    max_buffered_input: int = 65536


@dataclass
class ProfilesConfig:
    """Stored connection profile backend."""
    backend: str = "none"
    path: Optional[str] = None


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    log_directory: str = "logs"
    max_file_size: str = "10 MB"
    backup_count: int = 5
    console_enabled: bool = True
    file_enabled: bool = False


PROFILE_BACKENDS = ("none", "file", "sqlite")


@dataclass
class ApplicationConfig:
    """Main application configuration."""

    # Basic application settings
    name: str = "Hub SSH"
    version: str = "0.1.0"
    debug: bool = False
    environment: str = "production"

    # Component configurations
    server: ServerConfig = field(default_factory=ServerConfig)
    ssh: SSHConfig = field(default_factory=SSHConfig)
    sftp: SFTPConfig = field(default_factory=SFTPConfig)
    relay: RelayConfig = field(default_factory=RelayConfig)
    profiles: ProfilesConfig = field(default_factory=ProfilesConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    config_file_path: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self._validate_ports()
        self._validate_timeouts()
        self._validate_sizes()
        self._validate_profiles()
        self._validate_paths()

    def _validate_ports(self) -> None:
        if not (1 <= self.server.port <= 65535):
            raise ValueError(
                f"Server port must be between 1 and 65535, got {self.server.port}")

    def _validate_timeouts(self) -> None:
        timeouts = [
            ("SSH ready timeout", self.ssh.ready_timeout),
            ("SFTP init timeout", self.sftp.init_timeout),
        ]

        for name, timeout in timeouts:
            if timeout <= 0:
                raise ValueError(f"{name} must be positive, got {timeout}")

        if self.ssh.keepalive_interval < 0:
            raise ValueError(
                f"SSH keepalive interval cannot be negative, got {self.ssh.keepalive_interval}")

    def _validate_sizes(self) -> None:
        sizes = [
            ("Max message size", self.server.max_message_size),
            ("Max transfer size", self.sftp.max_transfer_size),
            ("SSH read size", self.ssh.read_size),
        ]

        for name, size in sizes:
            if size <= 0:
                raise ValueError(f"{name} must be positive, got {size}")

        if self.relay.max_buffered_input < 0:
            raise ValueError("Max buffered input cannot be negative")

    def _validate_profiles(self) -> None:
        if self.profiles.backend not in PROFILE_BACKENDS:
            raise ValueError(
                f"Unknown profile backend {self.profiles.backend!r}, "
                f"expected one of {', '.join(PROFILE_BACKENDS)}")

        if self.profiles.backend != "none" and not self.profiles.path:
            raise ValueError(
                f"Profile backend {self.profiles.backend!r} requires a path")

    def _validate_paths(self) -> None:
        if self.logging.file_enabled:
            path = Path(self.logging.log_directory)
            try:
                path.mkdir(parents=True, exist_ok=True)
            except Exception as e:
                raise ValueError(f"Cannot create directory {path}: {e}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ApplicationConfig':
        """Create configuration from dictionary."""
        return cls(
            name=data.get('name', 'Hub SSH'),
            version=data.get('version', '0.1.0'),
            debug=data.get('debug', False),
            environment=data.get('environment', 'production'),
            server=ServerConfig(**data.get('server', {})),
            ssh=SSHConfig(**data.get('ssh', {})),
            sftp=SFTPConfig(**data.get('sftp', {})),
            relay=RelayConfig(**data.get('relay', {})),
            profiles=ProfilesConfig(**data.get('profiles', {})),
            logging=LoggingConfig(**data.get('logging', {})),
            config_file_path=data.get('config_file_path'),
        )
