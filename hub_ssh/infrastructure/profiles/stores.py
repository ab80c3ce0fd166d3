"""
Read-only profile store implementations.

``FileProfileStore`` reads a YAML or JSON list of profiles,
``SQLiteProfileStore`` reads the ``sessions`` table of an existing session
database and ``NullProfileStore`` knows no profiles at all.
"""

import asyncio
import json
import sqlite3
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from loguru import logger

from ...core.domain.descriptor import StoredProfile
from ...core.interfaces.profiles import IProfileStore
from ..config.models import ProfilesConfig


def profile_from_record(record: Mapping[str, Any]) -> StoredProfile:
    """
    Build a profile from a stored record.

    Accepts both snake_case and camelCase key spellings for the private key.
    """
    return StoredProfile(
        profile_id=str(record["id"]),
        host=record.get("host") or "",
        username=record.get("username") or "",
        auth=record.get("auth") or "",
        port=record.get("port"),
        password=record.get("password"),
        private_key=record.get("private_key", record.get("privateKey")),
        passphrase=record.get("passphrase"),
        name=record.get("name"),
    )


class NullProfileStore(IProfileStore):
    """Profile store with no profiles."""

    @property
    def name(self) -> str:
        return "NullProfileStore"

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    async def check_health(self) -> Dict[str, Any]:
        return {'healthy': True, 'status': 'disabled', 'details': {'backend': 'none'}}

    async def get_by_id(self, profile_id: str) -> Optional[StoredProfile]:
        return None


class FileProfileStore(IProfileStore):
    """
    Profile store backed by a YAML or JSON file.

    The file holds a list of profile objects, each with an ``id``. It is read
    once on start; lookups never touch the disk.
    """

    def __init__(self, path: str) -> None:
        self._path = Path(path)
        self._profiles: Dict[str, StoredProfile] = {}
        self._loaded = False

    @property
    def name(self) -> str:
        return "FileProfileStore"

    async def start(self) -> None:
        self._profiles = self._load()
        self._loaded = True
        logger.info(f"Loaded {len(self._profiles)} stored profiles from {self._path}")

    async def stop(self) -> None:
        self._profiles.clear()
        self._loaded = False

    async def check_health(self) -> Dict[str, Any]:
        return {
            'healthy': self._loaded,
            'status': 'loaded' if self._loaded else 'not loaded',
            'details': {'backend': 'file', 'path': str(self._path), 'profiles': len(self._profiles)}
        }

    async def get_by_id(self, profile_id: str) -> Optional[StoredProfile]:
        return self._profiles.get(profile_id)

    def _load(self) -> Dict[str, StoredProfile]:
        if not self._path.exists():
            raise FileNotFoundError(f"Profile file not found: {self._path}")

        with open(self._path, 'r', encoding='utf-8') as f:
            if self._path.suffix.lower() in ('.yaml', '.yml'):
                records = yaml.safe_load(f) or []
            elif self._path.suffix.lower() == '.json':
                records = json.load(f)
            else:
                raise ValueError(f"Unsupported profile file format: {self._path.suffix}")

        if not isinstance(records, list):
            raise ValueError(f"Profile file {self._path} must contain a list of profiles")

        profiles: Dict[str, StoredProfile] = {}
        for record in records:
            if not isinstance(record, dict) or record.get("id") is None:
                logger.warning(f"Skipping profile without an id in {self._path}")
                continue
            profile = profile_from_record(record)
            profiles[profile.profile_id] = profile

        return profiles


class SQLiteProfileStore(IProfileStore):
    """
    Profile store reading the ``sessions`` table of a SQLite database.

    The database is opened read-only per lookup in a worker thread so the
    event loop never blocks on disk I/O.
    """

    QUERY = (
        "SELECT id, name, host, port, username, auth, password, private_key, passphrase "
        "FROM sessions WHERE id = ?"
    )

    def __init__(self, path: str) -> None:
        self._path = Path(path)
        self._running = False

    @property
    def name(self) -> str:
        return "SQLiteProfileStore"

    async def start(self) -> None:
        if not self._path.exists():
            raise FileNotFoundError(f"Profile database not found: {self._path}")
        self._running = True
        logger.info(f"Using stored profiles from {self._path}")

    async def stop(self) -> None:
        self._running = False

    async def check_health(self) -> Dict[str, Any]:
        healthy = self._running and self._path.exists()
        return {
            'healthy': healthy,
            'status': 'running' if healthy else 'unavailable',
            'details': {'backend': 'sqlite', 'path': str(self._path)}
        }

    async def get_by_id(self, profile_id: str) -> Optional[StoredProfile]:
        return await asyncio.to_thread(self._fetch, profile_id)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(f"{self._path.resolve().as_uri()}?mode=ro", uri=True)
        conn.row_factory = sqlite3.Row
        return conn

    def _fetch(self, profile_id: str) -> Optional[StoredProfile]:
        conn = self._connect()
        try:
            row = conn.execute(self.QUERY, (profile_id,)).fetchone()
        finally:
            conn.close()

        if row is None:
            return None
        return profile_from_record(dict(row))


def create_profile_store(config: ProfilesConfig) -> IProfileStore:
    """Create the profile store selected by configuration."""
    if config.backend == "file":
        return FileProfileStore(config.path or "")
    if config.backend == "sqlite":
        return SQLiteProfileStore(config.path or "")
    return NullProfileStore()
