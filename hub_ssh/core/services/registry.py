"""
Process-wide registry of live relay instances.

The registry maps a relay identifier to the handles its relay owns. It never
closes those handles itself: entries are bookkeeping references used for
file-transfer idempotence, health reporting and shutdown, which is delegated
back to the owning relay.
"""

import time
from dataclasses import dataclass, field
from threading import Lock
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from loguru import logger

from ..interfaces.lifecycle import IComponent
from ..interfaces.ssh import IFileTransfer, ISSHSession

if TYPE_CHECKING:
    from .relay import RelayInstance


@dataclass
class RegistryEntry:
    """Bookkeeping record for one relay instance."""
    relay_id: str
    owner: "RelayInstance"
    ssh_session: Optional[ISSHSession] = None
    file_transfer: Optional[IFileTransfer] = None
    live: bool = True
    registered_at: float = field(default_factory=time.time)

    @property
    def file_transfer_ready(self) -> bool:
        return self.file_transfer is not None and self.file_transfer.is_ready


class ConnectionRegistry(IComponent):
    """
    Identifier-keyed registry of live relays.

    All access goes through identifier-scoped insert/lookup/delete under a
    lock, so independent relays can use it concurrently. At most one entry
    exists per identifier; operations that name an owner only affect the
    entry when that owner still holds it.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, RegistryEntry] = {}
        self._lock = Lock()
        self._running = False

    @property
    def name(self) -> str:
        return "ConnectionRegistry"

    def register(self, relay_id: str, owner: "RelayInstance", ssh_session: ISSHSession) -> RegistryEntry:
        """
        Register a relay's SSH session under its identifier.

        A previous entry for the same identifier is superseded; its relay
        keeps running but no longer owns the registry slot.
        """
        entry = RegistryEntry(relay_id=relay_id, owner=owner, ssh_session=ssh_session)
        with self._lock:
            previous = self._entries.get(relay_id)
            self._entries[relay_id] = entry

        if previous is not None and previous.owner is not owner:
            logger.warning(f"Relay {relay_id} superseded an existing registry entry")
        logger.debug(f"Registered relay {relay_id} ({len(self)} live)")
        return entry

    def attach_file_transfer(self, relay_id: str, owner: "RelayInstance", file_transfer: IFileTransfer) -> bool:
        """Record the file-transfer handle for a registered relay."""
        with self._lock:
            entry = self._entries.get(relay_id)
            if entry is None or entry.owner is not owner:
                return False
            entry.file_transfer = file_transfer
            return True

    def detach_file_transfer(self, relay_id: str, owner: "RelayInstance") -> None:
        """Forget the file-transfer handle after a sub-channel teardown."""
        with self._lock:
            entry = self._entries.get(relay_id)
            if entry is not None and entry.owner is owner:
                entry.file_transfer = None

    def lookup(self, relay_id: str) -> Optional[RegistryEntry]:
        with self._lock:
            return self._entries.get(relay_id)

    def deregister(self, relay_id: str, owner: "RelayInstance") -> bool:
        """
        Remove a relay's entry.

        Returns:
            True if the entry was removed, False if it was absent or now
            belongs to another relay
        """
        with self._lock:
            entry = self._entries.get(relay_id)
            if entry is None or entry.owner is not owner:
                return False
            entry.live = False
            del self._entries[relay_id]

        logger.debug(f"Deregistered relay {relay_id} ({len(self)} live)")
        return True

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._entries.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, relay_id: object) -> bool:
        with self._lock:
            return relay_id in self._entries

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        logger.info("Connection registry started")

    async def stop(self) -> None:
        """Shut down every registered relay."""
        if not self._running:
            return

        with self._lock:
            entries = list(self._entries.values())

        for entry in entries:
            try:
                await entry.owner.shutdown()
            except Exception as e:
                logger.error(f"Error shutting down relay {entry.relay_id}: {e}")

        with self._lock:
            self._entries.clear()

        self._running = False
        logger.info(f"Connection registry stopped ({len(entries)} relays closed)")

    async def check_health(self) -> Dict[str, Any]:
        with self._lock:
            entries = list(self._entries.values())

        now = time.time()
        return {
            "healthy": self._running,
            "status": "running" if self._running else "stopped",
            "details": {
                "live_relays": sum(1 for e in entries if e.live),
                "file_transfer_attached": sum(1 for e in entries if e.file_transfer_ready),
                "relays": [
                    {
                        "id": e.relay_id,
                        "live": e.live,
                        "file_transfer_ready": e.file_transfer_ready,
                        "connected_seconds": round(now - e.registered_at, 1),
                    }
                    for e in entries
                ],
            }
        }
