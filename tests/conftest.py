"""
Shared fakes and fixtures for the relay tests.

The fakes stand in for the browser channel, the asyncssh-backed session and
the SFTP client so no test touches the network.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional, Tuple, Union

import asyncssh
import pytest

from hub_ssh.core.domain.descriptor import ConnectionDescriptor, StoredProfile
from hub_ssh.core.domain.errors import ConnectionFailure, NotConnectedError, RelayError
from hub_ssh.core.interfaces.channel import IClientChannel
from hub_ssh.core.interfaces.profiles import IProfileStore
from hub_ssh.core.interfaces.ssh import (
    CloseHandler, IFileTransfer, ISSHSession, MessageSender, OutputHandler, SessionStatus
)
from hub_ssh.core.services.credentials import CredentialResolver
from hub_ssh.core.services.registry import ConnectionRegistry
from hub_ssh.core.services.relay import RelayInstance
from hub_ssh.infrastructure.config.models import SFTPConfig
from hub_ssh.infrastructure.ssh.sftp import FileTransferRelay


async def settle(rounds: int = 20) -> None:
    """Let spawned tasks run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeChannel(IClientChannel):
    """Records everything a relay sends to the client."""

    def __init__(self) -> None:
        self.sent: List[Tuple[str, Any]] = []
        self.closed = False
        self.close_code: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return not self.closed

    async def send_json(self, message: Dict[str, Any]) -> None:
        self.sent.append(("json", message))

    async def send_bytes(self, data: bytes) -> None:
        self.sent.append(("bytes", data))

    async def close(self, code: int = 1000) -> None:
        if not self.closed:
            self.closed = True
            self.close_code = code

    @property
    def messages(self) -> List[Dict[str, Any]]:
        return [payload for kind, payload in self.sent if kind == "json"]

    @property
    def output(self) -> List[bytes]:
        return [payload for kind, payload in self.sent if kind == "bytes"]

    def types(self) -> List[str]:
        return [message["type"] for message in self.messages]


class FakeSSHSession(ISSHSession):
    """In-memory SSH session driven by the test."""

    def __init__(
        self,
        on_output: OutputHandler,
        on_closed: CloseHandler,
        open_error: Optional[ConnectionFailure] = None,
        gate: Optional[asyncio.Event] = None
    ) -> None:
        self.on_output = on_output
        self.on_closed = on_closed
        self.open_error = open_error
        self.gate = gate

        self.descriptor: Optional[ConnectionDescriptor] = None
        self.written: List[bytes] = []
        self.resizes: List[Tuple[int, int, int, int]] = []
        self.resize_error: Optional[Exception] = None
        self.sftp_client: Any = None
        self.open_sftp_errors: List[Exception] = []
        self.open_sftp_calls = 0
        self.close_calls = 0
        self._status = SessionStatus.NEW

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def is_live(self) -> bool:
        return self._status is SessionStatus.READY

    async def open(self, descriptor: ConnectionDescriptor) -> None:
        self.descriptor = descriptor
        self._status = SessionStatus.CONNECTING
        if self.gate is not None:
            await self.gate.wait()
        if self.open_error is not None:
            self._status = SessionStatus.CLOSED
            raise self.open_error
        self._status = SessionStatus.READY

    def write(self, data: bytes) -> None:
        self.written.append(data)

    def resize(self, cols: int, rows: int, width: int = 0, height: int = 0) -> None:
        if self.resize_error is not None:
            raise self.resize_error
        self.resizes.append((cols, rows, width, height))

    async def open_sftp(self) -> Any:
        self.open_sftp_calls += 1
        if self.open_sftp_errors:
            raise self.open_sftp_errors.pop(0)
        return self.sftp_client if self.sftp_client is not None else object()

    async def close(self) -> None:
        self.close_calls += 1
        self._status = SessionStatus.CLOSED

    async def emit(self, data: bytes) -> None:
        await self.on_output(data)

    async def end(self, error: Optional[RelayError] = None) -> None:
        self._status = SessionStatus.CLOSED
        await self.on_closed(error)


class FakeFileTransfer(IFileTransfer):
    """Records submitted operations instead of running them."""

    def __init__(self, session: ISSHSession, send: MessageSender, on_failed: Any) -> None:
        self.session = session
        self.send = send
        self.on_failed = on_failed
        self.init_error: Optional[RelayError] = None
        self.init_calls = 0
        self.submitted: List[Tuple[Any, ...]] = []
        self.failed_with: List[str] = []
        self.close_calls = 0
        self._ready = False

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def pending_count(self) -> int:
        return 0

    async def init(self) -> None:
        self.init_calls += 1
        if self.init_error is not None:
            raise self.init_error
        self._ready = True

    def submit_list(self, path: str) -> None:
        self.submitted.append(("list", path))

    def submit_stat(self, path: str) -> None:
        self.submitted.append(("stat", path))

    def submit_download(self, path: str, file_id: Optional[str]) -> None:
        self.submitted.append(("download", path, file_id))

    def submit_upload(self, path: str, filename: str, file_id: Optional[str], data: bytes) -> None:
        self.submitted.append(("upload", path, filename, file_id, data))

    async def fail_all(self, message: str) -> None:
        self.failed_with.append(message)
        self._ready = False

    async def close(self) -> None:
        self.close_calls += 1
        self._ready = False


class DictProfileStore(IProfileStore):
    """Profile store backed by a dictionary."""

    def __init__(self, profiles: Optional[Dict[str, StoredProfile]] = None) -> None:
        self.profiles = profiles or {}

    @property
    def name(self) -> str:
        return "DictProfileStore"

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    async def check_health(self) -> Dict[str, Any]:
        return {"healthy": True, "status": "running", "details": {}}

    async def get_by_id(self, profile_id: str) -> Optional[StoredProfile]:
        return self.profiles.get(profile_id)


class RelayHarness:
    """A relay instance wired to fakes."""

    def __init__(
        self,
        profiles: Optional[Dict[str, StoredProfile]] = None,
        open_error: Optional[ConnectionFailure] = None,
        gate: Optional[asyncio.Event] = None,
        max_buffered_input: int = 65536
    ) -> None:
        self.channel = FakeChannel()
        self.registry = ConnectionRegistry()
        self.open_error = open_error
        self.gate = gate
        self.sessions: List[FakeSSHSession] = []
        self.transfers: List[Any] = []
        self.relay = RelayInstance(
            channel=self.channel,
            resolver=CredentialResolver(DictProfileStore(profiles)),
            registry=self.registry,
            session_factory=self._create_session,
            file_transfer_factory=self._create_file_transfer,
            max_buffered_input=max_buffered_input,
        )

    def _create_session(self, on_output: OutputHandler, on_closed: CloseHandler) -> FakeSSHSession:
        session = FakeSSHSession(on_output, on_closed, self.open_error, self.gate)
        self.sessions.append(session)
        return session

    def _create_file_transfer(self, session: ISSHSession, send: MessageSender, on_failed: Any) -> FakeFileTransfer:
        transfer = FakeFileTransfer(session, send, on_failed)
        self.transfers.append(transfer)
        return transfer

    def use_file_transfer_relay(self, config: Optional[SFTPConfig] = None) -> None:
        """Serve SFTP through the real FileTransferRelay instead of the recording fake."""
        def create(session: ISSHSession, send: MessageSender, on_failed: Any) -> FileTransferRelay:
            transfer = FileTransferRelay(session, send, on_failed, config or SFTPConfig())
            self.transfers.append(transfer)
            return transfer

        self.relay._file_transfer_factory = create

    @property
    def session(self) -> FakeSSHSession:
        return self.sessions[-1]

    async def send(self, payload: Union[Dict[str, Any], str, bytes]) -> None:
        frame = json.dumps(payload) if isinstance(payload, dict) else payload
        await self.relay.handle_frame(frame)
        await settle()

    async def connect(self, **fields: Any) -> None:
        request = {
            "type": "connect",
            "host": "example.test",
            "username": "alice",
            "password": "secret",
        }
        request.update(fields)
        await self.send(request)


INLINE_PROFILE = StoredProfile(
    profile_id="7",
    host="stored.example.test",
    username="bob",
    auth="password",
    port=2222,
    password="hunter2",
)


@pytest.fixture
def harness() -> RelayHarness:
    return RelayHarness(profiles={"7": INLINE_PROFILE})


# SFTP fakes


class FakeRemoteFile:
    def __init__(self, client: "FakeSFTPClient", path: str, mode: str) -> None:
        self._client = client
        self._path = path
        self._mode = mode

    async def __aenter__(self) -> "FakeRemoteFile":
        if self._client.hold is not None:
            await self._client.hold.wait()
        if self._path in self._client.errors:
            raise self._client.errors[self._path]
        if "r" in self._mode and self._path not in self._client.files:
            raise asyncssh.SFTPNoSuchFile("No such file")
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        return None

    async def read(self) -> bytes:
        return self._client.files[self._path]

    async def write(self, data: bytes) -> None:
        self._client.files[self._path] = data


class FakeSFTPClient:
    """Subset of ``asyncssh.SFTPClient`` used by the file-transfer relay."""

    def __init__(self) -> None:
        self.dirs: Dict[str, List[asyncssh.SFTPName]] = {}
        self.files: Dict[str, bytes] = {}
        self.errors: Dict[str, Exception] = {}
        self.readdir_calls: List[str] = []
        self.hold: Optional[asyncio.Event] = None
        self.stat_hold: Optional[asyncio.Event] = None
        self.exited = False

    async def readdir(self, path: str) -> List[asyncssh.SFTPName]:
        self.readdir_calls.append(path)
        if path in self.errors:
            raise self.errors[path]
        if path not in self.dirs:
            raise asyncssh.SFTPNoSuchFile(f"No such file: {path}")
        return self.dirs[path]

    async def stat(self, path: str) -> asyncssh.SFTPAttrs:
        if self.stat_hold is not None:
            await self.stat_hold.wait()
        if path in self.errors:
            raise self.errors[path]
        if path in self.files:
            return file_attrs(len(self.files[path]))
        if path in self.dirs:
            return dir_attrs()
        raise asyncssh.SFTPNoSuchFile(f"No such file: {path}")

    def open(self, path: str, mode: str = "r") -> FakeRemoteFile:
        return FakeRemoteFile(self, path, mode)

    def exit(self) -> None:
        self.exited = True

    async def wait_closed(self) -> None:
        return None


def file_attrs(size: int) -> asyncssh.SFTPAttrs:
    return asyncssh.SFTPAttrs(permissions=0o100644, size=size, mtime=1700000000, atime=1700000100)


def dir_attrs() -> asyncssh.SFTPAttrs:
    return asyncssh.SFTPAttrs(permissions=0o040755, size=4096, mtime=1700000000, atime=1700000100)


def sftp_name(filename: str, attrs: asyncssh.SFTPAttrs) -> asyncssh.SFTPName:
    return asyncssh.SFTPName(
        filename=filename,
        longname=f"-rw-r--r-- 1 alice alice {attrs.size} {filename}",
        attrs=attrs,
    )


class LiveSession(ISSHSession):
    """Session stub exposing only what the file-transfer relay needs."""

    def __init__(self, client: Optional[FakeSFTPClient] = None, live: bool = True) -> None:
        self.client = client or FakeSFTPClient()
        self.live = live
        self.open_sftp_calls = 0
        self.open_sftp_error: Optional[Exception] = None
        self.open_sftp_delay = 0.0

    @property
    def status(self) -> SessionStatus:
        return SessionStatus.READY if self.live else SessionStatus.CLOSED

    @property
    def is_live(self) -> bool:
        return self.live

    async def open(self, descriptor: ConnectionDescriptor) -> None:
        raise NotImplementedError

    def write(self, data: bytes) -> None:
        raise NotImplementedError

    def resize(self, cols: int, rows: int, width: int = 0, height: int = 0) -> None:
        raise NotImplementedError

    async def open_sftp(self) -> Any:
        self.open_sftp_calls += 1
        if not self.live:
            raise NotConnectedError()
        if self.open_sftp_delay:
            await asyncio.sleep(self.open_sftp_delay)
        else:
            await asyncio.sleep(0)
        if self.open_sftp_error is not None:
            raise self.open_sftp_error
        return self.client

    async def close(self) -> None:
        self.live = False

