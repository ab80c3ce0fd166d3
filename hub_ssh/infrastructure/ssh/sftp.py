"""
SFTP file-transfer relay.

Multiplexes listing, stat, download and upload operations over a single SFTP
client opened on the relay's SSH transport. Every operation is tracked in a
pending table keyed by an internal id and completes exactly once, either
with its own result or error, or when a sub-channel failure fails every
in-flight operation at once.
"""

import asyncio
import itertools
import stat
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Tuple

import asyncssh
from loguru import logger

from ...core.domain import messages
from ...core.domain.errors import (
    FileTransferError, NotConnectedError, OperationError, RelayError, SubsystemError
)
from ...core.interfaces.ssh import IFileTransfer, ISSHSession, MessageSender
from ..config.models import SFTPConfig


Operation = Callable[[asyncssh.SFTPClient], Awaitable[Dict[str, Any]]]

HOME_PATHS = ("~", ".")


def normalize_list_path(path: Optional[str]) -> str:
    """Map the client's home aliases onto a path the SFTP server resolves."""
    if not path or path in HOME_PATHS:
        return "./"
    return path


def list_attempts(path: str) -> List[str]:
    """Paths tried in order when listing a directory."""
    attempts = [path]
    if path != "/" and not path.endswith("/"):
        attempts.append(path + "/")
    if "./" not in attempts:
        attempts.append("./")
    return attempts


def classify_error(exc: BaseException, prefix: str) -> FileTransferError:
    """
    Decide whether a failure belongs to one operation or to the sub-channel.

    Lost or missing SFTP/SSH connections fail the whole sub-channel; any
    other SFTP status or local I/O error fails only the operation.
    """
    if isinstance(exc, FileTransferError):
        return exc
    if isinstance(exc, (asyncssh.SFTPNoConnection, asyncssh.SFTPConnectionLost)):
        return SubsystemError(f"{prefix}: {exc.reason}")
    if isinstance(exc, asyncssh.SFTPError):
        return OperationError(f"{prefix}: {exc.reason}")
    if isinstance(exc, (asyncssh.Error, ConnectionError)):
        return SubsystemError(f"{prefix}: {exc}")
    return OperationError(f"{prefix}: {exc}")


def file_kind(attrs: asyncssh.SFTPAttrs) -> Tuple[bool, bool]:
    """Return ``(is_directory, is_file)`` for SFTP attributes."""
    if attrs.permissions is not None:
        return stat.S_ISDIR(attrs.permissions), stat.S_ISREG(attrs.permissions)
    return (
        attrs.type == asyncssh.FILEXFER_TYPE_DIRECTORY,
        attrs.type == asyncssh.FILEXFER_TYPE_REGULAR,
    )


def format_stats(attrs: asyncssh.SFTPAttrs) -> Dict[str, Any]:
    is_directory, is_file = file_kind(attrs)
    return {
        'isDirectory': is_directory,
        'isFile': is_file,
        'size': attrs.size,
        'mtime': attrs.mtime,
        'atime': attrs.atime,
    }


def format_entry(entry: asyncssh.SFTPName) -> Dict[str, Any]:
    filename = entry.filename
    if isinstance(filename, bytes):
        filename = filename.decode('utf-8', errors='replace')
    longname = entry.longname
    if isinstance(longname, bytes):
        longname = longname.decode('utf-8', errors='replace')

    formatted = {'name': filename, 'filename': filename, 'longname': longname or ''}
    formatted.update(format_stats(entry.attrs))
    return formatted


@dataclass
class PendingOperation:
    """One in-flight file-transfer operation."""
    key: int
    kind: str
    file_id: Optional[str] = None
    task: Optional["asyncio.Task[None]"] = None
    done: bool = False


class FileTransferRelay(IFileTransfer):
    """
    File-transfer sub-channel for one relay instance.

    Results and errors are sent directly to the client through ``send``.
    ``on_failed`` is awaited after a sub-channel failure so the owner can
    drop its reference and the registry entry.
    """

    def __init__(
        self,
        session: ISSHSession,
        send: MessageSender,
        on_failed: Callable[[], Awaitable[None]],
        config: SFTPConfig
    ) -> None:
        self._session = session
        self._send = send
        self._on_failed = on_failed
        self._config = config

        self._sftp: Optional[asyncssh.SFTPClient] = None
        self._init_lock = asyncio.Lock()
        self._pending: Dict[int, PendingOperation] = {}
        self._keys: Iterator[int] = itertools.count(1)
        self._closed = False

    @property
    def is_ready(self) -> bool:
        return self._sftp is not None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def init(self) -> None:
        async with self._init_lock:
            if self._sftp is not None:
                return

            if self._closed:
                raise SubsystemError("Failed to initialize SFTP: sub-channel closed")

            if not self._session.is_live:
                raise NotConnectedError()

            try:
                self._sftp = await asyncio.wait_for(
                    self._session.open_sftp(), timeout=self._config.init_timeout)
            except NotConnectedError:
                raise
            except asyncio.TimeoutError as e:
                raise SubsystemError("Failed to initialize SFTP: timed out") from e
            except (asyncssh.Error, OSError) as e:
                reason = e.reason if isinstance(e, asyncssh.Error) else str(e)
                raise SubsystemError(f"Failed to initialize SFTP: {reason}") from e

        logger.debug("SFTP sub-channel ready")

    # Submission

    def submit_list(self, path: str) -> None:
        self._submit("list", None, lambda sftp: self._list(sftp, path))

    def submit_stat(self, path: str) -> None:
        self._submit("stat", None, lambda sftp: self._stat(sftp, path))

    def submit_download(self, path: str, file_id: Optional[str]) -> None:
        self._submit("download", file_id, lambda sftp: self._download(sftp, path, file_id))

    def submit_upload(self, path: str, filename: str, file_id: Optional[str], data: bytes) -> None:
        self._submit("upload", file_id, lambda sftp: self._upload(sftp, path, filename, file_id, data))

    def _submit(self, kind: str, file_id: Optional[str], operation: Operation) -> None:
        if self._sftp is None:
            raise NotConnectedError("SFTP not initialized")

        op = PendingOperation(key=next(self._keys), kind=kind, file_id=file_id)
        self._pending[op.key] = op
        op.task = asyncio.ensure_future(self._run(op, self._sftp, operation))

    async def _run(self, op: PendingOperation, sftp: asyncssh.SFTPClient, operation: Operation) -> None:
        try:
            result = await operation(sftp)
        except SubsystemError as e:
            logger.warning(f"SFTP sub-channel failed during {op.kind}: {e.message}")
            await self.fail_all(e.message)
            await self._on_failed()
        except RelayError as e:
            logger.debug(f"SFTP {op.kind} failed: {e.message}")
            await self._complete(op, messages.sftp_error(e.message, op.file_id))
        else:
            await self._complete(op, result)

    async def _complete(self, op: PendingOperation, message: Dict[str, Any]) -> None:
        if op.done:
            return
        op.done = True
        self._pending.pop(op.key, None)
        await self._send(message)

    async def fail_all(self, message: str) -> None:
        """Fail every in-flight operation with ``message`` and drop the SFTP client."""
        pending = list(self._pending.values())
        self._pending.clear()

        current = asyncio.current_task()
        for op in pending:
            if op.done:
                continue
            op.done = True
            if op.task is not None and op.task is not current:
                op.task.cancel()
            await self._send(messages.sftp_error(message, op.file_id))

        self._closed = True
        await self._release_client()

    # Operations

    async def _list(self, sftp: asyncssh.SFTPClient, path: str) -> Dict[str, Any]:
        first_error: Optional[FileTransferError] = None

        for attempt in list_attempts(normalize_list_path(path)):
            try:
                entries = await sftp.readdir(attempt)
            except (asyncssh.Error, OSError) as e:
                error = classify_error(e, "Failed to read directory")
                if isinstance(error, SubsystemError):
                    raise error from e
                if first_error is None:
                    first_error = error
                continue

            if attempt != path:
                logger.debug(f"Listing {path!r} resolved via {attempt!r}")
            return messages.sftp_readdir_result(path, [format_entry(entry) for entry in entries])

        assert first_error is not None
        raise first_error

    async def _stat(self, sftp: asyncssh.SFTPClient, path: str) -> Dict[str, Any]:
        try:
            attrs = await sftp.stat(path)
        except (asyncssh.Error, OSError) as e:
            raise classify_error(e, "Failed to get file stats") from e
        return messages.sftp_stat_result(path, format_stats(attrs))

    async def _download(self, sftp: asyncssh.SFTPClient, path: str, file_id: Optional[str]) -> Dict[str, Any]:
        try:
            attrs = await sftp.stat(path)
            if attrs.size is not None and attrs.size > self._config.max_transfer_size:
                raise OperationError(
                    f"Failed to download file: file exceeds {self._config.max_transfer_size} bytes")

            async with sftp.open(path, 'rb') as remote:
                data = await remote.read()
        except (asyncssh.Error, OSError) as e:
            raise classify_error(e, "Failed to download file") from e

        if len(data) > self._config.max_transfer_size:
            raise OperationError(
                f"Failed to download file: file exceeds {self._config.max_transfer_size} bytes")

        logger.debug(f"Downloaded {len(data)} bytes from {path}")
        return messages.sftp_file_data(file_id, data)

    async def _upload(
        self,
        sftp: asyncssh.SFTPClient,
        path: str,
        filename: str,
        file_id: Optional[str],
        data: bytes
    ) -> Dict[str, Any]:
        if len(data) > self._config.max_transfer_size:
            raise OperationError(
                f"Failed to upload file: file exceeds {self._config.max_transfer_size} bytes")

        try:
            async with sftp.open(path, 'wb') as remote:
                await remote.write(data)
        except (asyncssh.Error, OSError) as e:
            raise classify_error(e, "Failed to upload file") from e

        logger.debug(f"Uploaded {len(data)} bytes to {path}")
        return messages.sftp_upload_success(file_id, filename)

    # Teardown

    async def close(self) -> None:
        current = asyncio.current_task()
        for op in list(self._pending.values()):
            op.done = True
            if op.task is not None and op.task is not current:
                op.task.cancel()
        self._pending.clear()

        self._closed = True
        await self._release_client()

    async def _release_client(self) -> None:
        sftp, self._sftp = self._sftp, None
        if sftp is None:
            return

        try:
            sftp.exit()
            await sftp.wait_closed()
        except Exception as e:
            logger.debug(f"Error closing SFTP client: {e}")
