"""
Relay instance state machine.

One ``RelayInstance`` exists per browser connection. It owns at most one SSH
session and at most one file-transfer sub-channel, dispatches inbound frames
by state and type, and guarantees a single idempotent teardown whichever side
closes first.
"""

import asyncio
import uuid
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from loguru import logger
from pydantic import ValidationError

from ..domain import messages
from ..domain.errors import ConnectionFailure, RelayError, ResolutionError, StreamError, SubsystemError
from ..domain.messages import (
    ClientMessageType, ConnectRequest, ControlMessage, DataMessage, DownloadRequest,
    ReaddirRequest, ResizeRequest, StatRequest, UploadRequest
)
from ..interfaces.channel import IClientChannel
from ..interfaces.ssh import CloseHandler, IFileTransfer, ISSHSession, MessageSender, OutputHandler
from .credentials import CredentialResolver
from .registry import ConnectionRegistry


SessionFactory = Callable[[OutputHandler, CloseHandler], ISSHSession]
FileTransferFactory = Callable[[ISSHSession, MessageSender, Callable[[], Awaitable[None]]], IFileTransfer]

MAX_TERMINAL_DIMENSION = 10000


class RelayState(Enum):
    """Relay instance lifecycle states."""
    IDLE = "idle"
    AUTHENTICATING = "authenticating"
    SHELL_READY = "shell_ready"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


def _dimension(value: Any, allow_zero: bool = False) -> Optional[int]:
    """Parse a terminal dimension; None when missing or out of range."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    lower = 0 if allow_zero else 1
    if not (lower <= number <= MAX_TERMINAL_DIMENSION):
        return None
    return number


class RelayInstance:
    """
    Per-connection relay between a client channel and an SSH session.

    Frames arrive through ``handle_frame``. Connect and file-transfer work run
    as tasks owned by the instance so the receive loop never blocks on SSH.
    """

    def __init__(
        self,
        channel: IClientChannel,
        resolver: CredentialResolver,
        registry: ConnectionRegistry,
        session_factory: SessionFactory,
        file_transfer_factory: FileTransferFactory,
        max_buffered_input: int = 65536
    ) -> None:
        # Replaced by the stored profile id once a stored connect resolves
        self.relay_id = uuid.uuid4().hex
        self._channel = channel
        self._resolver = resolver
        self._registry = registry
        self._session_factory = session_factory
        self._file_transfer_factory = file_transfer_factory
        self._max_buffered_input = max_buffered_input

        self._state = RelayState.IDLE
        self._session: Optional[ISSHSession] = None
        self._file_transfer: Optional[IFileTransfer] = None
        self._pending_input: List[bytes] = []
        self._pending_size = 0
        self._tasks: Set["asyncio.Task[None]"] = set()

        self._handlers: Dict[str, Callable[[Any], Awaitable[None]]] = {
            ClientMessageType.CONNECT.value: self._handle_connect,
            ClientMessageType.DATA.value: self._handle_data,
            ClientMessageType.RESIZE.value: self._handle_resize,
            ClientMessageType.SFTP_INIT.value: self._handle_sftp_init,
            ClientMessageType.SFTP_READDIR.value: self._handle_sftp_readdir,
            ClientMessageType.SFTP_STAT.value: self._handle_sftp_stat,
            ClientMessageType.SFTP_DOWNLOAD_FILE.value: self._handle_sftp_download,
            ClientMessageType.SFTP_UPLOAD_FILE.value: self._handle_sftp_upload,
        }

    @property
    def state(self) -> RelayState:
        return self._state

    @property
    def is_closed(self) -> bool:
        return self._state in (RelayState.CLOSING, RelayState.CLOSED)

    async def handle_frame(self, frame: Union[str, bytes]) -> None:
        """
        Dispatch one inbound frame.

        Args:
            frame: Text or binary frame as received from the client
        """
        if self.is_closed:
            return

        payload = messages.decode_frame(frame)
        if payload is None:
            await self._handle_input(frame.encode("utf-8") if isinstance(frame, str) else bytes(frame))
            return

        message_type = payload["type"]
        try:
            message = messages.parse_control(payload)
            if message is None:
                await self._send(messages.error(f"Unknown message type: {message_type}"))
                return
            await self._handlers[message_type](message)
        except ValidationError as e:
            logger.debug(f"Relay {self.relay_id}: invalid {message_type} message: {e}")
            if message_type.startswith("sftp_"):
                file_id = payload.get("fileId")
                await self._send(messages.sftp_error(
                    f"Invalid {message_type} request",
                    file_id if isinstance(file_id, str) else None))
            else:
                await self._send(messages.error(f"Invalid {message_type} message"))
        except Exception as e:
            logger.exception(f"Relay {self.relay_id}: error handling {message_type}")
            await self._send(messages.error(f"Server error: {e}"))

    async def close(self) -> None:
        """Tear down after the client went away. Nothing is sent."""
        await self._teardown()

    async def shutdown(self) -> None:
        """Server-initiated close: notify the client, tear down, close the channel."""
        if self.is_closed:
            return
        await self._fail_file_transfer("Server shutting down")
        await self._send(messages.disconnected())
        await self._teardown()
        await self._channel.close()

    # Connect

    async def _handle_connect(self, request: ConnectRequest) -> None:
        if self._state is not RelayState.IDLE:
            await self._send(messages.error("A connection is already established or in progress"))
            return

        self._state = RelayState.AUTHENTICATING
        self._spawn(self._connect(request))

    async def _connect(self, request: ConnectRequest) -> None:
        try:
            descriptor = await self._resolver.resolve(request)
        except ResolutionError as e:
            logger.info(f"Relay {self.relay_id}: connect rejected: {e.message}")
            self._state = RelayState.IDLE
            self._drop_pending_input()
            await self._send(messages.error(e.message))
            return
        except Exception as e:
            logger.exception(f"Relay {self.relay_id}: credential lookup failed")
            self._state = RelayState.IDLE
            self._drop_pending_input()
            await self._send(messages.error(f"Server error: {e}"))
            return

        profile_id = self._resolver.profile_id_of(request)
        if profile_id is not None:
            self.relay_id = profile_id

        session = self._session_factory(self._on_output, self._on_session_closed)
        self._session = session
        logger.info(f"Relay {self.relay_id}: connecting to {descriptor.address}")

        try:
            await session.open(descriptor)
        except ConnectionFailure as e:
            logger.warning(f"Relay {self.relay_id}: connection to {descriptor.address} failed: {e.message}")
            await self._abort_connect(e.message)
            return
        except Exception as e:
            logger.exception(f"Relay {self.relay_id}: unexpected error connecting to {descriptor.address}")
            await self._abort_connect(f"Server error: {e}")
            return

        if self.is_closed:
            return

        self._state = RelayState.SHELL_READY
        self._registry.register(self.relay_id, self, session)
        await self._send(messages.connected())
        self._state = RelayState.ACTIVE
        logger.info(f"Relay {self.relay_id}: shell active on {descriptor.address}")

        await self._flush_pending_input()

    async def _abort_connect(self, message: str) -> None:
        self._drop_pending_input()
        await self._send(messages.error(message))
        await self._teardown()
        await self._channel.close()

    # Terminal

    async def _handle_data(self, message: DataMessage) -> None:
        if not isinstance(message.data, str):
            return
        await self._handle_input(message.data.encode("utf-8"))

    async def _handle_input(self, data: bytes) -> None:
        if not data:
            return

        if self._state is RelayState.ACTIVE:
            await self._write(data)
            return

        if self._pending_size + len(data) > self._max_buffered_input:
            logger.warning(f"Relay {self.relay_id}: dropping {len(data)} bytes of input before shell is ready")
            return

        self._pending_input.append(data)
        self._pending_size += len(data)

    async def _flush_pending_input(self) -> None:
        pending, self._pending_input, self._pending_size = self._pending_input, [], 0
        for data in pending:
            await self._write(data)

    def _drop_pending_input(self) -> None:
        self._pending_input = []
        self._pending_size = 0

    async def _write(self, data: bytes) -> None:
        if self._session is None:
            return
        try:
            self._session.write(data)
        except StreamError as e:
            await self._on_session_closed(e)

    async def _handle_resize(self, request: ResizeRequest) -> None:
        if self._state is not RelayState.ACTIVE or self._session is None:
            return

        cols = _dimension(request.cols)
        rows = _dimension(request.rows)
        if cols is None or rows is None:
            return

        width = _dimension(request.width, allow_zero=True) or 0
        height = _dimension(request.height, allow_zero=True) or 0
        self._session.resize(cols, rows, width, height)

    async def _on_output(self, data: bytes) -> None:
        if self._channel.is_open:
            await self._channel.send_bytes(data)

    async def _on_session_closed(self, error: Optional[RelayError]) -> None:
        if self.is_closed:
            return

        if error is None:
            logger.info(f"Relay {self.relay_id}: SSH session closed")
            await self._fail_file_transfer("SSH connection closed")
            await self._send(messages.disconnected())
        else:
            logger.warning(f"Relay {self.relay_id}: SSH session failed: {error.message}")
            await self._fail_file_transfer(error.message)
            await self._send(messages.error(error.message))

        await self._teardown()
        await self._channel.close()

    # File transfer

    async def _handle_sftp_init(self, _request: ControlMessage) -> None:
        if self._state is not RelayState.ACTIVE or self._session is None or not self._session.is_live:
            await self._send(messages.sftp_error("SSH connection not established"))
            return

        entry = self._registry.lookup(self.relay_id)
        if entry is not None and entry.owner is self and entry.file_transfer_ready:
            await self._send(messages.sftp_ready())
            return

        if self._file_transfer is None:
            self._file_transfer = self._file_transfer_factory(
                self._session, self._send, self._on_file_transfer_failed)
            self._registry.attach_file_transfer(self.relay_id, self, self._file_transfer)

        self._spawn(self._init_file_transfer(self._file_transfer))

    async def _init_file_transfer(self, file_transfer: IFileTransfer) -> None:
        try:
            await file_transfer.init()
        except SubsystemError as e:
            await self._send(messages.sftp_error(e.message))
            # A queued init on an already dropped handle must not drop its replacement
            if file_transfer is self._file_transfer:
                await self._on_file_transfer_failed()
            return
        except RelayError as e:
            await self._send(messages.sftp_error(e.message))
            return

        await self._send(messages.sftp_ready())

    async def _on_file_transfer_failed(self) -> None:
        file_transfer, self._file_transfer = self._file_transfer, None
        self._registry.detach_file_transfer(self.relay_id, self)
        if file_transfer is not None:
            await file_transfer.close()

    async def _fail_file_transfer(self, message: str) -> None:
        """Answer every pending file operation before a server-side teardown."""
        file_transfer = self._file_transfer
        if file_transfer is None:
            return
        try:
            await file_transfer.fail_all(message)
        except Exception as e:
            logger.error(f"Relay {self.relay_id}: error failing file transfers: {e}")

    async def _handle_sftp_readdir(self, request: ReaddirRequest) -> None:
        file_transfer = await self._require_file_transfer()
        if file_transfer is not None:
            file_transfer.submit_list(request.path)

    async def _handle_sftp_stat(self, request: StatRequest) -> None:
        file_transfer = await self._require_file_transfer()
        if file_transfer is not None:
            file_transfer.submit_stat(request.path)

    async def _handle_sftp_download(self, request: DownloadRequest) -> None:
        file_transfer = await self._require_file_transfer(request.file_id)
        if file_transfer is not None:
            file_transfer.submit_download(request.filepath, request.file_id)

    async def _handle_sftp_upload(self, request: UploadRequest) -> None:
        file_transfer = await self._require_file_transfer(request.file_id)
        if file_transfer is None:
            return

        try:
            data = bytes(request.data or [])
        except (TypeError, ValueError):
            await self._send(messages.sftp_error("Failed to upload file: invalid data", request.file_id))
            return

        destination = request.filepath or self._upload_destination(request.path, request.filename)
        file_transfer.submit_upload(destination, request.filename, request.file_id, data)

    @staticmethod
    def _upload_destination(base: Optional[str], filename: str) -> str:
        if not base or base == "~":
            return filename
        return f"{base.rstrip('/')}/{filename}"

    async def _require_file_transfer(self, file_id: Optional[str] = None) -> Optional[IFileTransfer]:
        if self._file_transfer is None or not self._file_transfer.is_ready:
            await self._send(messages.sftp_error("SFTP not initialized", file_id))
            return None
        return self._file_transfer

    # Plumbing

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _send(self, message: Dict[str, Any]) -> None:
        if self._channel.is_open:
            await self._channel.send_json(message)

    async def _teardown(self) -> None:
        if self.is_closed:
            return

        self._state = RelayState.CLOSING
        self._drop_pending_input()

        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()

        file_transfer, self._file_transfer = self._file_transfer, None
        if file_transfer is not None:
            try:
                await file_transfer.close()
            except Exception as e:
                logger.error(f"Relay {self.relay_id}: error closing file transfer: {e}")

        session, self._session = self._session, None
        if session is not None:
            try:
                await session.close()
            except Exception as e:
                logger.error(f"Relay {self.relay_id}: error closing SSH session: {e}")

        self._registry.deregister(self.relay_id, self)
        self._state = RelayState.CLOSED
        logger.debug(f"Relay {self.relay_id}: closed")
