"""
asyncssh-backed SSH session.

An ``SSHSession`` owns one outbound SSH transport and the single interactive
PTY shell opened on it. Shell output is pumped to the owner as it arrives and
every way the session can end (shell exit, transport loss, explicit close)
converges on one idempotent teardown.
"""

import asyncio
import socket
from typing import Any, Dict, Optional

import asyncssh
from loguru import logger

from ...core.domain.descriptor import AuthKind, ConnectionDescriptor
from ...core.domain.errors import (
    AuthError, ConnectError, ConnectionFailure, NotConnectedError, RelayError,
    SSHProtocolError, ShellOpenError, StreamError
)
from ...core.interfaces.ssh import CloseHandler, ISSHSession, OutputHandler, SessionStatus
from ..config.models import SSHConfig


def map_connect_error(exc: BaseException) -> ConnectionFailure:
    """
    Translate a connect-time exception into a client-facing connection error.

    Timeouts are checked before ``OSError`` because ``TimeoutError`` and
    ``socket.gaierror`` are both ``OSError`` subclasses, and
    ``PermissionDenied`` before ``DisconnectError`` for the same reason.
    """
    if isinstance(exc, ConnectionFailure):
        return exc
    if isinstance(exc, (asyncssh.PermissionDenied, asyncssh.KeyImportError)):
        return AuthError()
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return ConnectError("Connection timed out. Please check network connectivity.")
    if isinstance(exc, ConnectionRefusedError):
        return ConnectError("Connection refused. Please check if SSH is running on the target host.")
    if isinstance(exc, socket.gaierror):
        return ConnectError("Host not found. Please check the hostname.")
    if isinstance(exc, asyncssh.DisconnectError):
        return SSHProtocolError(f"Protocol error: {exc.reason}")
    if isinstance(exc, OSError):
        return ConnectError()
    if isinstance(exc, asyncssh.Error):
        return SSHProtocolError(f"Protocol error: {exc}")
    return ConnectError(f"Connection failed: {exc}")


class SSHSession(ISSHSession):
    """One SSH transport plus one interactive shell, built on asyncssh."""

    def __init__(
        self,
        config: SSHConfig,
        on_output: OutputHandler,
        on_closed: CloseHandler
    ) -> None:
        self._config = config
        self._on_output = on_output
        self._on_closed = on_closed

        self._status = SessionStatus.NEW
        self._conn: Optional[asyncssh.SSHClientConnection] = None
        self._process: Optional[asyncssh.SSHClientProcess] = None
        self._pump_task: Optional["asyncio.Task[None]"] = None
        self._finished = False

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def is_live(self) -> bool:
        return self._status is SessionStatus.READY and self._process is not None

    async def open(self, descriptor: ConnectionDescriptor) -> None:
        if self._status is not SessionStatus.NEW:
            raise RuntimeError(f"Session cannot be opened from status {self._status.value}")

        self._status = SessionStatus.CONNECTING

        try:
            self._conn = await asyncio.wait_for(
                asyncssh.connect(**self._connect_options(descriptor)),
                timeout=self._config.ready_timeout
            )
        except Exception as e:
            self._status = SessionStatus.CLOSED
            error = map_connect_error(e)
            logger.debug(f"SSH connect to {descriptor.address} failed: {type(e).__name__}: {e}")
            raise error from e

        try:
            self._process = await self._conn.create_process(
                term_type=self._config.term_type,
                term_size=(self._config.initial_cols, self._config.initial_rows),
                encoding=None
            )
        except (asyncssh.Error, OSError) as e:
            self._finished = True
            self._status = SessionStatus.CLOSED
            await self._release()
            reason = e.reason if isinstance(e, asyncssh.Error) else str(e)
            raise ShellOpenError(f"Cannot start shell: {reason}") from e

        self._status = SessionStatus.READY
        self._pump_task = asyncio.ensure_future(self._pump())
        logger.debug(f"Shell opened on {descriptor.address}")

    def _connect_options(self, descriptor: ConnectionDescriptor) -> Dict[str, Any]:
        options: Dict[str, Any] = {
            'host': descriptor.host,
            'port': descriptor.port,
            'username': descriptor.username,
            'known_hosts': self._config.known_hosts,
            'keepalive_interval': self._config.keepalive_interval,
            'keepalive_count_max': self._config.keepalive_count_max,
            'client_version': self._config.client_version,
            'agent_path': None,
        }

        if self._config.encryption_algs:
            options['encryption_algs'] = self._config.encryption_algs

        if descriptor.auth_kind is AuthKind.PASSWORD:
            options['password'] = descriptor.secret
            options['client_keys'] = None
        else:
            options['client_keys'] = [
                asyncssh.import_private_key(descriptor.secret, descriptor.passphrase)
            ]

        return options

    async def _pump(self) -> None:
        """Forward shell output until EOF or failure."""
        assert self._process is not None
        error: Optional[RelayError] = None

        try:
            while True:
                data = await self._process.stdout.read(self._config.read_size)
                if not data:
                    break
                await self._on_output(data)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"Shell stream ended with {type(e).__name__}: {e}")
            error = StreamError(f"Shell error: {e}")

        await self._finish(error)

    async def _finish(self, error: Optional[RelayError]) -> None:
        if self._finished:
            return
        self._finished = True
        self._status = SessionStatus.CLOSED

        await self._release()
        await self._on_closed(error)

    def write(self, data: bytes) -> None:
        if not self.is_live:
            raise StreamError("Shell is not open")

        try:
            self._process.stdin.write(data)  # type: ignore[union-attr]
        except (asyncssh.Error, OSError) as e:
            raise StreamError(f"Shell error: {e}") from e

    def resize(self, cols: int, rows: int, width: int = 0, height: int = 0) -> None:
        if not self.is_live:
            return

        try:
            self._process.change_terminal_size(cols, rows, width, height)  # type: ignore[union-attr]
        except (asyncssh.Error, OSError) as e:
            logger.debug(f"Ignoring resize failure: {e}")

    async def open_sftp(self) -> asyncssh.SFTPClient:
        if not self.is_live or self._conn is None:
            raise NotConnectedError()
        return await self._conn.start_sftp_client()

    async def close(self) -> None:
        self._finished = True
        self._status = SessionStatus.CLOSED
        await self._release()

    async def _release(self) -> None:
        pump_task, self._pump_task = self._pump_task, None
        if pump_task is not None and pump_task is not asyncio.current_task() and not pump_task.done():
            pump_task.cancel()

        process, self._process = self._process, None
        if process is not None:
            process.close()

        conn, self._conn = self._conn, None
        if conn is not None:
            conn.close()
            try:
                await conn.wait_closed()
            except Exception as e:
                logger.debug(f"Error waiting for SSH transport to close: {e}")
