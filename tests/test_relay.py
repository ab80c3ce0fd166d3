"""
Tests for the relay instance state machine.
"""

import asyncio
import json

import asyncssh
import pytest

from conftest import FakeSFTPClient, RelayHarness, settle
from hub_ssh.core.domain.errors import ConnectError, StreamError, SubsystemError
from hub_ssh.core.services.relay import RelayState


class TestConnect:
    """Connect handling and the authenticating state."""

    async def test_connected_sent_once_after_shell_opens(self, harness: RelayHarness) -> None:
        await harness.connect()

        assert harness.channel.types() == ["connected"]
        assert harness.relay.state is RelayState.ACTIVE
        assert harness.relay.relay_id in harness.registry
        assert harness.session.descriptor.host == "example.test"
        assert harness.session.descriptor.port == 22

    async def test_connected_not_sent_before_shell_open(self) -> None:
        gate = asyncio.Event()
        harness = RelayHarness(gate=gate)

        await harness.connect()
        assert harness.relay.state is RelayState.AUTHENTICATING
        assert harness.channel.types() == []

        gate.set()
        await settle()
        assert harness.channel.types() == ["connected"]

    async def test_stored_profile_connect(self, harness: RelayHarness) -> None:
        await harness.send({"type": "connect", "sessionId": 7})

        assert harness.channel.types() == ["connected"]
        descriptor = harness.session.descriptor
        assert (descriptor.host, descriptor.port, descriptor.username) == ("stored.example.test", 2222, "bob")
        assert harness.relay.relay_id == "7"
        assert "7" in harness.registry

    async def test_unknown_stored_profile(self, harness: RelayHarness) -> None:
        await harness.send({"type": "connect", "sessionId": "missing"})

        assert harness.channel.messages == [{"type": "error", "message": "Session not found"}]
        assert harness.relay.state is RelayState.IDLE
        assert harness.sessions == []
        assert not harness.channel.closed

    async def test_resolution_failure_keeps_idle_and_allows_retry(self, harness: RelayHarness) -> None:
        await harness.send({"type": "connect", "username": "alice", "password": "x"})

        assert harness.channel.messages == [{"type": "error", "message": "Host and username are required"}]
        assert harness.relay.state is RelayState.IDLE

        await harness.connect()
        assert harness.channel.types() == ["error", "connected"]

    async def test_unreachable_host_reports_one_error(self) -> None:
        failure = ConnectError("Connection refused. Please check if SSH is running on the target host.")
        harness = RelayHarness(open_error=failure)

        await harness.send("ls\n")
        await harness.connect()

        assert harness.channel.messages == [{"type": "error", "message": failure.message}]
        assert "connected" not in harness.channel.types()
        assert harness.relay.state is RelayState.CLOSED
        assert harness.channel.closed
        assert harness.session.close_calls == 1
        assert harness.session.written == []
        assert len(harness.registry) == 0

    async def test_second_connect_rejected(self, harness: RelayHarness) -> None:
        await harness.connect()
        await harness.connect()

        assert harness.channel.types() == ["connected", "error"]
        assert len(harness.sessions) == 1


class TestTerminal:
    """Terminal input, output and resize."""

    async def test_input_before_connected_is_flushed_in_order(self) -> None:
        gate = asyncio.Event()
        harness = RelayHarness(gate=gate)

        await harness.send({"type": "data", "data": "echo one\n"})
        await harness.connect()
        await harness.send(b"echo two\n")
        await harness.send({"type": "data", "data": "echo three\n"})
        assert harness.session.written == []

        gate.set()
        await settle()

        assert harness.channel.types() == ["connected"]
        assert harness.session.written == [b"echo one\n", b"echo two\n", b"echo three\n"]

    async def test_buffered_input_is_bounded(self) -> None:
        gate = asyncio.Event()
        harness = RelayHarness(gate=gate, max_buffered_input=8)

        await harness.connect()
        await harness.send("12345")
        await harness.send("67890")
        gate.set()
        await settle()

        assert harness.session.written == [b"12345"]

    async def test_raw_frames_are_terminal_input_when_active(self, harness: RelayHarness) -> None:
        await harness.connect()
        await harness.send("not json")
        await harness.send("[1, 2]")
        await harness.send('{"no": "type"}')

        assert harness.session.written == [b"not json", b"[1, 2]", b'{"no": "type"}']
        assert harness.channel.types() == ["connected"]

    async def test_output_is_forwarded_as_bytes(self, harness: RelayHarness) -> None:
        await harness.connect()
        await harness.session.emit(b"\x1b[32mhello\x1b[0m")
        await harness.session.emit(b"world")

        assert harness.channel.output == [b"\x1b[32mhello\x1b[0m", b"world"]

    async def test_resize(self, harness: RelayHarness) -> None:
        await harness.connect()
        await harness.send({"type": "resize", "cols": 120, "rows": 40})
        await harness.send({"type": "resize", "cols": 100, "rows": 30, "width": 800, "height": 600})

        assert harness.session.resizes == [(120, 40, 0, 0), (100, 30, 800, 600)]

    @pytest.mark.parametrize("request_fields", [
        {"cols": 80},
        {"rows": 24},
        {"cols": 0, "rows": 24},
        {"cols": "wide", "rows": 24},
        {"cols": -5, "rows": 24},
    ])
    async def test_invalid_resize_ignored(self, harness: RelayHarness, request_fields: dict) -> None:
        await harness.connect()
        await harness.send({"type": "resize", **request_fields})

        assert harness.session.resizes == []
        assert harness.channel.types() == ["connected"]


class TestMessages:
    """Frame classification and error replies."""

    async def test_unknown_type(self, harness: RelayHarness) -> None:
        await harness.send({"type": "reboot"})

        assert harness.channel.messages == [{"type": "error", "message": "Unknown message type: reboot"}]

    async def test_invalid_sftp_request_gets_sftp_error(self, harness: RelayHarness) -> None:
        await harness.connect()
        await harness.send({"type": "sftp_download_file", "fileId": "f1"})

        assert harness.channel.messages[-1] == {
            "type": "sftp_error",
            "message": "Invalid sftp_download_file request",
            "fileId": "f1",
        }

    async def test_unexpected_exception_becomes_server_error(self, harness: RelayHarness) -> None:
        await harness.connect()
        harness.session.resize_error = RuntimeError("boom")
        await harness.send({"type": "resize", "cols": 80, "rows": 24})

        assert harness.channel.messages[-1] == {"type": "error", "message": "Server error: boom"}
        assert harness.relay.state is RelayState.ACTIVE


class TestClose:
    """Teardown paths."""

    async def test_clean_shell_close_sends_disconnected(self, harness: RelayHarness) -> None:
        await harness.connect()
        await harness.session.end()

        assert harness.channel.types() == ["connected", "disconnected"]
        assert harness.channel.closed
        assert harness.relay.state is RelayState.CLOSED
        assert len(harness.registry) == 0

    async def test_stream_error_sends_error(self, harness: RelayHarness) -> None:
        await harness.connect()
        await harness.session.end(StreamError("Shell error: connection reset"))

        assert harness.channel.messages[-1] == {"type": "error", "message": "Shell error: connection reset"}
        assert harness.channel.closed

    async def test_client_close_sends_nothing(self, harness: RelayHarness) -> None:
        await harness.connect()
        await harness.send({"type": "sftp_init"})
        sent_before = list(harness.channel.sent)

        await harness.relay.close()
        await harness.relay.close()

        assert harness.channel.sent == sent_before
        assert harness.session.close_calls == 1
        assert harness.transfers[0].close_calls == 1
        assert harness.relay.state is RelayState.CLOSED
        assert len(harness.registry) == 0

    async def test_client_close_during_connect_cancels_it(self) -> None:
        gate = asyncio.Event()
        harness = RelayHarness(gate=gate)

        await harness.connect()
        await harness.relay.close()
        gate.set()
        await settle()

        assert harness.channel.types() == []
        assert harness.session.close_calls == 1
        assert len(harness.registry) == 0

    async def test_frames_after_close_are_ignored(self, harness: RelayHarness) -> None:
        await harness.connect()
        await harness.relay.close()
        await harness.send({"type": "data", "data": "ls\n"})

        assert harness.session.written == []

    async def test_registry_shutdown_notifies_client(self, harness: RelayHarness) -> None:
        await harness.registry.start()
        await harness.connect()
        await harness.registry.stop()

        assert harness.channel.types() == ["connected", "disconnected"]
        assert harness.channel.closed
        assert harness.relay.state is RelayState.CLOSED


class TestFileTransferDispatch:
    """SFTP messages as seen by the relay."""

    async def test_sftp_init_requires_connection(self, harness: RelayHarness) -> None:
        await harness.send({"type": "sftp_init"})

        assert harness.channel.messages == [{"type": "sftp_error", "message": "SSH connection not established"}]
        assert harness.transfers == []

    async def test_operations_require_init(self, harness: RelayHarness) -> None:
        await harness.connect()
        await harness.send({"type": "sftp_download_file", "filepath": "/etc/hosts", "fileId": "f1"})

        assert harness.channel.messages[-1] == {
            "type": "sftp_error", "message": "SFTP not initialized", "fileId": "f1"
        }

    async def test_init_is_idempotent(self, harness: RelayHarness) -> None:
        await harness.connect()
        await harness.send({"type": "sftp_init"})
        await harness.send({"type": "sftp_init"})

        assert harness.channel.types() == ["connected", "sftp_ready", "sftp_ready"]
        assert len(harness.transfers) == 1
        assert harness.transfers[0].init_calls == 1
        entry = harness.registry.lookup(harness.relay.relay_id)
        assert entry.file_transfer is harness.transfers[0]

    async def test_init_failure_drops_sub_channel(self, harness: RelayHarness) -> None:
        await harness.connect()
        original = harness._create_file_transfer

        def failing_factory(session, send, on_failed):
            transfer = original(session, send, on_failed)
            transfer.init_error = SubsystemError("Failed to initialize SFTP: subsystem request failed")
            return transfer

        harness.relay._file_transfer_factory = failing_factory
        await harness.send({"type": "sftp_init"})

        assert harness.channel.messages[-1] == {
            "type": "sftp_error", "message": "Failed to initialize SFTP: subsystem request failed"
        }
        assert harness.transfers[0].close_calls == 1
        assert harness.registry.lookup(harness.relay.relay_id).file_transfer is None
        assert harness.relay.state is RelayState.ACTIVE

    async def test_operations_are_submitted(self, harness: RelayHarness) -> None:
        await harness.connect()
        await harness.send({"type": "sftp_init"})
        await harness.send({"type": "sftp_readdir", "path": "~"})
        await harness.send({"type": "sftp_readdir"})
        await harness.send({"type": "sftp_stat", "path": "/tmp"})
        await harness.send({"type": "sftp_download_file", "filepath": "/etc/hosts", "fileId": "d1"})

        assert harness.transfers[0].submitted == [
            ("list", "~"),
            ("list", "."),
            ("stat", "/tmp"),
            ("download", "/etc/hosts", "d1"),
        ]

    @pytest.mark.parametrize("fields,destination", [
        ({"path": "~"}, "notes.txt"),
        ({"path": "/home/alice"}, "/home/alice/notes.txt"),
        ({"path": "/home/alice/"}, "/home/alice/notes.txt"),
        ({"path": "/"}, "/notes.txt"),
        ({"path": "/home/alice", "filepath": "/tmp/other.txt"}, "/tmp/other.txt"),
    ])
    async def test_upload_destination(self, harness: RelayHarness, fields: dict, destination: str) -> None:
        await harness.connect()
        await harness.send({"type": "sftp_init"})
        await harness.send({
            "type": "sftp_upload_file",
            "filename": "notes.txt",
            "fileId": "u1",
            "data": [104, 105],
            **fields,
        })

        assert harness.transfers[0].submitted == [("upload", destination, "notes.txt", "u1", b"hi")]

    async def test_upload_with_invalid_data(self, harness: RelayHarness) -> None:
        await harness.connect()
        await harness.send({"type": "sftp_init"})
        await harness.send({
            "type": "sftp_upload_file", "filename": "a", "path": "~", "fileId": "u2", "data": [300],
        })

        assert harness.channel.messages[-1] == {
            "type": "sftp_error", "message": "Failed to upload file: invalid data", "fileId": "u2"
        }
        assert harness.transfers[0].submitted == []


class TestFileTransferTeardown:
    """Pending file operations when the relay goes away."""

    async def test_shell_failure_answers_every_pending_operation(self, harness: RelayHarness) -> None:
        client = FakeSFTPClient()
        client.files["/etc/hosts"] = b"127.0.0.1 localhost\n"
        client.hold = asyncio.Event()
        client.stat_hold = asyncio.Event()
        harness.use_file_transfer_relay()
        await harness.connect()
        harness.session.sftp_client = client
        await harness.send({"type": "sftp_init"})

        await harness.send({"type": "sftp_download_file", "filepath": "/etc/hosts", "fileId": "d1"})
        await harness.send({
            "type": "sftp_upload_file", "filename": "a.txt", "path": "/tmp", "fileId": "u1", "data": [1],
        })
        await harness.send({"type": "sftp_stat", "path": "/etc/hosts"})
        assert harness.transfers[0].pending_count == 3

        await harness.session.end(StreamError("Shell error: boom"))

        messages = harness.channel.messages
        failures = [message for message in messages if message["type"] == "sftp_error"]
        assert sorted(str(message.get("fileId")) for message in failures) == ["None", "d1", "u1"]
        assert all(message["message"] == "Shell error: boom" for message in failures)
        assert messages[-1] == {"type": "error", "message": "Shell error: boom"}
        assert harness.transfers[0].pending_count == 0
        assert client.exited
        assert harness.channel.closed

        client.hold.set()
        client.stat_hold.set()
        await settle()
        assert harness.channel.messages == messages

    async def test_clean_shell_close_fails_pending_before_disconnected(self, harness: RelayHarness) -> None:
        await harness.connect()
        await harness.send({"type": "sftp_init"})

        await harness.session.end()

        assert harness.transfers[0].failed_with == ["SSH connection closed"]
        assert harness.channel.types()[-1] == "disconnected"

    async def test_server_shutdown_fails_pending(self, harness: RelayHarness) -> None:
        await harness.registry.start()
        await harness.connect()
        await harness.send({"type": "sftp_init"})

        await harness.registry.stop()

        assert harness.transfers[0].failed_with == ["Server shutting down"]

    async def test_client_close_is_silent(self, harness: RelayHarness) -> None:
        await harness.connect()
        await harness.send({"type": "sftp_init"})

        await harness.relay.close()

        assert harness.transfers[0].failed_with == []
        assert harness.transfers[0].close_calls == 1


class TestConcurrentInit:
    """Queued sftp_init frames against a failing first open."""

    async def test_queued_init_does_not_report_ready_on_dropped_handle(self, harness: RelayHarness) -> None:
        client = FakeSFTPClient()
        client.dirs["./"] = []
        harness.use_file_transfer_relay()
        await harness.connect()
        harness.session.sftp_client = client
        harness.session.open_sftp_errors = [asyncssh.ChannelOpenError(1, "nope")]

        await harness.relay.handle_frame(json.dumps({"type": "sftp_init"}))
        await harness.relay.handle_frame(json.dumps({"type": "sftp_init"}))
        await settle()

        assert harness.channel.messages[1:] == [
            {"type": "sftp_error", "message": "Failed to initialize SFTP: nope"},
            {"type": "sftp_error", "message": "Failed to initialize SFTP: sub-channel closed"},
        ]
        assert not harness.transfers[0].is_ready
        assert harness.registry.lookup(harness.relay.relay_id).file_transfer is None

        await harness.send({"type": "sftp_init"})
        await harness.send({"type": "sftp_readdir", "path": "~"})

        assert harness.channel.types()[-2:] == ["sftp_ready", "sftp_readdir_result"]
        assert len(harness.transfers) == 2
        assert harness.session.open_sftp_calls == 2
