"""Tests for RemoteSession over a fake paramiko transport."""

from __future__ import annotations

import threading

import paramiko
import pytest

from plan10.errors import (
    AuthenticationFailed,
    CommandTimeout,
    ConnectionRefused,
    ConnectTimeout,
    HostUnreachable,
    LocalFileNotFound,
    RemoteCommandFailed,
    SessionClosed,
    TransferFailed,
)
from plan10.models.commands import CommandResult
from plan10.models.config import ConnectionParameters, Plan10Config, ServerDefinition
from plan10.services import ssh_session
from plan10.services.ssh_session import (
    RemoteSession,
    check_connectivity,
    deploy_files,
    execute_remote_command,
    remote_arg,
)


# ── fakes ─────────────────────────────────────────────────────────────────


class FakeChannel:
    def __init__(self, transport: FakeTransport) -> None:
        self.transport = transport
        self.command: str | None = None
        self.closed = False
        self.status = -1
        self._out = bytearray()
        self._err = bytearray()
        self._done = threading.Event()

    def exec_command(self, command: str) -> None:
        self.command = command
        self.transport.commands.append(command)
        if self.transport.hang:
            return
        stdout, stderr, status = self.transport.responses.get(command, ("", "", 0))
        self._out += stdout.encode()
        self._err += stderr.encode()
        self.status = status
        self._done.set()

    def recv_ready(self) -> bool:
        # stdout stays blocked until stderr has been read
        if self.transport.stderr_first and self._err:
            return False
        return bool(self._out)

    def recv_stderr_ready(self) -> bool:
        return bool(self._err)

    def recv(self, n: int) -> bytes:
        chunk = bytes(self._out[:n])
        del self._out[:n]
        return chunk

    def recv_stderr(self, n: int) -> bytes:
        chunk = bytes(self._err[:n])
        del self._err[:n]
        return chunk

    def exit_status_ready(self) -> bool:
        return self._done.is_set()

    def recv_exit_status(self) -> int:
        self._done.wait(5)
        return self.status

    def close(self) -> None:
        self.closed = True
        self._done.set()


class FakeSFTP:
    HOME = "/Users/admin"

    def __init__(self, transport: FakeTransport) -> None:
        self.transport = transport

    def normalize(self, path: str) -> str:
        return self.HOME if path == "." else path

    def putfo(self, fl, remotepath: str, file_size: int = 0, callback=None, confirm=True):
        if self.transport.sftp_error is not None:
            raise self.transport.sftp_error
        self.transport.files[remotepath] = fl.read()

    def chmod(self, path: str, mode: int) -> None:
        self.transport.modes[path] = mode

    def getfo(self, remotepath: str, fl, callback=None, prefetch=True):
        if remotepath not in self.transport.files:
            raise FileNotFoundError(2, "No such file")
        data = self.transport.files[remotepath]
        fl.write(data)
        return len(data)

    def close(self) -> None:
        self.transport.sftp_closed += 1


class FakeTransport:
    def __init__(self, responses=None, accepted=()) -> None:
        self.responses: dict[str, tuple[str, str, int]] = responses or {}
        self.commands: list[str] = []
        self.channels: list[FakeChannel] = []
        self.accepted = set(accepted)
        self.attempts: list[object] = []
        self.active = True
        self.hang = False
        self.stderr_first = False
        self.files: dict[str, bytes] = {}
        self.modes: dict[str, int] = {}
        self.sftp_error: Exception | None = None
        self.sftp_opened = 0
        self.sftp_closed = 0
        self._authed = False

    def open_session(self) -> FakeChannel:
        channel = FakeChannel(self)
        self.channels.append(channel)
        return channel

    def open_sftp_client(self) -> FakeSFTP:
        if not self.active:
            raise EOFError()
        self.sftp_opened += 1
        return FakeSFTP(self)

    def is_active(self) -> bool:
        return self.active

    def auth_publickey(self, user: str, key: object) -> None:
        self.attempts.append(key)
        if key not in self.accepted:
            raise paramiko.AuthenticationException("denied")
        self._authed = True

    def is_authenticated(self) -> bool:
        return self._authed

    def close(self) -> None:
        self.active = False


class FakeAgent:
    keys: list[object] = ["agent-key"]

    def get_keys(self):
        return list(self.keys)

    def close(self) -> None:
        pass


@pytest.fixture
def params(tmp_path):
    return ConnectionParameters(
        user="admin",
        host="10.0.0.5",
        port=22,
        key_path=tmp_path / "id_rsa",
        command_timeout=2.0,
    )


@pytest.fixture
async def session_and_transport(params):
    transport = FakeTransport(responses={
        "echo 'connection test'": ("connection test\n", "", 0),
        "uname -a": ("Darwin mac1.local 22.6.0\n", "", 0),
        "uptime": ("10:15  up 12 days\n", "", 0),
        "df -h /": ("Filesystem Size Used Avail Capacity Mounted\n/dev/disk1 233Gi 120Gi 100Gi 55% /\n", "", 0),
        "whoami": ("admin\n", "", 0),
        "false": ("", "boom\n", 1),
    })
    session = RemoteSession(params, transport)
    yield session, transport
    await session.close()


# ── quoting ───────────────────────────────────────────────────────────────


class TestRemoteArg:
    def test_home_relative_stays_expandable(self):
        assert remote_arg("~/scripts/temp") == "~/scripts/temp"
        assert remote_arg("~") == "~"

    def test_spaces_are_quoted(self):
        assert remote_arg("~/My Docs/a") == "~/'My Docs/a'"
        assert remote_arg("/tmp/x y") == "'/tmp/x y'"


# ── authentication ────────────────────────────────────────────────────────


class TestAuthenticate:
    def test_missing_key_falls_through_to_agent(self, params, monkeypatch):
        monkeypatch.setattr(paramiko, "Agent", FakeAgent)
        transport = FakeTransport(accepted={"agent-key"})

        assert ssh_session._authenticate(transport, params) == "agent"
        assert transport.attempts == ["agent-key"]

    def test_key_file_is_tried_first(self, params, monkeypatch):
        params.key_path.write_text("not really a key")
        monkeypatch.setattr(paramiko.PKey, "from_path", lambda *a, **k: "file-key")
        monkeypatch.setattr(paramiko, "Agent", FakeAgent)
        transport = FakeTransport(accepted={"file-key"})

        assert ssh_session._authenticate(transport, params) == "publickey"
        assert transport.attempts == ["file-key"]

    def test_unreadable_key_falls_through_to_agent(self, params, monkeypatch):
        params.key_path.write_text("garbage")

        def bad_key(*args, **kwargs):
            raise paramiko.SSHException("not a valid key")

        monkeypatch.setattr(paramiko.PKey, "from_path", bad_key)
        monkeypatch.setattr(paramiko, "Agent", FakeAgent)
        transport = FakeTransport(accepted={"agent-key"})

        assert ssh_session._authenticate(transport, params) == "agent"

    def test_nothing_works(self, params, monkeypatch):
        monkeypatch.setattr(paramiko, "Agent", FakeAgent)
        transport = FakeTransport(accepted=set())

        with pytest.raises(AuthenticationFailed) as excinfo:
            ssh_session._authenticate(transport, params)
        assert "admin" in str(excinfo.value)
        assert "10.0.0.5" in str(excinfo.value)


# ── connection errors ─────────────────────────────────────────────────────


class TestOpenTransport:
    @pytest.mark.parametrize(
        ("raised", "expected"),
        [
            (ConnectionRefusedError("refused"), ConnectionRefused),
            (TimeoutError("timed out"), ConnectTimeout),
            (OSError("No route to host"), HostUnreachable),
        ],
    )
    def test_socket_errors_are_named(self, params, monkeypatch, raised, expected):
        def fail(*args, **kwargs):
            raise raised

        monkeypatch.setattr(ssh_session.socket, "create_connection", fail)
        with pytest.raises(expected) as excinfo:
            ssh_session._open_transport(params)
        assert "admin@10.0.0.5:22" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_check_connectivity_false_when_refused(self, monkeypatch):
        def fail(*args, **kwargs):
            raise ConnectionRefusedError("refused")

        monkeypatch.setattr(ssh_session.socket, "create_connection", fail)
        server = ServerDefinition(name="mac1", host="10.0.0.5", user="admin")
        assert await check_connectivity(server, Plan10Config()) is False

    @pytest.mark.asyncio
    async def test_connect_wraps_transport(self, params, monkeypatch):
        transport = FakeTransport()
        monkeypatch.setattr(ssh_session, "_connect_sync", lambda p: (transport, "agent"))
        session = await RemoteSession.connect(params)
        assert session.is_connected
        assert session.endpoint == "admin@10.0.0.5:22"
        await session.close()
        assert not session.is_connected
        assert transport.active is False


# ── commands ──────────────────────────────────────────────────────────────


class TestExecute:
    @pytest.mark.asyncio
    async def test_execute_collects_output(self, session_and_transport):
        session, transport = session_and_transport
        result = await session.execute("whoami")
        assert result.stdout == "admin\n"
        assert result.success
        assert transport.channels[0].closed

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_a_result(self, session_and_transport):
        session, _ = session_and_transport
        result = await session.execute("false")
        assert result.exit_status == 1
        assert not result.success
        assert result.stderr == "boom\n"
        with pytest.raises(RemoteCommandFailed):
            result.ensure_success()

    @pytest.mark.asyncio
    async def test_large_stderr_does_not_stall_stdout(self, session_and_transport):
        session, transport = session_and_transport
        transport.responses["~/scripts/power_diagnostics"] = ("done\n", "x" * 200_000, 0)
        transport.stderr_first = True

        result = await session.execute_with_timeout("~/scripts/power_diagnostics", timeout=2)

        assert result.stdout == "done\n"
        assert len(result.stderr) == 200_000

    @pytest.mark.asyncio
    async def test_test_connection(self, session_and_transport):
        session, transport = session_and_transport
        assert await session.test_connection()
        transport.responses["echo 'connection test'"] = ("something else\n", "", 0)
        assert not await session.test_connection()

    @pytest.mark.asyncio
    async def test_predicates_build_commands(self, session_and_transport):
        session, transport = session_and_transport
        await session.ensure_directory("~/scripts")
        await session.file_exists("~/server_setup.sh")
        await session.directory_exists("~/docs")
        await session.make_executable("~/scripts/temp")
        assert transport.commands == [
            "mkdir -p ~/scripts",
            "test -f ~/server_setup.sh",
            "test -d ~/docs",
            "chmod +x ~/scripts/temp",
        ]

    @pytest.mark.asyncio
    async def test_dropped_connection_raises_session_closed(self, session_and_transport):
        session, transport = session_and_transport
        transport.responses["hang up"] = ("", "", -1)
        transport.active = False
        with pytest.raises(SessionClosed):
            await session.execute("hang up")

    @pytest.mark.asyncio
    async def test_timeout_closes_channel(self, session_and_transport):
        session, transport = session_and_transport
        transport.hang = True
        with pytest.raises(CommandTimeout) as excinfo:
            await session.execute_with_timeout("sleep 100", timeout=0.05)
        assert excinfo.value.command == "sleep 100"
        assert transport.channels[-1].closed

    @pytest.mark.asyncio
    async def test_closed_session_refuses_work(self, session_and_transport):
        session, _ = session_and_transport
        await session.close()
        with pytest.raises(SessionClosed):
            await session.execute("whoami")

    @pytest.mark.asyncio
    async def test_system_info(self, session_and_transport):
        session, _ = session_and_transport
        info = await session.get_system_info()
        assert info.hostname == "10.0.0.5"
        assert info.current_user == "admin"
        assert info.uname.startswith("Darwin")
        assert "55%" in info.disk_usage


# ── SFTP ──────────────────────────────────────────────────────────────────


class TestCopy:
    @pytest.mark.asyncio
    async def test_copy_file_resolves_home_and_sets_mode(self, session_and_transport, tmp_path):
        session, transport = session_and_transport
        local = tmp_path / "temp"
        local.write_bytes(b"hello")

        sent = await session.copy_file(local, "~/scripts/temp")

        assert sent == 5
        assert transport.files == {"/Users/admin/scripts/temp": b"hello"}
        assert transport.modes == {"/Users/admin/scripts/temp": 0o644}
        assert transport.sftp_opened == transport.sftp_closed == 1

    @pytest.mark.asyncio
    async def test_absolute_path_untouched(self, session_and_transport, tmp_path):
        session, transport = session_and_transport
        local = tmp_path / "plist"
        local.write_text("<plist/>")
        await session.copy_file(local, "/tmp/caffeinate.plist")
        assert list(transport.files) == ["/tmp/caffeinate.plist"]

    @pytest.mark.asyncio
    async def test_copy_missing_local_file(self, session_and_transport, tmp_path):
        session, transport = session_and_transport
        with pytest.raises(LocalFileNotFound):
            await session.copy_file(tmp_path / "nope", "~/nope")
        assert transport.sftp_opened == 0

    @pytest.mark.asyncio
    async def test_remote_error_is_transfer_failed(self, session_and_transport, tmp_path):
        session, transport = session_and_transport
        transport.sftp_error = PermissionError(13, "Permission denied")
        local = tmp_path / "temp"
        local.write_bytes(b"x")
        with pytest.raises(TransferFailed, match="Permission denied"):
            await session.copy_file(local, "~/scripts/temp")
        assert transport.sftp_closed == 1

    @pytest.mark.asyncio
    async def test_dead_transport_is_session_closed(self, session_and_transport, tmp_path):
        session, transport = session_and_transport
        transport.active = False
        local = tmp_path / "temp"
        local.write_bytes(b"x")
        with pytest.raises(SessionClosed):
            await session.copy_file(local, "~/scripts/temp")

    @pytest.mark.asyncio
    async def test_copy_directory_one_mkdir_per_dir(self, session_and_transport, tmp_path):
        session, transport = session_and_transport
        docs = tmp_path / "docs"
        (docs / "guides").mkdir(parents=True)
        (docs / "README.md").write_text("readme")
        (docs / "guides" / "a.md").write_text("a")
        (docs / "guides" / "b.md").write_text("b")

        count = await session.copy_directory(docs, "~/docs/")

        assert count == 3
        assert transport.commands == ["mkdir -p ~/docs", "mkdir -p ~/docs/guides"]
        assert sorted(transport.files) == [
            "/Users/admin/docs/README.md",
            "/Users/admin/docs/guides/a.md",
            "/Users/admin/docs/guides/b.md",
        ]
        assert transport.sftp_opened == 1

    @pytest.mark.asyncio
    async def test_download_file(self, session_and_transport, tmp_path):
        session, transport = session_and_transport
        transport.files["/Users/admin/notes"] = b"hello"
        target = tmp_path / "notes"

        assert await session.download_file("~/notes", target) == 5
        assert target.read_bytes() == b"hello"

    @pytest.mark.asyncio
    async def test_download_missing_remote_file(self, session_and_transport, tmp_path):
        session, _ = session_and_transport
        with pytest.raises(TransferFailed):
            await session.download_file("~/missing", tmp_path / "x")
        assert not (tmp_path / "x").exists()


# ── one-shot helpers ──────────────────────────────────────────────────────


class TestOneShotHelpers:
    @pytest.fixture
    def transport(self, monkeypatch):
        transport = FakeTransport(responses={"whoami": ("admin\n", "", 0)})
        monkeypatch.setattr(ssh_session, "_connect_sync", lambda p: (transport, "agent"))
        return transport

    @pytest.fixture
    def server(self):
        return ServerDefinition(name="mac1", host="10.0.0.5", user="admin")

    @pytest.mark.asyncio
    async def test_execute_remote_command(self, transport, server):
        result = await execute_remote_command(server, Plan10Config(), "whoami")
        assert result.stdout == "admin\n"
        assert transport.active is False

    @pytest.mark.asyncio
    async def test_deploy_files_ignores_missing(self, transport, server, tmp_path):
        present = tmp_path / "a.txt"
        present.write_text("a")
        await deploy_files(
            server,
            Plan10Config(),
            [(present, "~/a.txt"), (tmp_path / "missing", "~/missing")],
        )
        assert list(transport.files) == ["/Users/admin/a.txt"]


def test_command_result_success_flag():
    assert CommandResult(command="true").success
    assert not CommandResult(command="x", exit_status=2).success
    assert CommandResult(command="true").model_dump()["success"] is True
