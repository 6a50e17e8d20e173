"""SSH session to a single target: command execution and SFTP file transfer.

Uses a raw paramiko ``Transport`` so the authentication order is explicit
(key file, then agent). Blocking paramiko calls run inside a single-thread
executor so the asyncio event loop is never blocked, and an ``asyncio.Lock``
serialises operations on the one connection.
"""

from __future__ import annotations

import asyncio
import io
import posixpath
import shlex
import socket
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable

import paramiko

from plan10.errors import (
    AuthenticationFailed,
    CommandTimeout,
    ConnectionRefused,
    ConnectTimeout,
    HandshakeFailed,
    HostUnreachable,
    LocalFileNotFound,
    RemoteConnectionError,
    SessionClosed,
    TransferFailed,
)
from plan10.models.commands import CommandResult, SystemInfo
from plan10.models.config import ConnectionParameters, Plan10Config, ServerDefinition
from plan10.utils.logging import get_logger

log = get_logger(__name__)

FILE_MODE = 0o644
KEEPALIVE_INTERVAL = 30
CONNECTION_TEST_TEXT = "connection test"
_CHUNK = 32768
_POLL_INTERVAL = 0.01
_TRANSPORT_ERRORS = (paramiko.SSHException, EOFError, OSError)


def remote_arg(path: str) -> str:
    """Shell-quote *path*, keeping a leading ``~/`` so the remote shell expands it."""
    if path == "~":
        return path
    if path.startswith("~/"):
        rest = path[2:]
        return "~/" + shlex.quote(rest) if rest else "~/"
    return shlex.quote(path)


class RemoteSession:
    """One authenticated SSH connection. Not shareable without the pool."""

    def __init__(
        self,
        params: ConnectionParameters,
        transport: paramiko.Transport,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self._params = params
        self._transport = transport
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="ssh",
        )
        self._lock = asyncio.Lock()
        self._closed = False

    # ── connection lifecycle ──────────────────────────────────────────

    @classmethod
    async def connect(cls, params: ConnectionParameters) -> RemoteSession:
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ssh")
        loop = asyncio.get_running_loop()
        log.info("ssh.connecting", endpoint=params.endpoint)
        try:
            transport, method = await loop.run_in_executor(
                executor, _connect_sync, params,
            )
        except BaseException:
            executor.shutdown(wait=False)
            raise
        log.info("ssh.connected", endpoint=params.endpoint, auth=method)
        return cls(params, transport, executor)

    @classmethod
    async def open(
        cls,
        server: ServerDefinition,
        config: Plan10Config,
    ) -> RemoteSession:
        return await cls.connect(ConnectionParameters.resolve(server, config))

    async def close(self) -> None:
        if self._closed:
            return
        async with self._lock:
            self._closed = True
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(self._executor, self._transport.close)
        self._executor.shutdown(wait=False)
        log.info("ssh.closed", endpoint=self.endpoint)

    async def __aenter__(self) -> RemoteSession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def params(self) -> ConnectionParameters:
        return self._params

    @property
    def endpoint(self) -> str:
        return self._params.endpoint

    @property
    def is_connected(self) -> bool:
        if self._closed:
            return False
        try:
            return self._transport.is_active()
        except Exception:
            return False

    # ── helpers ───────────────────────────────────────────────────────

    async def _run(self, fn, *args):
        if self._closed:
            raise SessionClosed(self.endpoint)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, fn, *args)

    # ── commands ──────────────────────────────────────────────────────

    async def execute(self, command: str) -> CommandResult:
        """Run *command* through the remote shell and wait for it to exit."""
        async with self._lock:
            result = await self._run(
                _exec_sync, self._transport, self.endpoint, command,
            )
        log.debug(
            "ssh.exec",
            endpoint=self.endpoint,
            cmd=command,
            rc=result.exit_status,
        )
        return result

    async def execute_with_timeout(
        self,
        command: str,
        timeout: float | None = None,
    ) -> CommandResult:
        """Like :meth:`execute` but gives up after *timeout* seconds.

        On expiry the channel is closed, which unblocks the worker thread,
        and :class:`CommandTimeout` is raised.
        """
        limit = self._params.command_timeout if timeout is None else timeout
        async with self._lock:
            channel = await self._run(_open_channel, self._transport, self.endpoint)
            try:
                return await asyncio.wait_for(
                    self._run(
                        _exec_on_channel,
                        self._transport,
                        channel,
                        self.endpoint,
                        command,
                    ),
                    limit,
                )
            except asyncio.TimeoutError:
                channel.close()
                log.warning(
                    "ssh.command_timeout",
                    endpoint=self.endpoint,
                    cmd=command,
                    timeout=limit,
                )
                raise CommandTimeout(self.endpoint, command, limit) from None

    async def test_connection(self) -> bool:
        result = await self.execute(f"echo '{CONNECTION_TEST_TEXT}'")
        return result.success and result.stdout.strip() == CONNECTION_TEST_TEXT

    # ── remote filesystem predicates ──────────────────────────────────

    async def ensure_directory(self, remote_path: str) -> bool:
        result = await self.execute(f"mkdir -p {remote_arg(remote_path)}")
        return result.success

    async def file_exists(self, remote_path: str) -> bool:
        result = await self.execute(f"test -f {remote_arg(remote_path)}")
        return result.success

    async def directory_exists(self, remote_path: str) -> bool:
        result = await self.execute(f"test -d {remote_arg(remote_path)}")
        return result.success

    async def make_executable(self, remote_path: str) -> bool:
        result = await self.execute(f"chmod +x {remote_arg(remote_path)}")
        return result.success

    # ── transfer ──────────────────────────────────────────────────────

    async def copy_file(self, local: Path | str, remote: str) -> int:
        """Upload one file with mode 0644. Returns the number of bytes sent."""
        local = Path(local)
        if not local.is_file():
            raise LocalFileNotFound(str(local))
        async with self._lock:
            size = await self._run(
                _send_file_sync, self._transport, self.endpoint, local, remote,
            )
        log.debug("ssh.copied", local=str(local), remote=remote, size=size)
        return size

    async def copy_directory(self, local_dir: Path | str, remote_dir: str) -> int:
        """Upload every file below *local_dir*; not atomic. Returns the file count."""
        local_dir = Path(local_dir)
        if not local_dir.is_dir():
            raise LocalFileNotFound(str(local_dir))
        async with self._lock:
            count = await self._run(
                _copy_tree_sync, self._transport, self.endpoint, local_dir, remote_dir,
            )
        log.debug("ssh.copied_tree", local=str(local_dir), remote=remote_dir, files=count)
        return count

    async def download_file(self, remote: str, local: Path | str) -> int:
        local = Path(local)
        async with self._lock:
            payload: bytes = await self._run(
                _get_file_sync, self._transport, self.endpoint, remote,
            )
        try:
            local.write_bytes(payload)
        except OSError as exc:
            raise TransferFailed(str(local), str(exc)) from exc
        log.debug("ssh.downloaded", remote=remote, local=str(local), size=len(payload))
        return len(payload)

    # ── queries ───────────────────────────────────────────────────────

    async def get_system_info(self) -> SystemInfo:
        uname = await self.execute("uname -a")
        uptime = await self.execute("uptime")
        disk = await self.execute("df -h /")
        whoami = await self.execute("whoami")
        return SystemInfo(
            hostname=self._params.host,
            uname=uname.stdout.strip(),
            uptime=uptime.stdout.strip(),
            disk_usage=disk.stdout.strip(),
            current_user=whoami.stdout.strip(),
        )


# ── module-level sync workers (run inside the session executor) ───────────


def _connect_sync(params: ConnectionParameters) -> tuple[paramiko.Transport, str]:
    transport = _open_transport(params)
    try:
        method = _authenticate(transport, params)
    except BaseException:
        transport.close()
        raise
    return transport, method


def _open_transport(params: ConnectionParameters) -> paramiko.Transport:
    endpoint = params.endpoint
    try:
        sock = socket.create_connection(
            (params.host, params.port), timeout=params.connect_timeout,
        )
    except TimeoutError as exc:
        raise ConnectTimeout(
            endpoint, f"no answer within {params.connect_timeout:g}s",
        ) from exc
    except ConnectionRefusedError as exc:
        raise ConnectionRefused(endpoint, str(exc)) from exc
    except OSError as exc:
        raise HostUnreachable(endpoint, str(exc)) from exc

    transport = paramiko.Transport(sock)
    transport.use_compression(params.compression)
    try:
        transport.start_client(timeout=params.connect_timeout)
    except _TRANSPORT_ERRORS as exc:
        transport.close()
        raise HandshakeFailed(endpoint, str(exc)) from exc

    _check_host_key(transport, params)
    if params.keep_alive:
        transport.set_keepalive(KEEPALIVE_INTERVAL)
    return transport


def _check_host_key(transport: paramiko.Transport, params: ConnectionParameters) -> None:
    """Reject a server key that contradicts known_hosts; unknown hosts pass."""
    path = params.known_hosts_file
    if path is None or not path.exists():
        return
    host_keys = paramiko.HostKeys()
    try:
        host_keys.load(str(path))
    except (OSError, paramiko.SSHException) as exc:
        log.warning("ssh.known_hosts_unreadable", path=str(path), error=str(exc))
        return

    lookup = params.host if params.port == 22 else f"[{params.host}]:{params.port}"
    known = host_keys.lookup(lookup)
    server_key = transport.get_remote_server_key()
    expected = known.get(server_key.get_name()) if known else None
    if expected is None:
        log.debug("ssh.host_key_unknown", host=lookup, key_type=server_key.get_name())
        return
    if expected.asbytes() != server_key.asbytes():
        transport.close()
        raise HandshakeFailed(
            params.endpoint,
            f"host key for {lookup} does not match {path}",
        )


def _authenticate(transport: paramiko.Transport, params: ConnectionParameters) -> str:
    """Key file first, then agent identities. Returns the method that worked."""
    key_path = params.key_path
    if key_path is not None:
        if key_path.exists():
            try:
                pkey = paramiko.PKey.from_path(key_path)
                transport.auth_publickey(params.user, pkey)
            except (paramiko.SSHException, OSError, ValueError) as exc:
                log.warning("ssh.key_auth_failed", key=str(key_path), error=str(exc))
            else:
                if transport.is_authenticated():
                    return "publickey"
        else:
            # Configured-but-missing keys fall through to the agent.
            log.info("ssh.key_missing", key=str(key_path), endpoint=params.endpoint)

    try:
        agent = paramiko.Agent()
    except paramiko.SSHException as exc:
        log.info("ssh.agent_unavailable", error=str(exc))
    else:
        try:
            for key in agent.get_keys():
                try:
                    transport.auth_publickey(params.user, key)
                except paramiko.SSHException as exc:
                    log.debug("ssh.agent_key_rejected", error=str(exc))
                    continue
                if transport.is_authenticated():
                    return "agent"
        finally:
            agent.close()

    raise AuthenticationFailed(params.user, params.host, "no usable key file or agent identity")


def _open_channel(transport: paramiko.Transport, endpoint: str) -> paramiko.Channel:
    try:
        return transport.open_session()
    except _TRANSPORT_ERRORS as exc:
        raise SessionClosed(endpoint, str(exc)) from exc


def _drain(channel: paramiko.Channel) -> tuple[bytes, bytes]:
    """Read stdout and stderr in one loop until the exit status arrives."""
    out = bytearray()
    err = bytearray()
    while True:
        busy = False
        if channel.recv_ready():
            out += channel.recv(_CHUNK)
            busy = True
        if channel.recv_stderr_ready():
            err += channel.recv_stderr(_CHUNK)
            busy = True
        if busy:
            continue
        # Closing the channel also marks the status ready (as -1).
        if channel.exit_status_ready():
            return bytes(out), bytes(err)
        time.sleep(_POLL_INTERVAL)


def _exec_on_channel(
    transport: paramiko.Transport,
    channel: paramiko.Channel,
    endpoint: str,
    command: str,
) -> CommandResult:
    started = time.monotonic()
    try:
        channel.exec_command(command)
        out, err = _drain(channel)
        status = channel.recv_exit_status()
    except _TRANSPORT_ERRORS as exc:
        raise SessionClosed(endpoint, str(exc)) from exc
    finally:
        channel.close()

    # No exit status plus a dead transport means the connection dropped.
    if status == -1 and not transport.is_active():
        raise SessionClosed(endpoint, f"connection lost while running: {command}")

    return CommandResult(
        command=command,
        stdout=out.decode("utf-8", errors="replace"),
        stderr=err.decode("utf-8", errors="replace"),
        exit_status=status,
        elapsed_time=time.monotonic() - started,
    )


def _exec_sync(transport: paramiko.Transport, endpoint: str, command: str) -> CommandResult:
    channel = _open_channel(transport, endpoint)
    return _exec_on_channel(transport, channel, endpoint, command)


# ── SFTP transfer ─────────────────────────────────────────────────────────


def _transfer_error(
    transport: paramiko.Transport,
    endpoint: str,
    path: str,
    exc: BaseException,
) -> Exception:
    if not transport.is_active():
        return SessionClosed(endpoint, str(exc))
    return TransferFailed(path, str(exc) or type(exc).__name__)


def _open_sftp(
    transport: paramiko.Transport,
    endpoint: str,
    path: str,
) -> paramiko.SFTPClient:
    try:
        return transport.open_sftp_client()
    except _TRANSPORT_ERRORS as exc:
        raise _transfer_error(transport, endpoint, path, exc) from exc


def _sftp_path(sftp: paramiko.SFTPClient, path: str) -> str:
    """SFTP does not expand ``~``; anchor it at the login directory."""
    if path != "~" and not path.startswith("~/"):
        return path
    home = sftp.normalize(".")
    rest = path[2:]
    return posixpath.join(home, rest) if rest else home


def _put_file(sftp: paramiko.SFTPClient, local: Path, remote_path: str) -> int:
    try:
        payload = local.read_bytes()
    except FileNotFoundError as exc:
        raise LocalFileNotFound(str(local)) from exc
    target = _sftp_path(sftp, remote_path)
    sftp.putfo(io.BytesIO(payload), target)
    sftp.chmod(target, FILE_MODE)
    return len(payload)


def _send_file_sync(
    transport: paramiko.Transport,
    endpoint: str,
    local: Path,
    remote_path: str,
) -> int:
    sftp = _open_sftp(transport, endpoint, remote_path)
    try:
        return _put_file(sftp, local, remote_path)
    except _TRANSPORT_ERRORS as exc:
        raise _transfer_error(transport, endpoint, remote_path, exc) from exc
    finally:
        sftp.close()


def _copy_tree_sync(
    transport: paramiko.Transport,
    endpoint: str,
    local_dir: Path,
    remote_dir: str,
) -> int:
    base = remote_dir.rstrip("/") or "/"
    _exec_sync(transport, endpoint, f"mkdir -p {remote_arg(base)}")
    created = {base}
    count = 0
    sftp = _open_sftp(transport, endpoint, base)
    try:
        for path in sorted(local_dir.rglob("*")):
            if not path.is_file():
                continue
            remote_path = posixpath.join(base, path.relative_to(local_dir).as_posix())
            parent = posixpath.dirname(remote_path)
            if parent not in created:
                _exec_sync(transport, endpoint, f"mkdir -p {remote_arg(parent)}")
                created.add(parent)
            try:
                _put_file(sftp, path, remote_path)
            except _TRANSPORT_ERRORS as exc:
                raise _transfer_error(transport, endpoint, remote_path, exc) from exc
            count += 1
    finally:
        sftp.close()
    return count


def _get_file_sync(transport: paramiko.Transport, endpoint: str, remote_path: str) -> bytes:
    sftp = _open_sftp(transport, endpoint, remote_path)
    buf = io.BytesIO()
    try:
        sftp.getfo(_sftp_path(sftp, remote_path), buf)
    except _TRANSPORT_ERRORS as exc:
        raise _transfer_error(transport, endpoint, remote_path, exc) from exc
    finally:
        sftp.close()
    return buf.getvalue()


# ── one-shot helpers ──────────────────────────────────────────────────────


async def check_connectivity(server: ServerDefinition, config: Plan10Config) -> bool:
    """Connect, echo, disconnect. Connection failures read as ``False``."""
    try:
        async with await RemoteSession.open(server, config) as session:
            return await session.test_connection()
    except RemoteConnectionError as exc:
        log.info("ssh.unreachable", endpoint=server.endpoint, error=str(exc))
        return False


async def execute_remote_command(
    server: ServerDefinition,
    config: Plan10Config,
    command: str,
) -> CommandResult:
    async with await RemoteSession.open(server, config) as session:
        return await session.execute(command)


async def deploy_files(
    server: ServerDefinition,
    config: Plan10Config,
    local_files: Iterable[tuple[Path, str]],
) -> None:
    """Upload each file or directory; paths that do not exist are ignored."""
    async with await RemoteSession.open(server, config) as session:
        for local, remote in local_files:
            if local.is_file():
                await session.copy_file(local, remote)
            elif local.is_dir():
                await session.copy_directory(local, remote)
