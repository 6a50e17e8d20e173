"""Named failure conditions raised by the registry, sessions and deployments."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from plan10.models.deploy import DeploymentReport


class Plan10Error(Exception):
    """Root of every error this package raises on purpose."""


# ── configuration ─────────────────────────────────────────────────────────


class ConfigError(Plan10Error):
    pass


class DuplicateName(ConfigError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Server '{name}' already exists")


class NotFound(ConfigError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Server '{name}' not found")


class InvalidConfig(ConfigError):
    pass


# ── connection ────────────────────────────────────────────────────────────


class RemoteConnectionError(Plan10Error):
    """Could not establish an authenticated session to *endpoint*."""

    def __init__(self, endpoint: str, detail: str = "") -> None:
        self.endpoint = endpoint
        self.detail = detail
        message = f"{self._prefix()} ({endpoint})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)

    def _prefix(self) -> str:
        return "Connection failed"


class ConnectTimeout(RemoteConnectionError):
    def _prefix(self) -> str:
        return "Connection timed out"


class ConnectionRefused(RemoteConnectionError):
    def _prefix(self) -> str:
        return "Connection refused"


class HostUnreachable(RemoteConnectionError):
    def _prefix(self) -> str:
        return "Host unreachable"


class HandshakeFailed(RemoteConnectionError):
    def _prefix(self) -> str:
        return "SSH handshake failed"


class AuthenticationFailed(RemoteConnectionError):
    def __init__(self, user: str, host: str, detail: str = "") -> None:
        self.user = user
        self.host = host
        super().__init__(f"{user}@{host}", detail)

    def _prefix(self) -> str:
        return f"Authentication failed for user {self.user} on {self.host}"


# ── session / transfer ────────────────────────────────────────────────────


class SessionClosed(Plan10Error):
    """The SSH transport dropped while an operation was in flight."""

    def __init__(self, endpoint: str, detail: str = "") -> None:
        self.endpoint = endpoint
        msg = f"Session to {endpoint} is closed"
        super().__init__(f"{msg}: {detail}" if detail else msg)


class CommandTimeout(Plan10Error):
    def __init__(self, endpoint: str, command: str, timeout: float) -> None:
        self.endpoint = endpoint
        self.command = command
        self.timeout = timeout
        super().__init__(
            f"Command timed out after {timeout:g}s on {endpoint}: {command}",
        )


class RemoteCommandFailed(Plan10Error):
    def __init__(self, command: str, exit_status: int, stderr: str) -> None:
        self.command = command
        self.exit_status = exit_status
        self.stderr = stderr
        super().__init__(
            f"Command failed with exit code {exit_status}: {stderr.strip()}",
        )


class TransferError(Plan10Error):
    pass


class LocalFileNotFound(TransferError):
    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Local file not found: {path}")


class TransferFailed(TransferError):
    def __init__(self, path: str, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"Transfer of {path} failed: {detail}")


# ── deployment ────────────────────────────────────────────────────────────


class DeploymentAborted(Plan10Error):
    """The run stopped before the end of the plan; ``report`` has the partial result."""

    def __init__(self, report: DeploymentReport, reason: str) -> None:
        self.report = report
        self.reason = reason
        super().__init__(f"Deployment aborted: {reason}")
