"""Command-related data structures."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, computed_field

from plan10.errors import RemoteCommandFailed


class CommandResult(BaseModel):
    """Outcome of one remote command. A non-zero exit is a normal result."""

    model_config = ConfigDict(frozen=True)

    command: str
    stdout: str = ""
    stderr: str = ""
    exit_status: int = 0
    elapsed_time: float = 0.0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success(self) -> bool:
        return self.exit_status == 0

    def ensure_success(self) -> CommandResult:
        if not self.success:
            raise RemoteCommandFailed(self.command, self.exit_status, self.stderr)
        return self


class SystemInfo(BaseModel):
    hostname: str
    uname: str = ""
    uptime: str = ""
    disk_usage: str = ""
    current_user: str = ""
