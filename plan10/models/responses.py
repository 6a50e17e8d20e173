"""Structured results returned by the manage / diagnose / status / monitor services."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from plan10.models.commands import SystemInfo


class CheckLevel(str, Enum):
    ok = "ok"
    info = "info"
    warning = "warning"
    error = "error"


class DiagnosticCheck(BaseModel):
    """One line of a report: a label, its level, and optional raw output."""

    name: str
    level: CheckLevel
    message: str = ""
    output: str = ""


class PathCheck(BaseModel):
    label: str
    path: str
    present: bool


class VerificationReport(BaseModel):
    endpoint: str
    files: list[PathCheck] = Field(default_factory=list)
    scripts_executable: bool = False

    @property
    def ok(self) -> bool:
        return self.scripts_executable and all(f.present for f in self.files)


class ManageAction(str, Enum):
    start = "start"
    stop = "stop"
    restart = "restart"
    update = "update"
    status = "status"
    configure = "configure"


class ManageResult(BaseModel):
    action: ManageAction
    endpoint: str
    success: bool
    checks: list[DiagnosticCheck] = Field(default_factory=list)
    output: str = ""
    error: Optional[str] = None


class DiagnosticsMode(str, Enum):
    basic = "basic"
    battery = "battery"
    power = "power"
    fixes = "fixes"


class DiagnosticsReport(BaseModel):
    endpoint: str
    mode: DiagnosticsMode
    connected: bool = False
    scripts_available: bool = False
    checks: list[DiagnosticCheck] = Field(default_factory=list)
    files: list[PathCheck] = Field(default_factory=list)
    error: Optional[str] = None


class RemoteStatus(BaseModel):
    endpoint: str
    system: Optional[SystemInfo] = None
    power_source: str = "unknown"
    caffeinate_pids: list[int] = Field(default_factory=list)
    disk_used_percent: Optional[int] = None

    @property
    def caffeinate_running(self) -> bool:
        return bool(self.caffeinate_pids)


class WatchTarget(str, Enum):
    all = "all"
    temp = "temp"
    battery = "battery"
    power = "power"
    system = "system"


class MonitorReading(BaseModel):
    """Output of one monitoring script run, plus whatever could be parsed from it."""

    name: str
    command: str
    output: str = ""
    error: Optional[str] = None
    power_source: Optional[str] = None
    battery_percent: Optional[int] = None
    battery_state: Optional[str] = None
    system: Optional[SystemInfo] = None

    @property
    def ok(self) -> bool:
        return self.error is None
