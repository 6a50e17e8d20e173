"""Deployment plan and report models for the PLAN -> EXECUTE workflow."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from plan10.errors import InvalidConfig


class DeployMode(str, Enum):
    all = "all"
    scripts_only = "scripts-only"
    config_only = "config-only"

    @classmethod
    def from_flags(
        cls,
        all: bool = False,
        scripts_only: bool = False,
        config_only: bool = False,
    ) -> DeployMode:
        """Map the mutually exclusive CLI flags to a mode; no flag means ``all``."""
        chosen = [
            mode
            for mode, flag in (
                (cls.all, all),
                (cls.scripts_only, scripts_only),
                (cls.config_only, config_only),
            )
            if flag
        ]
        if len(chosen) > 1:
            names = ", ".join(f"--{m.value}" for m in chosen)
            raise InvalidConfig(f"Deployment modes are mutually exclusive: {names}")
        return chosen[0] if chosen else cls.all


class DeploymentCategory(str, Enum):
    server_setup = "server-setup"
    scripts = "scripts"
    configs = "configs"
    services = "services"


class DeployEntry(BaseModel):
    """One local source and where it lands on the target."""

    model_config = ConfigDict(frozen=True)

    local: Path
    remote: str
    executable: bool = False
    # A missing required source aborts the run instead of being skipped.
    required: bool = False


class DeploymentItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: DeploymentCategory
    entries: tuple[DeployEntry, ...]
    ensure_dirs: tuple[str, ...] = ()


class DeploymentState(str, Enum):
    planned = "planned"
    in_progress = "in_progress"
    completed = "completed"
    aborted = "aborted"


class OutcomeStatus(str, Enum):
    deployed = "deployed"
    skipped = "skipped"
    failed = "failed"


class EntryOutcome(BaseModel):
    category: DeploymentCategory
    local: Path
    remote: str
    status: OutcomeStatus
    message: str = ""
    made_executable: bool = False


class DeploymentReport(BaseModel):
    """Progress and per-entry results of one deployment run."""

    state: DeploymentState = DeploymentState.planned
    total: int = 0
    # Index of the next entry to process; progress display only.
    cursor: int = 0
    outcomes: list[EntryOutcome] = Field(default_factory=list)
    error: Optional[str] = None

    def _count(self, status: OutcomeStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def deployed(self) -> int:
        return self._count(OutcomeStatus.deployed)

    @property
    def skipped(self) -> int:
        return self._count(OutcomeStatus.skipped)

    @property
    def failed(self) -> int:
        return self._count(OutcomeStatus.failed)
