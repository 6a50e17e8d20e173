"""Walk a deployment plan against one session: ensure dirs -> copy -> chmod.

A missing optional source is reported and skipped. A missing required
source, or any transport error, aborts the rest of the plan; there is no
rollback, re-running the deployment simply overwrites what was copied.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable

from plan10.errors import DeploymentAborted, LocalFileNotFound
from plan10.models.deploy import (
    DeployEntry,
    DeploymentCategory,
    DeploymentItem,
    DeploymentReport,
    DeploymentState,
    EntryOutcome,
    OutcomeStatus,
)
from plan10.models.responses import PathCheck, VerificationReport
from plan10.services.deploy_planner import entry_count
from plan10.services.ssh_session import RemoteSession
from plan10.utils.logging import get_logger

log = get_logger(__name__)

ProgressCallback = Callable[[int, int, EntryOutcome], None]

INSTALLED_FILES: list[tuple[str, str]] = [
    ("Server setup", "~/server_setup.sh"),
    ("Temp script", "~/scripts/temp"),
    ("Battery script", "~/scripts/battery"),
    ("Power diagnostics", "~/scripts/power_diagnostics"),
]


class DeploymentExecutor:
    def __init__(
        self,
        source_root: Path | str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self._root = Path(source_root) if source_root is not None else Path.cwd()
        self._on_progress = on_progress
        self.report = DeploymentReport()

    async def execute(
        self,
        items: list[DeploymentItem],
        session: RemoteSession,
    ) -> DeploymentReport:
        """Run *items* in order. Raises :class:`DeploymentAborted` on a fatal error."""
        report = DeploymentReport(total=entry_count(items))
        self.report = report
        report.state = DeploymentState.in_progress
        log.info("deploy.started", endpoint=session.endpoint, entries=report.total)

        try:
            for item in items:
                log.info("deploy.category", category=item.category.value)
                for remote_dir in item.ensure_dirs:
                    await session.ensure_directory(remote_dir)
                for entry in item.entries:
                    await self._deploy_entry(item.category, entry, session)
        except Exception as exc:
            report.state = DeploymentState.aborted
            report.error = str(exc)
            log.error(
                "deploy.aborted",
                endpoint=session.endpoint,
                cursor=report.cursor,
                total=report.total,
                error=str(exc),
            )
            raise DeploymentAborted(report, str(exc)) from exc

        report.state = DeploymentState.completed
        log.info(
            "deploy.completed",
            endpoint=session.endpoint,
            deployed=report.deployed,
            skipped=report.skipped,
        )
        return report

    async def _deploy_entry(
        self,
        category: DeploymentCategory,
        entry: DeployEntry,
        session: RemoteSession,
    ) -> None:
        local = self._root / entry.local

        if not local.exists():
            if entry.required:
                self._record(category, entry, OutcomeStatus.failed, "required source missing")
                raise LocalFileNotFound(str(local))
            log.warning("deploy.source_missing", local=str(local))
            self._record(category, entry, OutcomeStatus.skipped, f"Local file not found: {local}")
            return

        try:
            if local.is_dir():
                await session.copy_directory(local, entry.remote)
            else:
                await session.copy_file(local, entry.remote)

            made_executable = False
            message = ""
            if entry.executable:
                made_executable = await session.make_executable(entry.remote)
                if not made_executable:
                    message = "chmod +x failed"
                    log.warning("deploy.chmod_failed", remote=entry.remote)
        except Exception as exc:
            self._record(category, entry, OutcomeStatus.failed, str(exc))
            raise

        log.debug("deploy.entry_done", local=str(entry.local), remote=entry.remote)
        self._record(
            category,
            entry,
            OutcomeStatus.deployed,
            message,
            made_executable=made_executable,
        )

    def _record(
        self,
        category: DeploymentCategory,
        entry: DeployEntry,
        status: OutcomeStatus,
        message: str = "",
        *,
        made_executable: bool = False,
    ) -> None:
        outcome = EntryOutcome(
            category=category,
            local=entry.local,
            remote=entry.remote,
            status=status,
            message=message,
            made_executable=made_executable,
        )
        self.report.outcomes.append(outcome)
        self.report.cursor += 1
        if self._on_progress is not None:
            self._on_progress(self.report.cursor, self.report.total, outcome)


async def verify_deployment(session: RemoteSession) -> VerificationReport:
    """Check the installed artifacts exist and the scripts run."""
    report = VerificationReport(endpoint=session.endpoint)
    for label, path in INSTALLED_FILES:
        present = await session.file_exists(path)
        report.files.append(PathCheck(label=label, path=path, present=present))
    help_run = await session.execute("~/scripts/temp --help")
    report.scripts_executable = help_run.success
    log.info("deploy.verified", endpoint=session.endpoint, ok=report.ok)
    return report
