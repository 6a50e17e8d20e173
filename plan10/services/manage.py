"""Service supervision on the target: start / stop / restart / status / configure / update."""

from __future__ import annotations

import asyncio
from pathlib import Path

from plan10.models.deploy import DeployMode
from plan10.models.responses import CheckLevel, DiagnosticCheck, ManageAction, ManageResult
from plan10.services import deploy_planner
from plan10.services.deploy_executor import DeploymentExecutor
from plan10.services.ssh_session import RemoteSession
from plan10.services.status import collect_status
from plan10.utils.logging import get_logger

log = get_logger(__name__)

CAFFEINATE_PLIST = "~/Library/LaunchAgents/caffeinate.plist"
LOAD_CMD = f"launchctl load {CAFFEINATE_PLIST}"
UNLOAD_CMD = f"launchctl unload {CAFFEINATE_PLIST}; pkill caffeinate"
CONFIGURE_CMD = "sudo ./server_setup.sh"
RESTART_PAUSE_SECONDS = 2.0


async def manage(
    action: ManageAction,
    session: RemoteSession,
    *,
    source_root: Path | None = None,
    restart_pause: float = RESTART_PAUSE_SECONDS,
) -> ManageResult:
    log.info("manage.action", action=action.value, endpoint=session.endpoint)
    result = ManageResult(action=action, endpoint=session.endpoint, success=False)

    if action is ManageAction.start:
        run = await session.execute(LOAD_CMD)
        result.success = run.success
        result.output = run.stdout
        if not run.success:
            result.error = f"Failed to start services: {run.stderr.strip()}"

    elif action is ManageAction.stop:
        run = await session.execute(UNLOAD_CMD)
        result.success = run.success
        result.output = run.stdout
        if not run.success:
            result.error = "Some services may still be running"

    elif action is ManageAction.restart:
        await session.execute(UNLOAD_CMD)
        await asyncio.sleep(restart_pause)
        run = await session.execute(LOAD_CMD)
        result.success = run.success
        result.output = run.stdout
        if not run.success:
            result.error = f"Failed to restart services: {run.stderr.strip()}"

    elif action is ManageAction.configure:
        run = await session.execute(CONFIGURE_CMD)
        result.success = run.success
        result.output = run.stdout
        if not run.success:
            result.error = f"Configuration failed: {run.stderr.strip()}"

    elif action is ManageAction.status:
        status = await collect_status(session, detailed=False)
        if status.caffeinate_running:
            pids = ", ".join(str(p) for p in status.caffeinate_pids)
            result.checks.append(DiagnosticCheck(
                name="caffeinate", level=CheckLevel.ok, message=f"Caffeinate running (PID: {pids})",
            ))
        else:
            result.checks.append(DiagnosticCheck(
                name="caffeinate", level=CheckLevel.warning, message="Caffeinate not running",
            ))

        if status.power_source == "AC Power":
            level = CheckLevel.ok
        elif status.power_source == "Battery Power":
            level = CheckLevel.warning
        else:
            level = CheckLevel.info
        result.checks.append(DiagnosticCheck(
            name="power", level=level, message=f"Power source: {status.power_source}",
        ))

        uptime = await session.execute("uptime")
        if uptime.success:
            result.checks.append(DiagnosticCheck(
                name="uptime", level=CheckLevel.info, message=f"Uptime: {uptime.stdout.strip()}",
            ))
        result.success = True

    elif action is ManageAction.update:
        # Re-deploy the full manifest over the existing install.
        items = deploy_planner.plan(DeployMode.all)
        report = await DeploymentExecutor(source_root).execute(items, session)
        result.success = True
        result.output = (
            f"{report.deployed} deployed, {report.skipped} skipped of {report.total}"
        )

    return result
