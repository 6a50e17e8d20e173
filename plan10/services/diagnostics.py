"""Remote diagnostics built on the scripts the deployment installs."""

from __future__ import annotations

from plan10.models.responses import (
    CheckLevel,
    DiagnosticCheck,
    DiagnosticsMode,
    DiagnosticsReport,
    PathCheck,
)
from plan10.services.ssh_session import RemoteSession
from plan10.services.status import CAFFEINATE_PGREP, POWER_SOURCE_CMD
from plan10.utils.logging import get_logger
from plan10.utils.remote_parser import parse_pids

log = get_logger(__name__)

REQUIRED_SCRIPTS = [
    "~/scripts/temp",
    "~/scripts/battery",
    "~/scripts/power_diagnostics",
]

DEPLOYMENT_FILES: list[tuple[str, str]] = [
    ("Server setup", "~/server_setup.sh"),
    ("Caffeinate plist", "~/Library/LaunchAgents/caffeinate.plist"),
    ("Temp script", "~/scripts/temp"),
    ("Battery script", "~/scripts/battery"),
    ("Power diagnostics", "~/scripts/power_diagnostics"),
]


def mode_from_flags(battery: bool = False, power: bool = False, fixes: bool = False) -> DiagnosticsMode:
    if battery:
        return DiagnosticsMode.battery
    if power:
        return DiagnosticsMode.power
    if fixes:
        return DiagnosticsMode.fixes
    return DiagnosticsMode.basic


async def run_diagnostics(
    session: RemoteSession,
    mode: DiagnosticsMode = DiagnosticsMode.basic,
) -> DiagnosticsReport:
    """Connection test -> script availability -> mode-specific checks.

    A failed connection test or missing scripts ends the run early; the
    report says why.
    """
    report = DiagnosticsReport(endpoint=session.endpoint, mode=mode)

    report.connected = await session.test_connection()
    if not report.connected:
        report.error = "Connection test failed"
        log.warning("diagnose.connection_failed", endpoint=session.endpoint)
        return report

    report.scripts_available = True
    for script in REQUIRED_SCRIPTS:
        if not await session.file_exists(script):
            report.scripts_available = False
            report.checks.append(DiagnosticCheck(
                name="script", level=CheckLevel.warning, message=f"Missing script: {script}",
            ))
    if not report.scripts_available:
        report.error = "Plan 10 scripts not found. Consider running deployment first."
        return report

    if mode is DiagnosticsMode.basic:
        await _basic(session, report)
    elif mode is DiagnosticsMode.battery:
        await _script(session, report, "battery", "~/scripts/battery -d")
    elif mode is DiagnosticsMode.power:
        await _script(session, report, "power", "~/scripts/power_diagnostics")
    else:
        await _with_fixes(session, report)

    log.info("diagnose.done", endpoint=session.endpoint, mode=mode.value, checks=len(report.checks))
    return report


async def _basic(session: RemoteSession, report: DiagnosticsReport) -> None:
    system = await session.execute("uname -a && uptime")
    if system.success:
        report.checks.append(DiagnosticCheck(
            name="System Information", level=CheckLevel.info, output=system.stdout.strip(),
        ))

    power = await session.execute(POWER_SOURCE_CMD)
    if power.success:
        report.checks.append(DiagnosticCheck(
            name="Power Status", level=CheckLevel.info, output=power.stdout.strip(),
        ))

    caffeinate = await session.execute(CAFFEINATE_PGREP)
    pids = parse_pids(caffeinate.stdout) if caffeinate.success else []
    if pids:
        report.checks.append(DiagnosticCheck(
            name="Caffeinate Status",
            level=CheckLevel.ok,
            message=f"Caffeinate running (PID: {', '.join(str(p) for p in pids)})",
        ))
    else:
        report.checks.append(DiagnosticCheck(
            name="Caffeinate Status", level=CheckLevel.warning, message="Caffeinate not running",
        ))


async def _script(
    session: RemoteSession,
    report: DiagnosticsReport,
    label: str,
    command: str,
) -> bool:
    result = await session.execute(command)
    if result.success:
        report.checks.append(DiagnosticCheck(
            name=f"{label.capitalize()} diagnostics", level=CheckLevel.info, output=result.stdout,
        ))
    else:
        report.checks.append(DiagnosticCheck(
            name=f"{label.capitalize()} diagnostics",
            level=CheckLevel.error,
            message=f"{label.capitalize()} diagnostics failed: {result.stderr.strip()}",
        ))
    return result.success


async def _with_fixes(session: RemoteSession, report: DiagnosticsReport) -> None:
    if not await _script(session, report, "comprehensive", "~/scripts/power_diagnostics -f"):
        return

    disk = await session.execute("df -h / | tail -1")
    if disk.success:
        report.checks.append(DiagnosticCheck(
            name="Disk usage", level=CheckLevel.info, output=disk.stdout.strip(),
        ))

    memory = await session.execute("vm_stat | head -5")
    if memory.success:
        report.checks.append(DiagnosticCheck(
            name="Memory info", level=CheckLevel.info, output=memory.stdout,
        ))

    for label, path in DEPLOYMENT_FILES:
        present = await session.file_exists(path)
        report.files.append(PathCheck(label=label, path=path, present=present))
