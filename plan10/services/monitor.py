"""Remote monitoring through the deployed ``~/scripts`` plus a watch loop."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from plan10.errors import CommandTimeout, RemoteConnectionError, SessionClosed
from plan10.models.config import ServerDefinition
from plan10.models.responses import MonitorReading, WatchTarget
from plan10.services.session_pool import SessionPool
from plan10.services.ssh_session import RemoteSession
from plan10.utils.logging import get_logger
from plan10.utils.remote_parser import parse_battery, parse_power_source

log = get_logger(__name__)

TEMP_SCRIPT = "~/scripts/temp"
BATTERY_SCRIPT = "~/scripts/battery"
POWER_SCRIPT = "~/scripts/power_diagnostics"
BATTERY_STATUS_CMD = "pmset -g batt"


def temp_command(raw: bool = False) -> str:
    return f"{TEMP_SCRIPT} -r" if raw else TEMP_SCRIPT


def battery_command(detailed: bool = False, raw: bool = False) -> str:
    if raw:
        return f"{BATTERY_SCRIPT} -r"
    if detailed:
        return f"{BATTERY_SCRIPT} -d"
    return BATTERY_SCRIPT


def power_command(
    *,
    verbose: bool = False,
    battery: bool = False,
    sleep: bool = False,
    all_: bool = False,
    fixes: bool = False,
) -> str:
    flags = [
        flag
        for flag, enabled in (
            ("-v", verbose),
            ("-b", battery),
            ("-s", sleep),
            ("-a", all_),
            ("-f", fixes),
        )
        if enabled
    ]
    return " ".join([POWER_SCRIPT, *flags])


# ── single readings ───────────────────────────────────────────────────────


async def _run_script(session: RemoteSession, name: str, command: str) -> MonitorReading:
    result = await session.execute_with_timeout(command)
    reading = MonitorReading(name=name, command=command, output=result.stdout)
    if not result.success:
        detail = result.stderr.strip() or f"exit code {result.exit_status}"
        reading.error = f"Remote command failed: {detail}"
        log.warning(
            "monitor.script_failed",
            endpoint=session.endpoint,
            cmd=command,
            rc=result.exit_status,
        )
    return reading


async def read_temperature(session: RemoteSession, *, raw: bool = False) -> MonitorReading:
    return await _run_script(session, "Temperature", temp_command(raw))


async def read_battery(
    session: RemoteSession,
    *,
    detailed: bool = False,
    raw: bool = False,
) -> MonitorReading:
    reading = await _run_script(session, "Battery", battery_command(detailed, raw))
    pmset = await session.execute(BATTERY_STATUS_CMD)
    if pmset.success:
        reading.power_source = parse_power_source(pmset.stdout)
        battery = parse_battery(pmset.stdout)
        reading.battery_percent = battery.get("percent")
        reading.battery_state = battery.get("state")
    return reading


async def read_power(session: RemoteSession, **flags: bool) -> MonitorReading:
    return await _run_script(session, "Power", power_command(**flags))


async def read_system(session: RemoteSession) -> MonitorReading:
    info = await session.get_system_info()
    return MonitorReading(name="System", command="system info", system=info)


# ── watch ─────────────────────────────────────────────────────────────────

Reader = Callable[[RemoteSession], Awaitable[MonitorReading]]
Render = Callable[[int, list[MonitorReading]], None]

_SECTIONS: dict[WatchTarget, tuple[Reader, ...]] = {
    WatchTarget.all: (read_temperature, read_battery, read_system),
    WatchTarget.temp: (read_temperature,),
    WatchTarget.battery: (read_battery,),
    WatchTarget.power: (read_power,),
    WatchTarget.system: (read_system,),
}


async def snapshot(
    session: RemoteSession,
    target: WatchTarget = WatchTarget.all,
) -> list[MonitorReading]:
    return [await read(session) for read in _SECTIONS[target]]


async def watch(
    pool: SessionPool,
    server: ServerDefinition,
    target: WatchTarget,
    interval: float,
    render: Render,
    *,
    rounds: Optional[int] = None,
) -> int:
    """Take a snapshot every *interval* seconds until cancelled or *rounds* is reached.

    Every round asks the pool for its session, so a connection that drops
    between rounds is re-established. A round that fails is rendered as an
    error reading and the loop carries on. Returns the number of rounds run.
    """
    done = 0
    while rounds is None or done < rounds:
        if done:
            await asyncio.sleep(interval)
        done += 1
        try:
            session = await pool.get_or_connect(server)
            readings = await snapshot(session, target)
        except (RemoteConnectionError, SessionClosed, CommandTimeout) as exc:
            log.warning("monitor.round_failed", endpoint=server.endpoint, error=str(exc))
            await pool.evict(server)
            readings = [MonitorReading(name="Connection", command="", error=str(exc))]
        render(done, readings)
    return done
