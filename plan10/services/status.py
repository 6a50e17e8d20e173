"""Remote status snapshot: system info, power source, caffeinate, disk."""

from __future__ import annotations

from plan10.models.responses import RemoteStatus
from plan10.services.ssh_session import RemoteSession
from plan10.utils.logging import get_logger
from plan10.utils.remote_parser import parse_df_line, parse_pids, parse_power_source

log = get_logger(__name__)

CAFFEINATE_PGREP = "pgrep -x caffeinate"
POWER_SOURCE_CMD = "pmset -g batt | head -1"


async def collect_status(session: RemoteSession, *, detailed: bool = True) -> RemoteStatus:
    status = RemoteStatus(endpoint=session.endpoint)

    caffeinate = await session.execute(CAFFEINATE_PGREP)
    if caffeinate.success:
        status.caffeinate_pids = parse_pids(caffeinate.stdout)

    power = await session.execute(POWER_SOURCE_CMD)
    if power.success:
        status.power_source = parse_power_source(power.stdout)

    if detailed:
        status.system = await session.get_system_info()
        disk = parse_df_line(status.system.disk_usage)
        status.disk_used_percent = disk.get("capacity_percent")

    log.info(
        "status.collected",
        endpoint=session.endpoint,
        power=status.power_source,
        caffeinate=status.caffeinate_running,
    )
    return status
