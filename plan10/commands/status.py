"""``plan10 status``: quick remote health snapshot."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Optional

import typer

from plan10.commands.context import CliContext, get_context, reported_errors
from plan10.models.config import ServerDefinition
from plan10.models.responses import RemoteStatus
from plan10.services.session_pool import SessionPool
from plan10.services.status import collect_status
from plan10.utils.output import console, print_header, print_success, print_warning


def status(
    ctx: typer.Context,
    host: Optional[str] = typer.Option(
        None, "--host", "-H", help="Server name or hostname; defaults to the default server.",
    ),
    detailed: bool = typer.Option(False, "--detailed", "-d", help="Include system information."),
):
    """Quick status check of a Plan 10 server."""
    cli = get_context(ctx)
    with reported_errors():
        server = cli.resolve_target(host)
        snapshot = asyncio.run(_collect(cli, server, detailed))
    _render(server, snapshot)


async def _collect(cli: CliContext, server: ServerDefinition, detailed: bool) -> RemoteStatus:
    async with SessionPool(cli.config) as pool:
        session = await cli.connect(pool, server)
        return await collect_status(session, detailed=detailed)


def _render(server: ServerDefinition, snapshot: RemoteStatus) -> None:
    now = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
    print_header(f"Plan 10 Status - {server.name} - {now}")

    console.print("[bold]Power Status:[/bold]")
    console.print(f"  Source: {snapshot.power_source}")

    console.print("\n[bold]Services:[/bold]")
    if snapshot.caffeinate_running:
        pids = ", ".join(str(p) for p in snapshot.caffeinate_pids)
        print_success(f"Caffeinate: running (PID: {pids})")
    else:
        print_warning("Caffeinate: not running")

    if snapshot.system is not None:
        info = snapshot.system
        console.print("\n[bold]System Information:[/bold]")
        console.print(f"  Hostname: {info.hostname}")
        console.print(f"  User: {info.current_user}")
        console.print(f"  Uptime: {info.uptime}", markup=False)
        console.print(f"  Kernel: {info.uname}", markup=False)
        if snapshot.disk_used_percent is not None:
            console.print(f"  Disk used: {snapshot.disk_used_percent}%")
