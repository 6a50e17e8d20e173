"""``plan10 monitor ...``: run the deployed monitoring scripts on a server."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

import typer

from plan10.commands.context import CliContext, get_context, reported_errors
from plan10.models.config import ServerDefinition
from plan10.models.responses import MonitorReading, WatchTarget
from plan10.services import monitor as monitor_service
from plan10.services.session_pool import SessionPool
from plan10.services.ssh_session import RemoteSession
from plan10.utils.output import console, print_error, print_header, print_info

app = typer.Typer(help="Monitor temperature, battery and power on a server.", no_args_is_help=True)

HOST_HELP = "Server name or hostname; defaults to the default server."


def _read_once(
    cli: CliContext,
    host: Optional[str],
    title: str,
    read: Callable[[RemoteSession], Awaitable[MonitorReading]],
) -> None:
    with reported_errors():
        server = cli.resolve_target(host)
        reading = asyncio.run(_connect_and_read(cli, server, read))
    print_header(f"{title} - {server.name}")
    print_reading(reading)
    if not reading.ok:
        raise typer.Exit(1)


async def _connect_and_read(
    cli: CliContext,
    server: ServerDefinition,
    read: Callable[[RemoteSession], Awaitable[MonitorReading]],
) -> MonitorReading:
    async with SessionPool(cli.config) as pool:
        session = await cli.connect(pool, server)
        return await read(session)


def print_reading(reading: MonitorReading) -> None:
    console.print(f"[bold]{reading.name}:[/bold]")
    if reading.system is not None:
        info = reading.system
        console.print(f"  Hostname: {info.hostname}", markup=False)
        console.print(f"  System: {info.uname}", markup=False)
        console.print(f"  Uptime: {info.uptime}", markup=False)
        console.print(f"  User: {info.current_user}", markup=False)
        console.print("  Storage:")
        for line in info.disk_usage.splitlines():
            console.print(f"    {line}", markup=False)
    if reading.output.strip():
        console.print(reading.output.rstrip(), markup=False)
    if reading.power_source is not None:
        console.print(f"  Power source: {reading.power_source}", markup=False)
    if reading.battery_percent is not None:
        state = f" ({reading.battery_state})" if reading.battery_state else ""
        console.print(f"  Charge: {reading.battery_percent}%{state}", markup=False)
    if reading.error:
        print_error(reading.error)


# ── single readings ───────────────────────────────────────────────────────


@app.command()
def temp(
    ctx: typer.Context,
    raw: bool = typer.Option(False, "--raw", "-r", help="Show raw temperature data."),
    host: Optional[str] = typer.Option(None, "--host", "-H", help=HOST_HELP),
):
    """Show temperature status."""
    cli = get_context(ctx)
    _read_once(
        cli, host, "Temperature Status",
        lambda session: monitor_service.read_temperature(session, raw=raw),
    )


@app.command()
def battery(
    ctx: typer.Context,
    detailed: bool = typer.Option(False, "--detailed", "-d", help="Show detailed battery health."),
    raw: bool = typer.Option(False, "--raw", "-r", help="Show raw battery data."),
    host: Optional[str] = typer.Option(None, "--host", "-H", help=HOST_HELP),
):
    """Show battery status."""
    cli = get_context(ctx)
    _read_once(
        cli, host, "Battery Status",
        lambda session: monitor_service.read_battery(session, detailed=detailed, raw=raw),
    )


@app.command()
def power(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Verbose script output."),
    battery_issues: bool = typer.Option(False, "--battery", "-b", help="Focus on battery issues."),
    sleep: bool = typer.Option(False, "--sleep", "-s", help="Focus on sleep/wake issues."),
    all_: bool = typer.Option(False, "--all", "-a", help="Show all diagnostics."),
    fixes: bool = typer.Option(False, "--fixes", "-f", help="Show recommended fixes."),
    host: Optional[str] = typer.Option(None, "--host", "-H", help=HOST_HELP),
):
    """Run the power diagnostics script."""
    cli = get_context(ctx)
    _read_once(
        cli, host, "Power Diagnostics",
        lambda session: monitor_service.read_power(
            session, verbose=verbose, battery=battery_issues, sleep=sleep, all_=all_, fixes=fixes,
        ),
    )


@app.command()
def system(
    ctx: typer.Context,
    host: Optional[str] = typer.Option(None, "--host", "-H", help=HOST_HELP),
):
    """Show a system overview."""
    cli = get_context(ctx)
    _read_once(cli, host, "System Overview", monitor_service.read_system)


# ── watch ─────────────────────────────────────────────────────────────────


@app.command()
def watch(
    ctx: typer.Context,
    target: WatchTarget = typer.Argument(WatchTarget.all, help="What to monitor."),
    interval: int = typer.Option(5, "--interval", "-i", min=1, help="Seconds between updates."),
    count: Optional[int] = typer.Option(
        None, "--count", "-n", min=1, help="Stop after this many updates.",
    ),
    host: Optional[str] = typer.Option(None, "--host", "-H", help=HOST_HELP),
):
    """Refresh readings every --interval seconds until Ctrl+C."""
    cli = get_context(ctx)
    with reported_errors():
        server = cli.resolve_target(host)
        print_info(f"Starting continuous monitoring ({interval}s interval)")
        print_info("Press Ctrl+C to stop")
        try:
            asyncio.run(_watch(cli, server, target, interval, count))
        except KeyboardInterrupt:
            print_info("Monitoring stopped")


async def _watch(
    cli: CliContext,
    server: ServerDefinition,
    target: WatchTarget,
    interval: int,
    count: Optional[int],
) -> None:
    def render(round_no: int, readings: list[MonitorReading]) -> None:
        console.clear()
        now = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
        console.rule(f"Monitor Update #{round_no} - {server.name} - {now}")
        for reading in readings:
            print_reading(reading)
            console.print()
        if count is None or round_no < count:
            console.print(f"[dim]Next update in {interval}s...[/dim]")

    async with SessionPool(cli.config) as pool:
        await cli.connect(pool, server)
        await monitor_service.watch(pool, server, target, interval, render, rounds=count)
