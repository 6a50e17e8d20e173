"""``plan10 client ...``: deploy to, manage and inspect remote targets."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List, Optional

import typer
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from plan10.commands.context import CliContext, get_context, reported_errors
from plan10.models.config import ServerDefinition
from plan10.models.deploy import DeployMode, EntryOutcome, OutcomeStatus
from plan10.models.responses import DiagnosticsMode, ManageAction
from plan10.services import deploy_planner
from plan10.services.deploy_executor import DeploymentExecutor, verify_deployment
from plan10.services.diagnostics import mode_from_flags, run_diagnostics
from plan10.services.manage import manage as run_manage
from plan10.services.registry import build_server
from plan10.services.session_pool import SessionPool
from plan10.services.ssh_session import check_connectivity
from plan10.utils.output import (
    console,
    format_last_seen,
    print_check,
    print_error,
    print_header,
    print_info,
    print_success,
    print_verbose,
    print_warning,
)

app = typer.Typer(help="Deploy to and manage remote Plan 10 servers.", no_args_is_help=True)


# ── deploy ────────────────────────────────────────────────────────────────


@app.command()
def deploy(
    ctx: typer.Context,
    host: str = typer.Option(..., "--host", "-H", help="Server name or hostname."),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="SSH user for an unconfigured host."),
    port: int = typer.Option(
        22, "--port", "-p", min=1, max=65535, help="SSH port for an unconfigured host.",
    ),
    all_: bool = typer.Option(False, "--all", "-a", help="Deploy everything (default)."),
    scripts_only: bool = typer.Option(False, "--scripts-only", help="Deploy only the scripts."),
    config_only: bool = typer.Option(False, "--config-only", help="Deploy only configuration files."),
    source: Path = typer.Option(
        Path("."), "--source", "-s", help="Directory holding server_setup.sh, scripts/ and docs/.",
    ),
):
    """Copy the Plan 10 assets to a server."""
    cli = get_context(ctx)
    with reported_errors():
        mode = DeployMode.from_flags(all_, scripts_only, config_only)
        server = cli.target_for(host, user, port)
        asyncio.run(_deploy(cli, server, mode, source))


async def _deploy(cli: CliContext, server: ServerDefinition, mode: DeployMode, source: Path) -> None:
    print_header(f"Deploying Plan 10 to {server.host}")
    items = deploy_planner.plan(mode)
    if not items:
        print_warning("No deployment items specified. Use --all, --scripts-only, or --config-only")
        return

    async with SessionPool(cli.config) as pool:
        session = await cli.connect(pool, server)

        with Progress(
            SpinnerColumn(),
            TextColumn("{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            console=console,
        ) as progress:
            task = progress.add_task("Deploying", total=deploy_planner.entry_count(items))

            def on_progress(cursor: int, total: int, outcome: EntryOutcome) -> None:
                progress.update(task, completed=cursor, description=outcome.remote)
                if outcome.status is OutcomeStatus.skipped:
                    progress.console.print(f"[yellow]⚠️  {outcome.message}[/yellow]")
                elif cli.verbose and outcome.status is OutcomeStatus.deployed:
                    progress.console.print(f"[dim]Deployed: {outcome.local}[/dim]")

            executor = DeploymentExecutor(source, on_progress)
            report = await executor.execute(items, session)

    print_success("Plan 10 deployed successfully!")
    print_info(f"{report.deployed} deployed, {report.skipped} skipped of {report.total}")
    print_info("Next steps:")
    console.print(f"  1. SSH to your server: ssh {server.user}@{server.host}")
    console.print("  2. Run server setup: sudo ./server_setup.sh")
    console.print(f"  3. Verify deployment: plan10 client verify --host {server.host}")


@app.command()
def verify(
    ctx: typer.Context,
    host: str = typer.Option(..., "--host", "-H", help="Server name or hostname."),
):
    """Check that the deployed files are present and runnable."""
    cli = get_context(ctx)
    with reported_errors():
        server = cli.resolve_target(host)
        ok = asyncio.run(_verify(cli, server))
    if not ok:
        raise typer.Exit(1)


async def _verify(cli: CliContext, server: ServerDefinition) -> bool:
    print_header("Verifying Deployment")
    async with SessionPool(cli.config) as pool:
        session = await cli.connect(pool, server)
        report = await verify_deployment(session)

    for check in report.files:
        if check.present:
            print_success(f"{check.path} exists")
        else:
            print_error(f"{check.path} missing")
    if report.scripts_executable:
        print_success("Scripts are executable")
    else:
        print_warning("Scripts may not be properly configured")
    return report.ok


# ── manage / diagnose ─────────────────────────────────────────────────────


@app.command()
def manage(
    ctx: typer.Context,
    action: ManageAction = typer.Argument(..., help="What to do with the Plan 10 services."),
    host: str = typer.Option(..., "--host", "-H", help="Server name or hostname."),
    source: Path = typer.Option(
        Path("."), "--source", "-s", help="Asset directory used by 'update'.",
    ),
):
    """Start, stop, restart, update, configure or query the services."""
    cli = get_context(ctx)
    with reported_errors():
        server = cli.resolve_target(host)
        success = asyncio.run(_manage(cli, server, action, source))
    if not success:
        raise typer.Exit(1)


async def _manage(cli: CliContext, server: ServerDefinition, action: ManageAction, source: Path) -> bool:
    print_header(f"Managing Server: {server.name}")
    async with SessionPool(cli.config) as pool:
        session = await cli.connect(pool, server)
        result = await run_manage(action, session, source_root=source)

    for check in result.checks:
        print_check(check)
    if result.output.strip():
        print_verbose(result.output.strip(), cli.verbose)
    if result.error:
        print_error(result.error)
    elif action is not ManageAction.status:
        print_success(f"{action.value.capitalize()} completed on {server.name}")
    return result.success


@app.command()
def diagnose(
    ctx: typer.Context,
    host: str = typer.Option(..., "--host", "-H", help="Server name or hostname."),
    battery: bool = typer.Option(False, "--battery", help="Run the battery diagnostics script."),
    power: bool = typer.Option(False, "--power", help="Run the power diagnostics script."),
    fixes: bool = typer.Option(False, "--fix", help="Comprehensive diagnostics and file checks."),
):
    """Run diagnostics against a deployed server."""
    cli = get_context(ctx)
    with reported_errors():
        server = cli.resolve_target(host)
        mode = mode_from_flags(battery, power, fixes)
        ok = asyncio.run(_diagnose(cli, server, mode))
    if not ok:
        raise typer.Exit(1)


async def _diagnose(cli: CliContext, server: ServerDefinition, mode: DiagnosticsMode) -> bool:
    print_header(f"Diagnosing Server: {server.name}")
    async with SessionPool(cli.config) as pool:
        session = await pool.get_or_connect(server)
        report = await run_diagnostics(session, mode)
    if report.connected:
        cli.mark_seen(server)

    for check in report.checks:
        print_check(check)
    if report.files:
        table = Table(title="Deployment Files")
        table.add_column("File", style="cyan")
        table.add_column("Path")
        table.add_column("Present")
        for f in report.files:
            table.add_row(f.label, f.path, "[green]yes[/green]" if f.present else "[red]no[/red]")
        console.print(table)
    if report.error:
        print_error(report.error)
        return False
    print_success("Diagnostics completed")
    return True


# ── server registry ───────────────────────────────────────────────────────


@app.command("list")
def list_servers(
    ctx: typer.Context,
    detailed: bool = typer.Option(False, "--detailed", "-d", help="Show every field per server."),
):
    """List configured servers."""
    cli = get_context(ctx)
    print_header("Configured Servers")
    servers = cli.registry.list_servers()
    if not servers:
        print_info("No servers configured")
        console.print("Use 'plan10 client add <name> --host <host> --user <user>' to add a server")
        return

    default = cli.config.client.default_server
    if detailed:
        for server in servers:
            _print_server_detailed(cli, server, is_default=server.name == default)
        return

    table = Table()
    table.add_column("Name", style="cyan")
    table.add_column("Host")
    table.add_column("User")
    table.add_column("Port", justify="right")
    table.add_column("Status")
    for server in servers:
        name = f"{server.name} *" if server.name == default else server.name
        status = "[green]enabled[/green]" if server.enabled else "[red]disabled[/red]"
        table.add_row(name, server.host, server.user, str(server.port), status)
    console.print(table)
    console.print("Use --detailed flag for more information")


def _print_server_detailed(cli: CliContext, server: ServerDefinition, *, is_default: bool) -> None:
    icon = "🟢" if server.enabled else "🔴"
    suffix = " (default)" if is_default else ""
    console.print(f"{icon} [bold]{server.name}[/bold]{suffix}")
    console.print(f"  Host: {server.host}")
    console.print(f"  User: {server.user}")
    console.print(f"  Port: {server.port}")
    console.print(f"  Status: {'[green]Enabled[/green]' if server.enabled else '[red]Disabled[/red]'}")
    if server.tags:
        console.print(f"  Tags: [dim]{', '.join(server.tags)}[/dim]")
    if server.ssh_key:
        console.print(f"  SSH Key: [dim]{server.ssh_key}[/dim]")
    console.print(f"  Last seen: {format_last_seen(server.last_seen)}")
    if cli.verbose:
        reachable = asyncio.run(check_connectivity(server, cli.config))
        console.print(f"  Connectivity: {'[green]✅ Connected[/green]' if reachable else '[red]❌ Failed[/red]'}")
        if reachable:
            cli.mark_seen(server)
    console.print()


@app.command()
def add(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name to register the server under."),
    host: str = typer.Option(..., "--host", "-H", help="Hostname or IP address."),
    user: str = typer.Option(..., "--user", "-u", help="SSH user."),
    port: int = typer.Option(22, "--port", "-p", min=1, max=65535, help="SSH port."),
    key: Optional[str] = typer.Option(None, "--key", "-k", help="Private key for this server."),
    tags: Optional[List[str]] = typer.Option(None, "--tag", "-t", help="Tag (repeatable)."),
):
    """Register a server in the config file."""
    cli = get_context(ctx)
    print_header(f"Adding Server: {name}")
    with reported_errors():
        server = build_server(
            name=name, host=host, user=user, port=port, ssh_key=key, tags=tags or ["manual"],
        )
        cli.stored_registry.add(server)

        if cli.verbose:
            print_info("Testing connectivity...")
            if asyncio.run(check_connectivity(server, cli.config)):
                print_success("Connection test successful")
                cli.stored_registry.update_last_seen(name)
            else:
                print_warning("Connection test failed - server added anyway")
        cli.save()

    print_success(f"Server '{name}' added successfully")
    console.print("Connection details:")
    console.print(f"  Host: {host}")
    console.print(f"  User: {user}")
    console.print(f"  Port: {port}")
    console.print()
    console.print("Next steps:")
    console.print("  1. Test connection: plan10 -v client list --detailed")
    console.print(f"  2. Deploy Plan 10: plan10 client deploy --host {name}")


@app.command()
def remove(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Registered server name."),
):
    """Remove a server from the config file."""
    cli = get_context(ctx)
    print_header(f"Removing Server: {name}")
    with reported_errors():
        was_default = cli.stored.client.default_server == name
        removed = cli.stored_registry.remove(name)
        cli.save()

    print_verbose(f"Removed {removed.endpoint}", cli.verbose)
    print_success(f"Server '{name}' removed successfully")
    if was_default:
        print_warning("This was your default server. You may want to set a new default.")


@app.command("default")
def set_default(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(None, help="Server to use when --host is omitted."),
    clear: bool = typer.Option(False, "--clear", help="Unset the default server."),
):
    """Show or set the default server."""
    cli = get_context(ctx)
    if name is None and not clear:
        current = cli.config.client.default_server
        if current is None:
            print_info("No default server set")
        else:
            print_info(f"Default server: {current}")
        return

    with reported_errors():
        cli.stored_registry.set_default(None if clear else name)
        cli.save()
    if clear:
        print_success("Default server cleared")
    else:
        print_success(f"Default server set to '{name}'")
