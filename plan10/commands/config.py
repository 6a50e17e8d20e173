"""``plan10 config ...``: inspect and validate the config file."""

from __future__ import annotations

from typing import Optional

import typer

from plan10.commands.context import CliContext, get_context, reported_errors
from plan10.models.config import ServerDefinition
from plan10.utils.output import console, format_last_seen, print_header, print_success

app = typer.Typer(help="Inspect the Plan 10 configuration.", no_args_is_help=True)


@app.command()
def show(
    ctx: typer.Context,
    server: Optional[str] = typer.Option(None, "--server", "-s", help="Show one server only."),
):
    """Print the effective configuration."""
    cli = get_context(ctx)
    if server is not None:
        with reported_errors():
            definition = cli.resolve_target(server)
        print_header(f"Server Configuration: {definition.name}")
        _print_server(definition, cli.verbose)
        return
    _show_full(cli)


def _show_full(cli: CliContext) -> None:
    cfg = cli.config
    print_header("Plan 10 Configuration")

    console.print("[bold]Configuration File:[/bold]")
    console.print(f"  Location: {cli.config_path}", markup=False)

    console.print("\n[bold]Client Settings:[/bold]")
    console.print(f"  Default server: {cfg.client.default_server or 'None'}")
    console.print(f"  Deployment timeout: {cfg.client.deployment_timeout}s")
    console.print(f"  Concurrent operations: {cfg.client.concurrent_operations}")
    console.print(f"  Auto backup: {cfg.client.auto_backup}")

    console.print("\n[bold]Server Settings:[/bold]")
    console.print(f"  Name: {cfg.server.name}")
    console.print(f"  Monitoring interval: {cfg.server.monitoring_interval}s")
    console.print(f"  Temperature threshold: {cfg.server.temp_threshold:.1f}°C")
    console.print(f"  Battery warning level: {cfg.server.battery_warning_level}%")
    console.print(f"  Auto restart services: {cfg.server.auto_restart_services}")
    console.print(f"  Log level: {cfg.server.log_level}")

    console.print("\n[bold]SSH Settings:[/bold]")
    console.print(f"  Connect timeout: {cfg.ssh.connect_timeout}s")
    console.print(f"  Command timeout: {cfg.ssh.command_timeout}s")
    console.print(f"  Key path: {cfg.ssh.key_path or 'Default'}")
    console.print(f"  Known hosts: {cfg.ssh.known_hosts_file or 'Default'}")
    console.print(f"  Compression: {cfg.ssh.compression}")
    console.print(f"  Keep alive: {cfg.ssh.keep_alive}")

    console.print("\n[bold]Configured Servers:[/bold]")
    servers = cli.registry.list_servers()
    if not servers:
        console.print("  No servers configured")
    for definition in servers:
        icon = "🟢" if definition.enabled else "🔴"
        console.print(f"  {icon} {definition.name} ({definition.user}@{definition.host}:{definition.port})")
        if cli.verbose:
            console.print(f"    Tags: {', '.join(definition.tags)}")
            console.print(f"    Last seen: {format_last_seen(definition.last_seen)}")


def _print_server(definition: ServerDefinition, verbose: bool) -> None:
    console.print(f"  Host: {definition.host}")
    console.print(f"  User: {definition.user}")
    console.print(f"  Port: {definition.port}")
    console.print(f"  Enabled: {definition.enabled}")
    console.print(f"  Tags: {', '.join(definition.tags) or '-'}")
    console.print(f"  SSH key: {definition.ssh_key or 'Default'}")
    console.print(f"  Last seen: {format_last_seen(definition.last_seen)}")
    if verbose:
        console.print(f"  Pool key: {definition.endpoint}")


@app.command()
def validate(ctx: typer.Context):
    """Check the config for consistency; exits 1 on the first problem."""
    cli = get_context(ctx)
    with reported_errors():
        cli.registry.validate()
    print_success(f"Configuration is valid ({len(cli.registry)} servers)")


@app.command()
def path(ctx: typer.Context):
    """Print the config file location."""
    typer.echo(str(get_context(ctx).config_path))
