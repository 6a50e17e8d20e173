"""Console output helpers shared by every command."""

from __future__ import annotations

from datetime import datetime, timezone

from rich.console import Console
from rich.markup import escape

from plan10.models.responses import CheckLevel, DiagnosticCheck

console = Console(highlight=False)
err_console = Console(stderr=True, highlight=False)


def print_header(title: str) -> None:
    console.print()
    console.rule(f"[bold blue]{title}[/bold blue]")


def print_success(message: str) -> None:
    console.print(f"[green]✅ {escape(message)}[/green]")


def print_info(message: str) -> None:
    console.print(f"[blue]ℹ️  {escape(message)}[/blue]")


def print_warning(message: str) -> None:
    console.print(f"[yellow]⚠️  {escape(message)}[/yellow]")


def print_error(message: str) -> None:
    err_console.print(f"[red]❌ {escape(message)}[/red]")


def print_verbose(message: str, verbose: bool) -> None:
    if verbose:
        console.print(f"[dim]{escape(message)}[/dim]")


def format_last_seen(when: datetime | None, now: datetime | None = None) -> str:
    if when is None:
        return "[dim]Never[/dim]"
    now = now or datetime.now(timezone.utc)
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    stamp = when.strftime("%Y-%m-%d %H:%M UTC")
    age = now - when
    if age.total_seconds() < 3600:
        return f"{stamp} ([green]Recently[/green])"
    if age.days < 1:
        return f"{stamp} ([yellow]Today[/yellow])"
    return f"{stamp} ([red]{age.days} days ago[/red])"


def print_check(check: DiagnosticCheck) -> None:
    """Print one report line at its level; raw output is indented under a bold label."""
    if check.output:
        console.print(f"[bold]{check.name}:[/bold]")
        for line in check.output.rstrip().splitlines():
            console.print(f"  {line}", markup=False)
        return
    text = check.message or check.name
    if check.level is CheckLevel.ok:
        print_success(text)
    elif check.level is CheckLevel.warning:
        print_warning(text)
    elif check.level is CheckLevel.error:
        print_error(text)
    else:
        print_info(text)
