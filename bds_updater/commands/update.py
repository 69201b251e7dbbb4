"""Update, check and version switch commands."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import click
import httpx
import structlog
from rich.console import Console
from rich.table import Table

from bds_updater.core.config import AppConfig
from bds_updater.core.errors import UpdaterError
from bds_updater.core.types import Channel, SwitchReason, SwitchResult, VersionList, VersionSelection
from bds_updater.core.updater import ServerUpdater

logger = structlog.get_logger()

T = TypeVar("T")

RECENT_VERSIONS = 8


def _get_context_objects(ctx: click.Context) -> tuple[AppConfig, Console, Path, bool]:
    """Extract common context objects."""
    config: AppConfig = ctx.obj["config"]
    console: Console = ctx.obj["console"]
    cwd: Path = ctx.obj["cwd"]
    debug: bool = ctx.obj["debug"]
    return config, console, cwd, debug


def _ask_license(console: Console) -> Callable[[], bool]:
    def ask() -> bool:
        console.print()
        console.print("[yellow]Minecraft End User License Agreement[/yellow]")
        console.print("By using the Bedrock Dedicated Server, you agree to the EULA and Privacy Statement:")
        console.print("[underline]https://minecraft.net/eula[/underline]")
        console.print("[underline]https://go.microsoft.com/fwlink/?LinkId=521839[/underline]")
        console.print()
        return click.confirm("Do you agree to the EULA and Privacy Statement?", default=False)

    return ask


def _make_updater(ctx: click.Context) -> ServerUpdater:
    config, console, cwd, _ = _get_context_objects(ctx)
    console.print(f"[dim]- Working directory: {cwd}[/dim]")
    return ServerUpdater(cwd, config=config, console=console, license_prompt=_ask_license(console))


def _run(ctx: click.Context, action: Callable[[], T]) -> T:
    """Run an action, turning updater failures into a short message."""
    _, console, _, debug = _get_context_objects(ctx)
    try:
        return action()
    except (UpdaterError, httpx.HTTPError, ValueError) as e:
        console.print()
        console.print(f"[red]Error: {e}[/red]")
        if debug:
            console.print_exception()
        logger.debug("command_failed", error=str(e), error_type=type(e).__name__)
        ctx.exit(1)


def _report(console: Console, result: SwitchResult) -> None:
    preview = " [yellow](preview)[/yellow]" if result.is_preview else ""
    console.print()
    console.print(
        f"[green]Successfully {result.reason.value}: [dim]{result.old_version}[/dim] -> "
        f"[bold]{result.new_version}[/bold][/green]{preview}"
    )


def _ask_version(console: Console, version_list: VersionList) -> VersionSelection:
    console.print()
    console.print("[cyan]Version Selection[/cyan]")
    options = {
        "1": ("stable", f"Latest stable  ({version_list.stable})"),
        "2": ("preview", f"Latest preview ({version_list.preview})"),
        "3": ("stable-select", "Select stable version"),
        "4": ("preview-select", "Select preview version"),
    }
    for key, (_, label) in options.items():
        console.print(f"  {key}) {label}")
    choice = click.prompt("Choose installation option", type=click.Choice(list(options)), default="1")
    selected = options[choice][0]

    channel = Channel.PREVIEW if selected.startswith("preview") else Channel.STABLE
    if not selected.endswith("-select"):
        return VersionSelection(version=version_list.latest(channel), is_preview=channel == Channel.PREVIEW)

    versions = version_list.for_channel(channel)
    recent = list(reversed(versions))[:RECENT_VERSIONS]
    console.print("Recent versions: " + ", ".join(recent))
    version = click.prompt(
        "Enter a version",
        type=click.Choice(versions),
        show_choices=False,
        default=recent[0] if recent else None,
    )
    return VersionSelection(version=version, is_preview=channel == Channel.PREVIEW)


@click.command()
@click.pass_context
def update(ctx: click.Context) -> None:
    """Check for updates and install or switch versions interactively."""
    _, console, _, _ = _get_context_objects(ctx)

    def flow() -> None:
        with _make_updater(ctx) as updater:
            updater.cache.load()
            with console.status("Checking for updates..."):
                available, latest = updater.check_update()

            if available:
                console.print(f"[blue]New version available: [bold]{latest}[/bold][/blue]")
                choices = {"update": "Update to latest version", "switch": "Switch to different version"}
            else:
                console.print(
                    f"[green]Server is up to date![/green] [dim]({updater.cache.get_version()})[/dim]"
                )
                choices = {"switch": "Switch to different version"}
            choices["nothing"] = "Do nothing"

            console.print()
            for key, label in choices.items():
                console.print(f"  {key}: {label}")
            action = click.prompt("What would you like to do?", type=click.Choice(list(choices)), default="nothing")

            if action == "nothing":
                console.print("[blue]No changes made.[/blue]")
                return

            if action == "update":
                selection = VersionSelection(version=latest)
                reason = SwitchReason.UPDATE
            else:
                assert updater.version_list is not None
                selection = _ask_version(console, updater.version_list)
                reason = SwitchReason.SWITCH
                console.print(f"[blue]Selected: {selection.display()}[/blue]")

            console.print()
            console.print(f"[blue]Installing {selection.display()}...[/blue]")
            _report(console, updater.switch_version(selection, reason))

    _run(ctx, flow)
    console.print()
    console.print("[green]All done![/green]")


@click.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """Show installed and latest available versions."""
    _, console, _, _ = _get_context_objects(ctx)

    def flow() -> tuple[bool, str, str, VersionList]:
        with _make_updater(ctx) as updater:
            available, latest = updater.check_update()
            assert updater.version_list is not None
            return available, latest, updater.cache.get_version(), updater.version_list

    available, latest, installed, version_list = _run(ctx, flow)

    table = Table(title="Server Versions")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("Installed", installed)
    table.add_row("Latest stable", latest)
    table.add_row("Latest preview", version_list.preview)
    table.add_row("Update available", "yes" if available else "no")
    console.print(table)


@click.command()
@click.argument("version", required=False)
@click.option("--preview", is_flag=True, help="Use the preview channel")
@click.option("--accept-license", is_flag=True, help="Accept the EULA without prompting")
@click.pass_context
def switch(ctx: click.Context, version: str | None, preview: bool, accept_license: bool) -> None:
    """Install VERSION (latest of the channel if omitted)."""
    _, console, _, _ = _get_context_objects(ctx)
    channel = Channel.PREVIEW if preview else Channel.STABLE

    def flow() -> SwitchResult:
        with _make_updater(ctx) as updater:
            selection = updater.resolve_selection(channel, version)
            console.print(f"[blue]Installing {selection.display()}...[/blue]")
            return updater.switch_version(
                selection,
                SwitchReason.SWITCH,
                license_accepted=True if accept_license else None,
            )

    _report(console, _run(ctx, flow))


@click.command("clear-cache")
@click.pass_context
def clear_cache(ctx: click.Context) -> None:
    """Remove the staged archive."""
    config, console, cwd, _ = _get_context_objects(ctx)

    def flow() -> None:
        with ServerUpdater(cwd, config=config, console=console) as updater:
            updater.cache.clear_cache()

    _run(ctx, flow)
    console.print("[green]Staging cache cleared[/green]")
