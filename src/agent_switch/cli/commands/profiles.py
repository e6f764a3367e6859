"""Profile management commands: backup, activate, ls, active, delete, next."""

import asyncio
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Annotated

import typer
from rich import box
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError
from structlog import get_logger

from agent_switch.cli.helpers import (
    console,
    fail,
    get_cli_settings,
    get_health,
    get_vault,
    open_database,
    resolve_file_set,
)
from agent_switch.config.settings import Settings
from agent_switch.config.vault import AutoBackupMode
from agent_switch.db.models import ActivityType
from agent_switch.db.repositories import ActivityRepository, CooldownRepository
from agent_switch.exceptions import AgentSwitchError, ProfileNotFoundError
from agent_switch.health.models import HealthStatus
from agent_switch.rotation.formatting import format_result
from agent_switch.rotation.models import Algorithm
from agent_switch.rotation.selector import RotationSelector
from agent_switch.vault.authfiles import KNOWN_TOOLS
from agent_switch.vault.models import AuthFileSet
from agent_switch.vault.vault import Vault, has_auth_files


logger = get_logger(__name__)

_STATUS_STYLES = {
    HealthStatus.HEALTHY: "green",
    HealthStatus.WARNING: "yellow",
    HealthStatus.CRITICAL: "red",
    HealthStatus.UNKNOWN: "dim",
}


@dataclass
class Activation:
    """What ``activate`` did besides restoring the profile."""

    profile: str
    previous: str = ""
    original_saved: bool = False
    auto_backup: str = ""
    rotated: list[str] = field(default_factory=list)


def activate_profile(
    vault: Vault,
    file_set: AuthFileSet,
    profile: str,
    *,
    mode: AutoBackupMode = AutoBackupMode.SMART,
    max_auto_backups: int = 0,
) -> Activation:
    """Make ``profile`` the live login for its tool.

    The pre-agent-switch login is saved once as ``_original``. Depending on
    ``mode`` the live login is snapshotted as ``_backup_*`` first.

    Raises:
        AgentSwitchError: The profile could not be restored
    """
    # Validate and check existence before touching anything
    if not vault.profile_path(file_set.tool, profile).is_dir():
        raise ProfileNotFoundError(file_set.tool, profile)
    previous = vault.active_profile(file_set)
    original_saved = vault.backup_original(file_set)
    result = Activation(profile=profile, previous=previous, original_saved=original_saved)

    if mode == AutoBackupMode.ALWAYS:
        should_backup = previous != profile and has_auth_files(file_set)
    elif mode == AutoBackupMode.SMART:
        should_backup = not previous and not original_saved and has_auth_files(file_set)
    else:
        should_backup = False

    if should_backup:
        try:
            result.auto_backup = vault.backup_current(file_set)
        except AgentSwitchError as e:
            logger.warning("auto_backup_failed", tool=file_set.tool, error=str(e))
        if result.auto_backup and max_auto_backups > 0:
            result.rotated = vault.rotate_auto_backups(file_set.tool, max_auto_backups)

    vault.restore(file_set, profile)
    return result


async def record_activity(
    settings: Settings,
    event_type: ActivityType,
    tool: str,
    profile: str,
    details: str | None = None,
) -> None:
    """Append to the activity log; failures are logged and ignored."""
    async with open_database(settings) as available:
        if not available:
            return
        try:
            await ActivityRepository().log_event(event_type, tool, profile, details)
        except SQLAlchemyError as e:
            logger.warning("activity_log_failed", tool=tool, error=str(e))


def backup(
    ctx: typer.Context,
    tool: Annotated[str, typer.Argument(help="Tool id (claude, codex, gemini)")],
    profile: Annotated[str, typer.Argument(help="Profile name to save as")],
) -> None:
    """Save the tool's current login as a named profile."""
    settings = get_cli_settings(ctx)
    file_set = resolve_file_set(tool)
    vault = get_vault(settings)

    try:
        vault.backup(file_set, profile)
    except AgentSwitchError as e:
        fail(str(e), e)

    asyncio.run(record_activity(settings, ActivityType.BACKUP, tool, profile))
    console.print(f"[green]Saved {tool} login as[/green] [bold]{profile}[/bold]")


def activate(
    ctx: typer.Context,
    tool: Annotated[str, typer.Argument(help="Tool id (claude, codex, gemini)")],
    profile: Annotated[str, typer.Argument(help="Profile to switch to")],
    backup_current: Annotated[
        bool,
        typer.Option(
            "--backup-current",
            help="Snapshot the current login first, regardless of configuration",
        ),
    ] = False,
) -> None:
    """Switch the tool's live login to a saved profile."""
    settings = get_cli_settings(ctx)
    file_set = resolve_file_set(tool)
    vault = get_vault(settings)
    mode = (
        AutoBackupMode.ALWAYS
        if backup_current
        else settings.vault.auto_backup_before_switch
    )

    try:
        result = activate_profile(
            vault,
            file_set,
            profile,
            mode=mode,
            max_auto_backups=settings.vault.max_auto_backups,
        )
    except AgentSwitchError as e:
        fail(str(e), e)

    asyncio.run(
        record_activity(
            settings,
            ActivityType.ACTIVATE,
            tool,
            profile,
            f"from {result.previous}" if result.previous else None,
        )
    )

    if result.original_saved:
        console.print("[dim]Saved the original login as _original[/dim]")
    if result.auto_backup:
        console.print(f"[dim]Auto-backed up current state to {result.auto_backup}[/dim]")
    console.print(f"[green]Activated {tool}/[bold]{profile}[/bold][/green]")


def list_profiles(
    ctx: typer.Context,
    tool: Annotated[
        str | None, typer.Argument(help="Only list profiles for this tool")
    ] = None,
) -> None:
    """List vaulted profiles."""
    settings = get_cli_settings(ctx)
    vault = get_vault(settings)
    health = get_health(settings)

    if tool is not None:
        resolve_file_set(tool)
        tools = {tool: vault.list(tool)}
    else:
        tools = vault.list_all()

    if not any(tools.values()):
        console.print("[yellow]No profiles found.[/yellow]")
        if tool is not None:
            console.print(f"Save one with: agent-switch backup {tool} <name>")
        return

    table = Table(
        show_header=True,
        header_style="bold cyan",
        box=box.ROUNDED,
        title="Profiles",
        title_style="bold white",
    )
    table.add_column("Tool", style="cyan")
    table.add_column("Profile", style="white")
    table.add_column("Type")
    table.add_column("Saved")
    table.add_column("Health")
    table.add_column("Active", justify="center")

    for tool_name, profiles in tools.items():
        active_name = ""
        if tool_name in KNOWN_TOOLS:
            try:
                active_name = vault.active_profile(resolve_file_set(tool_name))
            except AgentSwitchError:
                active_name = ""
        for name in profiles:
            meta = vault.read_meta(tool_name, name)
            status = health.get_status(tool_name, name)
            style = _STATUS_STYLES.get(status, "white")
            table.add_row(
                tool_name,
                name,
                meta.type.value if meta else "-",
                meta.backed_up_at.strftime("%Y-%m-%d %H:%M") if meta else "-",
                f"[{style}]{status.value}[/{style}]",
                "[green]●[/green]" if name == active_name else "",
            )

    console.print(table)


def active(
    ctx: typer.Context,
    tool: Annotated[str, typer.Argument(help="Tool id (claude, codex, gemini)")],
) -> None:
    """Show which vaulted profile matches the tool's live login."""
    settings = get_cli_settings(ctx)
    file_set = resolve_file_set(tool)
    vault = get_vault(settings)

    try:
        name = vault.active_profile(file_set)
    except AgentSwitchError as e:
        fail(str(e), e)

    if not name:
        console.print(f"[yellow]No vaulted profile matches the current {tool} login.[/yellow]")
        raise typer.Exit(1)
    typer.echo(name)


def delete(
    ctx: typer.Context,
    tool: Annotated[str, typer.Argument(help="Tool id (claude, codex, gemini)")],
    profile: Annotated[str, typer.Argument(help="Profile to delete")],
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Allow deleting system profiles"),
    ] = False,
    yes: Annotated[
        bool, typer.Option("--yes", "-y", help="Skip confirmation")
    ] = False,
) -> None:
    """Delete a vaulted profile."""
    settings = get_cli_settings(ctx)
    resolve_file_set(tool)
    vault = get_vault(settings)

    if not yes and not typer.confirm(f"Delete profile {tool}/{profile}?"):
        raise typer.Abort()

    try:
        if force:
            vault.delete_force(tool, profile)
        else:
            vault.delete(tool, profile)
    except AgentSwitchError as e:
        fail(str(e), e)

    get_health(settings).delete_profile(tool, profile)
    asyncio.run(record_activity(settings, ActivityType.DELETE, tool, profile))
    console.print(f"[green]Deleted {tool}/{profile}[/green]")


async def _select_next(
    settings: Settings, tool: str, algorithm: Algorithm, current: str
) -> str:
    vault = get_vault(settings)
    profiles = vault.list(tool)
    async with open_database(settings) as available:
        selector = RotationSelector(
            algorithm,
            cooldown_store=CooldownRepository() if available else None,
            activity_store=ActivityRepository() if available else None,
            health_store=get_health(settings),
            avoid_recent=timedelta(minutes=settings.rotation.avoid_recent_minutes),
        )
        result = await selector.select(tool, profiles, current)
    return format_result(result)


def next_profile(
    ctx: typer.Context,
    tool: Annotated[str, typer.Argument(help="Tool id (claude, codex, gemini)")],
    algorithm: Annotated[
        str | None,
        typer.Option(
            "--algorithm",
            "-a",
            help="smart, round_robin or random (defaults to configuration)",
        ),
    ] = None,
) -> None:
    """Preview which profile rotation would pick next."""
    settings = get_cli_settings(ctx)
    file_set = resolve_file_set(tool)

    try:
        chosen = (
            Algorithm.parse(algorithm)
            if algorithm is not None
            else settings.rotation.algorithm
        )
        current = get_vault(settings).active_profile(file_set)
        report = asyncio.run(_select_next(settings, tool, chosen, current))
    except AgentSwitchError as e:
        fail(str(e), e)

    typer.echo(report, nl=False)
