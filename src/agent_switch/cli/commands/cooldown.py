"""Cooldown management commands."""

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Annotated

import typer
from rich import box
from rich.table import Table

from agent_switch.cli.helpers import (
    console,
    fail,
    get_cli_settings,
    open_database,
    resolve_file_set,
)
from agent_switch.config.settings import Settings
from agent_switch.db.models import Cooldown
from agent_switch.db.repositories import CooldownRepository
from agent_switch.exceptions import ValidationError
from agent_switch.rotation.formatting import format_duration
from agent_switch.vault.paths import validate_segment


app = typer.Typer(name="cooldown", help="Mark profiles as rate limited", no_args_is_help=True)

DATABASE_DISABLED = "cooldown database is disabled or unavailable"


async def _set(
    settings: Settings, tool: str, profile: str, minutes: float, notes: str | None
) -> Cooldown | None:
    async with open_database(settings) as available:
        if not available:
            return None
        return await CooldownRepository().set_cooldown(
            tool, profile, datetime.now(UTC), timedelta(minutes=minutes), notes
        )


async def _clear(settings: Settings, tool: str, profile: str) -> int | None:
    async with open_database(settings) as available:
        if not available:
            return None
        return await CooldownRepository().clear(tool, profile)


async def _list(settings: Settings) -> list[Cooldown] | None:
    async with open_database(settings) as available:
        if not available:
            return None
        repo = CooldownRepository()
        await repo.cleanup_expired()
        return await repo.list_active()


@app.command(name="set")
def set_cooldown(
    ctx: typer.Context,
    tool: Annotated[str, typer.Argument(help="Tool id (claude, codex, gemini)")],
    profile: Annotated[str, typer.Argument(help="Profile that hit a rate limit")],
    minutes: Annotated[
        float | None,
        typer.Option("--minutes", "-m", help="Cooldown length (defaults to configuration)"),
    ] = None,
    notes: Annotated[
        str | None, typer.Option("--notes", "-n", help="Free-form note")
    ] = None,
) -> None:
    """Skip a profile during selection for a while."""
    settings = get_cli_settings(ctx)
    resolve_file_set(tool)
    try:
        validate_segment("profile", profile)
    except ValidationError as e:
        fail(str(e), e)

    duration = minutes if minutes is not None else settings.rotation.cooldown_minutes
    if duration <= 0:
        fail("--minutes must be positive")

    record = asyncio.run(_set(settings, tool, profile, duration, notes))
    if record is None:
        fail(DATABASE_DISABLED)
    remaining = format_duration(timedelta(seconds=record.remaining()))
    console.print(f"[yellow]{tool}/{profile} in cooldown for {remaining}[/yellow]")


@app.command(name="clear")
def clear_cooldown(
    ctx: typer.Context,
    tool: Annotated[str, typer.Argument(help="Tool id (claude, codex, gemini)")],
    profile: Annotated[str, typer.Argument(help="Profile to clear")],
) -> None:
    """Remove every cooldown recorded for a profile."""
    settings = get_cli_settings(ctx)
    resolve_file_set(tool)

    count = asyncio.run(_clear(settings, tool, profile))
    if count is None:
        fail(DATABASE_DISABLED)
    if count == 0:
        console.print(f"No cooldown recorded for {tool}/{profile}")
        return
    console.print(f"[green]Cleared {count} cooldown(s) for {tool}/{profile}[/green]")


@app.command(name="list")
def list_cooldowns(
    ctx: typer.Context,
    tool: Annotated[
        str | None, typer.Argument(help="Only show cooldowns for this tool")
    ] = None,
) -> None:
    """Show active cooldowns."""
    settings = get_cli_settings(ctx)

    records = asyncio.run(_list(settings))
    if records is None:
        fail(DATABASE_DISABLED)
    if tool is not None:
        records = [r for r in records if r.tool == tool]

    if not records:
        console.print("[green]No active cooldowns.[/green]")
        return

    table = Table(
        show_header=True,
        header_style="bold cyan",
        box=box.ROUNDED,
        title="Active Cooldowns",
        title_style="bold white",
    )
    table.add_column("Tool", style="cyan")
    table.add_column("Profile", style="white")
    table.add_column("Remaining", style="yellow")
    table.add_column("Notes")

    for record in records:
        table.add_row(
            record.tool,
            record.profile,
            format_duration(timedelta(seconds=record.remaining())),
            record.notes or "-",
        )

    console.print(table)
