"""Shared plumbing for CLI commands."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from sqlalchemy.exc import SQLAlchemyError
from structlog import get_logger

from agent_switch.config.settings import Settings, get_settings
from agent_switch.db.engine import close_db, default_db_path, init_db
from agent_switch.exceptions import AgentSwitchError
from agent_switch.health.storage import HealthStorage
from agent_switch.vault.authfiles import get_auth_file_set
from agent_switch.vault.models import AuthFileSet
from agent_switch.vault.vault import Vault


console = Console()
err_console = Console(stderr=True)
logger = get_logger(__name__)


@dataclass
class CLIState:
    """Per-invocation state stored on the typer context."""

    config_path: Path | None = None
    settings: Settings | None = None


def get_cli_settings(ctx: typer.Context | None = None) -> Settings:
    """Settings loaded by the root callback, or freshly loaded ones."""
    state = ctx.obj if ctx is not None else None
    if isinstance(state, CLIState) and state.settings is not None:
        return state.settings
    config_path = state.config_path if isinstance(state, CLIState) else None
    try:
        return get_settings(config_path)
    except AgentSwitchError as e:
        fail(str(e), e)


def fail(message: str, cause: BaseException | None = None) -> NoReturn:
    """Print an error and exit with status 1."""
    err_console.print(f"[red]Error:[/red] {message}", highlight=False)
    raise typer.Exit(1) from cause


def get_vault(settings: Settings) -> Vault:
    return Vault(settings.vault.path)


def get_health(settings: Settings) -> HealthStorage:
    return HealthStorage(settings.health.path)


def resolve_file_set(tool: str) -> AuthFileSet:
    try:
        return get_auth_file_set(tool)
    except AgentSwitchError as e:
        fail(str(e), e)


@asynccontextmanager
async def open_database(settings: Settings) -> AsyncIterator[bool]:
    """Open the cooldown/activity database for one command.

    Yields:
        False when persistence is disabled or the database cannot be opened
    """
    if not settings.database.enabled:
        yield False
        return

    path = settings.database.path or default_db_path()
    try:
        await init_db(path)
    except (OSError, SQLAlchemyError) as e:
        logger.warning("database_unavailable", path=str(path), error=str(e))
        yield False
        return

    try:
        yield True
    finally:
        await close_db()
