"""Run a provider CLI with automatic rate-limit handoff."""

import asyncio
from datetime import timedelta
from typing import Annotated

import typer
from structlog import get_logger

from agent_switch.cli.commands.profiles import activate_profile, record_activity
from agent_switch.cli.helpers import (
    fail,
    get_cli_settings,
    get_health,
    get_vault,
    open_database,
    resolve_file_set,
)
from agent_switch.config.settings import Settings
from agent_switch.db.models import ActivityType
from agent_switch.db.repositories import ActivityRepository, CooldownRepository
from agent_switch.exceptions import AgentSwitchError, PTYError
from agent_switch.handoff.controller import HandoffController
from agent_switch.handoff.login import get_login_handler
from agent_switch.notify import TerminalNotifier
from agent_switch.pty.process import PtyProcessController
from agent_switch.pty.terminal import raw_terminal, terminal_size
from agent_switch.ratelimit.detector import RateLimitDetector
from agent_switch.rotation.pool import AuthPool
from agent_switch.rotation.selector import RotationSelector
from agent_switch.vault.models import AuthFileSet
from agent_switch.vault.vault import Vault


logger = get_logger(__name__)


async def _run_session(
    settings: Settings,
    vault: Vault,
    file_set: AuthFileSet,
    argv: list[str],
    current_profile: str,
    stdin_fd: int | None,
) -> int:
    tool = file_set.tool
    patterns = settings.login_patterns.for_tool(tool)
    rows, cols = terminal_size()

    async with open_database(settings) as available:
        cooldowns = CooldownRepository() if available else None
        activity = ActivityRepository() if available else None
        pool = AuthPool()
        selector = RotationSelector(
            settings.rotation.algorithm,
            cooldown_store=cooldowns or pool,
            activity_store=activity,
            health_store=get_health(settings),
            avoid_recent=timedelta(minutes=settings.rotation.avoid_recent_minutes),
        )
        controller = HandoffController(
            file_set,
            vault=vault,
            selector=selector,
            detector=RateLimitDetector(
                tool, settings.rate_limit_patterns.for_tool(tool) or None
            ),
            login_handler=get_login_handler(
                tool, success=patterns.success, failure=patterns.failure
            ),
            current_profile=current_profile,
            pool=pool,
            cooldown_store=cooldowns,
            activity_store=activity,
            notifier=TerminalNotifier(),
            settings=settings.handoff,
            cooldown=timedelta(minutes=settings.rotation.cooldown_minutes),
            max_auto_backups=settings.vault.max_auto_backups,
            stdin_fd=stdin_fd,
            forward_signals=True,
        )
        pty = PtyProcessController(argv, rows=rows, cols=cols)
        return await controller.run(pty)


def run(
    ctx: typer.Context,
    tool: Annotated[str, typer.Argument(help="Tool id (claude, codex, gemini)")],
    command: Annotated[
        list[str] | None,
        typer.Argument(help="Command to run after --, defaults to the tool itself"),
    ] = None,
    profile: Annotated[
        str | None,
        typer.Option("--profile", "-p", help="Activate this profile before starting"),
    ] = None,
) -> None:
    """Run a CLI session that switches profiles when it hits a rate limit.

    Examples:
        agent-switch run claude
        agent-switch run codex --profile work -- codex --model o3
    """
    settings = get_cli_settings(ctx)
    file_set = resolve_file_set(tool)
    vault = get_vault(settings)
    argv = list(command or []) + list(ctx.args) or [tool]

    try:
        if profile:
            activate_profile(
                vault,
                file_set,
                profile,
                mode=settings.vault.auto_backup_before_switch,
                max_auto_backups=settings.vault.max_auto_backups,
            )
            asyncio.run(
                record_activity(settings, ActivityType.ACTIVATE, tool, profile, "run")
            )
            current = profile
        else:
            current = vault.active_profile(file_set)
    except AgentSwitchError as e:
        fail(str(e), e)

    logger.info("run_starting", tool=tool, profile=current or None, command=argv[0])
    try:
        with raw_terminal() as stdin_fd:
            exit_code = asyncio.run(
                _run_session(settings, vault, file_set, argv, current, stdin_fd)
            )
    except PTYError as e:
        fail(str(e), e)

    raise typer.Exit(exit_code)
