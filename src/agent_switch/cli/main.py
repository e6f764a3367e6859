"""agent-switch command line entry point."""

from pathlib import Path
from typing import Annotated

import typer

from agent_switch import __version__
from agent_switch.cli.commands.cooldown import app as cooldown_app
from agent_switch.cli.commands.profiles import (
    activate,
    active,
    backup,
    delete,
    list_profiles,
    next_profile,
)
from agent_switch.cli.commands.run import run
from agent_switch.cli.helpers import CLIState, fail
from agent_switch.config.settings import get_settings
from agent_switch.core.logging import setup_logging
from agent_switch.exceptions import ConfigurationError


app = typer.Typer(
    name="agent-switch",
    help="Switch AI coding CLI accounts and hand off sessions on rate limits",
    no_args_is_help=True,
    add_completion=False,
)


def version_callback(value: bool) -> None:
    if value:
        typer.echo(f"agent-switch {__version__}")
        raise typer.Exit()


@app.callback()
def app_main(
    ctx: typer.Context,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to a TOML configuration file",
            exists=True,
            dir_okay=False,
        ),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="Override the configured log level"),
    ] = None,
    json_logs: Annotated[
        bool | None,
        typer.Option("--json-logs/--console-logs", help="Log format"),
    ] = None,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
) -> None:
    """Manage vaulted CLI logins for claude, codex and gemini."""
    overrides: dict[str, dict[str, object]] = {}
    logging_overrides: dict[str, object] = {}
    if log_level is not None:
        logging_overrides["level"] = log_level
    if json_logs is not None:
        logging_overrides["json_logs"] = json_logs
    if logging_overrides:
        overrides["logging"] = logging_overrides

    try:
        settings = get_settings(config, **overrides)
    except ConfigurationError as e:
        fail(str(e), e)

    setup_logging(
        json_logs=settings.logging.json_logs,
        log_level_name=settings.logging.level,
        log_file=settings.logging.file,
    )
    ctx.obj = CLIState(config_path=config, settings=settings)


app.command(name="backup")(backup)
app.command(name="activate")(activate)
app.command(name="ls")(list_profiles)
app.command(name="active")(active)
app.command(name="delete")(delete)
app.command(name="next")(next_profile)
app.command(
    name="run",
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
)(run)
app.add_typer(cooldown_app, name="cooldown")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
