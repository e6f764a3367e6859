"""structlog configuration for agent-switch.

Logs always go to stderr so they never interleave with the wrapped CLI's
terminal output on stdout.
"""

import logging
import sys
from pathlib import Path
from typing import Any

import structlog


_configured = False


def setup_logging(
    json_logs: bool = False,
    log_level_name: str = "INFO",
    log_file: str | Path | None = None,
) -> None:
    """Configure structlog and stdlib logging once per process.

    Args:
        json_logs: Render events as JSON lines instead of console output
        log_level_name: Minimum level name (DEBUG, INFO, WARNING, ...)
        log_file: Optional file that receives a copy of every event
    """
    global _configured
    if _configured:
        return

    level = logging.getLevelName(log_level_name.upper())
    if not isinstance(level, int):
        level = logging.INFO

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    renderer: Any
    if json_logs:
        renderer = structlog.processors.JSONRenderer()
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handlers: list[logging.Handler] = []
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)

    if log_file:
        file_handler = logging.FileHandler(str(log_file))
        file_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                foreign_pre_chain=shared_processors,
                processors=[
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    structlog.processors.JSONRenderer(),
                ],
            )
        )
        handlers.append(file_handler)

    root = logging.getLogger()
    root.handlers = handlers
    root.setLevel(level)

    # aiosqlite and sqlalchemy are chatty at DEBUG
    for noisy in ("aiosqlite", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))

    _configured = True


