"""User-facing alerts raised during a wrapped session."""

from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from rich.console import Console
from structlog import get_logger


logger = get_logger(__name__)


class AlertLevel(StrEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Alert:
    level: AlertLevel
    title: str
    message: str
    action: str = ""


class Notifier(Protocol):
    def notify(self, alert: Alert) -> None: ...


_STYLES = {
    AlertLevel.INFO: "bold cyan",
    AlertLevel.WARNING: "bold yellow",
    AlertLevel.ERROR: "bold red",
}


class TerminalNotifier:
    """Prints alerts to stderr so they never mix into the child's stdout."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(stderr=True, highlight=False)

    def notify(self, alert: Alert) -> None:
        style = _STYLES.get(alert.level, "bold")
        # Raw-mode terminals need an explicit carriage return
        self.console.print(
            f"\r\n[{style}][agent-switch] {alert.title}:[/{style}] {alert.message}\r",
            soft_wrap=True,
        )
        if alert.action:
            self.console.print(f"[dim]  -> {alert.action}[/dim]\r", soft_wrap=True)


class LogNotifier:
    """Routes alerts to the structured log."""

    def notify(self, alert: Alert) -> None:
        log = {
            AlertLevel.INFO: logger.info,
            AlertLevel.WARNING: logger.warning,
            AlertLevel.ERROR: logger.error,
        }.get(alert.level, logger.info)
        log(
            "session_alert",
            title=alert.title,
            message=alert.message,
            action=alert.action or None,
        )
