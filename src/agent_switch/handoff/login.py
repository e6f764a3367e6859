"""Provider login handlers.

A login handler knows which command starts a provider's login flow inside a
running session and how to read the outcome from its output. Handlers are
looked up by tool id from a closed registry.
"""

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum

from structlog import get_logger

from agent_switch.exceptions import HandoffError, PTYError, UnknownToolError
from agent_switch.pty.controller import PTYController


logger = get_logger(__name__)


class LoginState(StrEnum):
    UNKNOWN = "unknown"
    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True)
class LoginPatterns:
    """Case-insensitive regexes describing a provider's login output."""

    progress: tuple[str, ...] = ()
    success: tuple[str, ...] = ()
    failure: tuple[str, ...] = ()


DEFAULT_LOGIN_COMMANDS: dict[str, str] = {
    "claude": "/login",
    "codex": "/login",
    "gemini": "/auth",
}

AUTHENTICATED = r"(?<!not )(?<!un)\bauthenticated\b"
LOGGED_IN = r"(?<!not )\blogged in\b"
NOT_LOGGED_IN = r"\b(?:not logged in|not authenticated|unauthenticated)\b"

DEFAULT_LOGIN_PATTERNS: dict[str, LoginPatterns] = {
    "claude": LoginPatterns(
        progress=(r"open.*browser", r"paste.*code", r"waiting for.*auth"),
        success=(r"successfully logged in", AUTHENTICATED, r"login complete"),
        failure=(
            r"authentication failed",
            r"invalid token",
            r"expired",
            r"login failed",
            NOT_LOGGED_IN,
        ),
    ),
    "codex": LoginPatterns(
        progress=(r"open.*browser", r"sign in", r"waiting for.*auth"),
        success=(LOGGED_IN, r"authentication successful"),
        failure=(r"authentication failed", r"login failed", NOT_LOGGED_IN),
    ),
    "gemini": LoginPatterns(
        progress=(r"open.*browser", r"accounts\.google\.com", r"waiting for.*auth"),
        success=(AUTHENTICATED, LOGGED_IN),
        failure=(r"authentication failed", r"invalid credentials", NOT_LOGGED_IN),
    ),
}


def _compile(patterns: Iterable[str]) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


@dataclass
class LoginHandler:
    """Login flow for one provider."""

    tool: str
    login_command: str
    patterns: LoginPatterns = field(default_factory=LoginPatterns)

    def __post_init__(self) -> None:
        try:
            self._progress = _compile(self.patterns.progress)
            self._success = _compile(self.patterns.success)
            self._failure = _compile(self.patterns.failure)
        except re.error as e:
            raise HandoffError(
                f"invalid login pattern for {self.tool}: {e}",
                details={"tool": self.tool},
            ) from e

    def trigger_login(self, pty: PTYController) -> None:
        """Type the login command into the session.

        Raises:
            HandoffError: The command could not be written
        """
        try:
            pty.inject_command(self.login_command)
        except PTYError as e:
            raise HandoffError(f"login trigger failed: {e}") from e
        logger.info("login_triggered", tool=self.tool, command=self.login_command)

    def is_login_in_progress(self, output: str) -> bool:
        return any(p.search(output) for p in self._progress)

    def is_login_complete(self, output: str) -> bool:
        return any(p.search(output) for p in self._success)

    def is_login_failed(self, output: str) -> tuple[bool, str]:
        """Whether output reports a failed login, with the offending line."""
        for pattern in self._failure:
            match = pattern.search(output)
            if match:
                return True, _line_at(output, match.start())
        return False, ""

    def expected_patterns(self) -> dict[str, str]:
        """One alternation regex per login state, keyed progress/success/failure."""
        return {
            "progress": "|".join(self.patterns.progress),
            "success": "|".join(self.patterns.success),
            "failure": "|".join(self.patterns.failure),
        }


def _line_at(output: str, index: int) -> str:
    start = output.rfind("\n", 0, index) + 1
    end = output.find("\n", index)
    return output[start : end if end != -1 else len(output)].strip()


def determine_login_state(handler: LoginHandler | None, output: str) -> LoginState:
    """Classify output; failure wins over success, success over progress."""
    if handler is None:
        return LoginState.UNKNOWN
    if handler.is_login_failed(output)[0]:
        return LoginState.FAILED
    if handler.is_login_complete(output):
        return LoginState.COMPLETE
    if handler.is_login_in_progress(output):
        return LoginState.IN_PROGRESS
    return LoginState.IDLE


def get_login_handler(
    tool: str,
    *,
    success: Iterable[str] | None = None,
    failure: Iterable[str] | None = None,
    overrides: Mapping[str, str] | None = None,
) -> LoginHandler:
    """Build the login handler for ``tool``.

    Args:
        tool: Tool id (claude, codex, gemini)
        success: Replacement success patterns, defaults when empty
        failure: Replacement failure patterns, defaults when empty
        overrides: Optional ``{tool: login_command}`` replacements

    Raises:
        UnknownToolError: No handler exists for the tool
    """
    if tool not in DEFAULT_LOGIN_COMMANDS:
        raise UnknownToolError(tool)

    defaults = DEFAULT_LOGIN_PATTERNS[tool]
    success = tuple(success or ())
    failure = tuple(failure or ())
    patterns = LoginPatterns(
        progress=defaults.progress,
        success=success or defaults.success,
        failure=failure or defaults.failure,
    )
    command = (overrides or {}).get(tool) or DEFAULT_LOGIN_COMMANDS[tool]
    return LoginHandler(tool=tool, login_command=command, patterns=patterns)
