"""Rate-limit handoff for wrapped CLI sessions."""

from agent_switch.handoff.controller import HandoffController, LoginResult
from agent_switch.handoff.login import (
    DEFAULT_LOGIN_COMMANDS,
    DEFAULT_LOGIN_PATTERNS,
    LoginHandler,
    LoginPatterns,
    LoginState,
    determine_login_state,
    get_login_handler,
)
from agent_switch.handoff.state import IN_PROGRESS_STATES, HandoffState


__all__ = [
    "DEFAULT_LOGIN_COMMANDS",
    "DEFAULT_LOGIN_PATTERNS",
    "HandoffController",
    "HandoffState",
    "IN_PROGRESS_STATES",
    "LoginHandler",
    "LoginPatterns",
    "LoginResult",
    "LoginState",
    "determine_login_state",
    "get_login_handler",
]
