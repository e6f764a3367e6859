"""Consolidated exception hierarchy for agent-switch.

All exceptions use proper exception chaining with the `from` keyword.
Error types use StrEnum so callers can branch on a stable code instead of
matching on message text.
"""

from enum import StrEnum
from typing import Any


class ErrorType(StrEnum):
    """Error type codes attached to every AgentSwitchError."""

    VALIDATION = "validation_error"
    PROTECTED = "protected_resource_error"
    NOT_FOUND = "not_found_error"
    VAULT = "vault_error"
    SELECTION = "selection_error"
    HANDOFF = "handoff_error"
    TIMEOUT = "timeout_error"
    PTY = "pty_error"
    CONFIGURATION = "configuration_error"
    INTERNAL = "internal_error"


# ============================================================================
# Base Exceptions
# ============================================================================


class AgentSwitchError(Exception):
    """Base exception for all agent-switch errors.

    Supports a typed error code and structured details for display.
    """

    def __init__(
        self,
        message: str,
        *,
        error_type: ErrorType | str = ErrorType.INTERNAL,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if isinstance(error_type, str) and not isinstance(error_type, ErrorType):
            try:
                self.error_type = ErrorType(error_type)
            except ValueError:
                self.error_type = error_type  # type: ignore[assignment]
        else:
            self.error_type = error_type
        self.details = details or {}


# ============================================================================
# Validation Errors
# ============================================================================


class ValidationError(AgentSwitchError):
    """Input rejected before any side effect took place."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, error_type=ErrorType.VALIDATION, details=details)


class InvalidNameError(ValidationError):
    """A tool or profile name is unsafe to use as a vault path segment."""

    def __init__(self, kind: str, value: str, reason: str = "") -> None:
        message = f"invalid {kind}: {value!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, details={"kind": kind, "value": value})
        self.kind = kind
        self.value = value


class RequiredFileMissingError(ValidationError):
    """A required auth file (or its vault copy) does not exist."""

    def __init__(self, path: str, *, backup: bool = False) -> None:
        what = "required backup not found" if backup else "required auth file not found"
        super().__init__(f"{what}: {path}", details={"path": path})
        self.path = path


class UnknownToolError(ValidationError):
    """The tool id is not one of the known providers."""

    def __init__(self, tool: str) -> None:
        super().__init__(f"unknown tool: {tool!r}", details={"tool": tool})
        self.tool = tool


# ============================================================================
# Vault Errors
# ============================================================================


class VaultError(AgentSwitchError):
    """Vault I/O failed or produced nothing."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, error_type=ErrorType.VAULT, details=details)


class ProtectedProfileError(AgentSwitchError):
    """Operation refused on a protected system profile."""

    def __init__(self, tool: str, profile: str, action: str) -> None:
        super().__init__(
            f"protected system profile: refusing to {action} {tool}/{profile}",
            error_type=ErrorType.PROTECTED,
            details={"tool": tool, "profile": profile, "action": action},
        )
        self.tool = tool
        self.profile = profile


class ProfileNotFoundError(AgentSwitchError):
    """Profile does not exist in the vault."""

    def __init__(self, tool: str, profile: str) -> None:
        super().__init__(
            f"profile {tool}/{profile} not found in vault",
            error_type=ErrorType.NOT_FOUND,
            details={"tool": tool, "profile": profile},
        )
        self.tool = tool
        self.profile = profile


# ============================================================================
# Selection Errors
# ============================================================================


class SelectionError(AgentSwitchError):
    """Base exception for profile selection failures."""

    def __init__(self, message: str, *, tool: str = "") -> None:
        super().__init__(
            message, error_type=ErrorType.SELECTION, details={"tool": tool}
        )
        self.tool = tool


class NoProfilesError(SelectionError):
    """No user profiles are available for selection."""

    pass


class AllProfilesInCooldownError(SelectionError):
    """Every candidate profile is in an active cooldown."""

    def __init__(self, tool: str) -> None:
        super().__init__(f"all profiles for {tool} are in cooldown", tool=tool)


# ============================================================================
# Handoff Errors
# ============================================================================


class HandoffError(AgentSwitchError):
    """A handoff step failed."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, error_type=ErrorType.HANDOFF, details=details)


class LoginTimeoutError(HandoffError):
    """No login completion marker was seen before the deadline."""

    def __init__(self, timeout: float) -> None:
        super().__init__(
            f"login timed out after {timeout:g}s", details={"timeout": timeout}
        )
        self.timeout = timeout


class LoginFailedError(HandoffError):
    """The CLI reported a login failure."""

    pass


# ============================================================================
# PTY Errors
# ============================================================================


class PTYError(AgentSwitchError):
    """Pseudo-terminal operation failed."""

    def __init__(self, message: str) -> None:
        super().__init__(message, error_type=ErrorType.PTY)


class PTYNotStartedError(PTYError):
    """Operation requires a started controller."""

    def __init__(self, message: str = "PTY controller has not been started") -> None:
        super().__init__(message)


class PTYClosedError(PTYError):
    """Controller is closed or the child's output is exhausted."""

    def __init__(self, message: str = "PTY controller is closed") -> None:
        super().__init__(message)


# ============================================================================
# Configuration Errors
# ============================================================================


class ConfigurationError(AgentSwitchError):
    """Raised when configuration loading or validation fails."""

    def __init__(self, message: str) -> None:
        super().__init__(message, error_type=ErrorType.CONFIGURATION)


__all__ = [
    "AgentSwitchError",
    "AllProfilesInCooldownError",
    "ConfigurationError",
    "ErrorType",
    "HandoffError",
    "InvalidNameError",
    "LoginFailedError",
    "LoginTimeoutError",
    "NoProfilesError",
    "PTYClosedError",
    "PTYError",
    "PTYNotStartedError",
    "ProfileNotFoundError",
    "ProtectedProfileError",
    "RequiredFileMissingError",
    "SelectionError",
    "UnknownToolError",
    "ValidationError",
    "VaultError",
]
