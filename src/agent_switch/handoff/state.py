"""Handoff controller states."""

from enum import StrEnum


class HandoffState(StrEnum):
    """Where a session is in the rate-limit handoff sequence.

    ``RUNNING`` is both the initial state and where every handoff ends,
    successful or not.
    """

    RUNNING = "RUNNING"
    RATE_LIMITED = "RATE_LIMITED"
    SELECTING_BACKUP = "SELECTING_BACKUP"
    SWAPPING_AUTH = "SWAPPING_AUTH"
    LOGGING_IN = "LOGGING_IN"
    LOGIN_COMPLETE = "LOGIN_COMPLETE"
    HANDOFF_FAILED = "HANDOFF_FAILED"
    MANUAL_MODE = "MANUAL_MODE"


# States in which a handoff task is doing work
IN_PROGRESS_STATES = frozenset(
    {
        HandoffState.RATE_LIMITED,
        HandoffState.SELECTING_BACKUP,
        HandoffState.SWAPPING_AUTH,
        HandoffState.LOGGING_IN,
        HandoffState.LOGIN_COMPLETE,
    }
)
