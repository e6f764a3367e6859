"""Path-safety checks for vault tool and profile names.

Every name that becomes a path segment under the vault root goes through
``validate_segment`` and every joined path through ``safe_join``. Both raise
before anything touches the filesystem.
"""

import re
from pathlib import Path, PurePosixPath, PureWindowsPath

from agent_switch.exceptions import InvalidNameError, ValidationError


_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")


def validate_segment(kind: str, value: str) -> None:
    """Reject a tool or profile name that could escape its directory.

    Args:
        kind: Label used in the error message ("tool" or "profile")
        value: Candidate path segment

    Raises:
        ValidationError: If the value is empty or whitespace
        InvalidNameError: If the value is not a single safe path segment
    """
    if not value or not value.strip():
        raise ValidationError(f"{kind} cannot be empty")
    if value in (".", ".."):
        raise InvalidNameError(kind, value, "relative path component")
    if "\x00" in value:
        raise InvalidNameError(kind, value, "contains NUL byte")
    if "/" in value or "\\" in value:
        raise InvalidNameError(kind, value, "contains path separator")
    if PurePosixPath(value).is_absolute() or PureWindowsPath(value).is_absolute():
        raise InvalidNameError(kind, value, "absolute path")
    if _DRIVE_PREFIX.match(value):
        raise InvalidNameError(kind, value, "drive prefix")


def is_within(base: Path, candidate: Path) -> bool:
    """Return True if ``candidate`` equals ``base`` or lies strictly inside it."""
    base_abs = base.expanduser().resolve()
    candidate_abs = candidate.expanduser().resolve()
    return candidate_abs == base_abs or base_abs in candidate_abs.parents


def safe_join(base: Path, *segments: tuple[str, str]) -> Path:
    """Join validated ``(kind, value)`` segments onto ``base``.

    Raises:
        ValidationError: If any segment is unsafe or the result leaves ``base``
    """
    for kind, value in segments:
        validate_segment(kind, value)

    candidate = base.joinpath(*(value for _, value in segments))
    if not is_within(base, candidate):
        raise InvalidNameError(
            segments[-1][0] if segments else "path",
            str(candidate),
            "escapes vault directory",
        )
    return candidate
