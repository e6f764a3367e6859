"""Data models for vault profiles and provider auth files."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Any


class ProfileType(StrEnum):
    """Whether a profile was created by the user or by agent-switch."""

    USER = "user"
    SYSTEM = "system"


class CreatedBy(StrEnum):
    """Origin of a stored profile."""

    USER = "user"
    AUTO = "auto"
    FIRST_ACTIVATE = "first-activate"


@dataclass(frozen=True)
class AuthFileSpec:
    """One auth file a tool reads at startup."""

    tool: str
    path: Path
    description: str = ""
    required: bool = True

    @property
    def basename(self) -> str:
        return self.path.name


@dataclass(frozen=True)
class AuthFileSet:
    """The ordered auth files that make up one tool's login state."""

    tool: str
    files: tuple[AuthFileSpec, ...] = ()

    @property
    def required_files(self) -> tuple[AuthFileSpec, ...]:
        return tuple(spec for spec in self.files if spec.required)


@dataclass
class ProfileMeta:
    """Contents of a profile's meta.json."""

    tool: str
    profile: str
    backed_up_at: datetime
    files: int
    type: ProfileType = ProfileType.USER
    created_by: CreatedBy = CreatedBy.USER
    original_paths: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "tool": self.tool,
            "profile": self.profile,
            "backed_up_at": self.backed_up_at.astimezone(UTC).isoformat(),
            "files": self.files,
            "type": str(self.type),
            "created_by": str(self.created_by),
            "original_paths": list(self.original_paths),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProfileMeta":
        """Create from dictionary loaded from meta.json."""
        backed_up_at = datetime.fromisoformat(data["backed_up_at"])
        if backed_up_at.tzinfo is None:
            backed_up_at = backed_up_at.replace(tzinfo=UTC)
        return cls(
            tool=data["tool"],
            profile=data["profile"],
            backed_up_at=backed_up_at,
            files=int(data.get("files", 0)),
            type=ProfileType(data.get("type", ProfileType.USER)),
            created_by=CreatedBy(data.get("created_by", CreatedBy.USER)),
            original_paths=list(data.get("original_paths", [])),
        )
