"""Vault configuration settings."""

from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, Field, field_validator


class AutoBackupMode(StrEnum):
    """When ``activate`` snapshots the current login first."""

    SMART = "smart"  # only when the live state matches no stored profile
    ALWAYS = "always"
    NEVER = "never"


class VaultSettings(BaseModel):
    """Vault-specific configuration settings."""

    path: Path | None = Field(
        default=None,
        description="Vault directory (defaults to the user data directory)",
    )

    max_auto_backups: int = Field(
        default=5,
        description="Automatic _backup_* snapshots to keep per tool (0 = unlimited)",
        ge=0,
    )

    auto_backup_before_switch: AutoBackupMode = Field(
        default=AutoBackupMode.SMART,
        description="Snapshot the current login before activating another profile",
    )

    @field_validator("path", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path | None) -> Path | None:
        if v in (None, ""):
            return None
        return Path(v).expanduser()
