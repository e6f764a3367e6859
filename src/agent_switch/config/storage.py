"""Persistence configuration settings."""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator


def _expand(v: str | Path | None) -> Path | None:
    if v in (None, ""):
        return None
    return Path(v).expanduser()


class DatabaseSettings(BaseModel):
    """Cooldown and activity database settings."""

    enabled: bool = Field(default=True, description="Persist cooldowns and activity")
    path: Path | None = Field(
        default=None, description="SQLite file (defaults to the user data directory)"
    )

    @field_validator("path", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path | None) -> Path | None:
        return _expand(v)


class HealthSettings(BaseModel):
    """Profile health store settings."""

    path: Path | None = Field(
        default=None, description="health.json (defaults to the user data directory)"
    )

    @field_validator("path", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path | None) -> Path | None:
        return _expand(v)
