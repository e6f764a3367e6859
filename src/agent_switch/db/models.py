"""SQLModel database models."""

from datetime import UTC, datetime
from enum import StrEnum

from sqlmodel import Field, SQLModel


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; every stored value is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class ActivityType(StrEnum):
    """Kinds of events written to the activity log."""

    ACTIVATE = "activate"
    BACKUP = "backup"
    DELETE = "delete"
    RATE_LIMIT = "rate_limit"
    HANDOFF_FAILED = "handoff_failed"


class Cooldown(SQLModel, table=True):
    """A profile that hit a rate limit and should be skipped until it expires."""

    __tablename__ = "cooldowns"

    id: int | None = Field(default=None, primary_key=True)
    tool: str = Field(index=True)
    profile: str = Field(index=True)
    hit_at: datetime
    cooldown_until: datetime = Field(index=True)
    notes: str | None = None

    def remaining(self, now: datetime | None = None) -> float:
        """Seconds left in the cooldown (0 once expired)."""
        now = now or datetime.now(UTC)
        return max(0.0, (as_utc(self.cooldown_until) - now).total_seconds())


class ActivityEvent(SQLModel, table=True):
    """One profile lifecycle event."""

    __tablename__ = "activity_log"

    id: int | None = Field(default=None, primary_key=True)
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC), index=True
    )
    event_type: str = Field(index=True)
    tool: str = Field(index=True)
    profile: str = Field(index=True)
    details: str | None = None
