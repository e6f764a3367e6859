"""Profile health data and status calculation."""

from datetime import UTC, datetime, timedelta
from enum import StrEnum

from pydantic import BaseModel, Field


# Penalty decays by this factor every PENALTY_DECAY_INTERVAL
PENALTY_DECAY_FACTOR = 0.8
PENALTY_DECAY_INTERVAL = timedelta(minutes=5)
PENALTY_FLOOR = 0.01

EXPIRY_WARNING_WINDOW = timedelta(hours=1)


class HealthStatus(StrEnum):
    """Coarse health of a profile, used by the smart rotation algorithm."""

    UNKNOWN = "unknown"
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class ProfileHealth(BaseModel):
    """Health record for one tool/profile pair."""

    token_expires_at: datetime | None = None
    last_error: datetime | None = None
    error_count_1h: int = 0
    penalty: float = Field(default=0.0, ge=0.0)
    penalty_updated_at: datetime | None = None
    plan_type: str = ""
    last_checked: datetime | None = None

    def add_penalty(self, amount: float, now: datetime | None = None) -> None:
        """Decay the current penalty to ``now`` and add ``amount``."""
        now = now or datetime.now(UTC)
        self.decay_penalty(now)
        self.penalty += amount
        self.penalty_updated_at = now

    def decay_penalty(self, now: datetime | None = None) -> None:
        """Apply exponential decay for every full interval since the last update."""
        if self.penalty <= 0 or self.penalty_updated_at is None:
            return
        now = now or datetime.now(UTC)
        elapsed = now - _as_utc(self.penalty_updated_at)
        intervals = int(elapsed / PENALTY_DECAY_INTERVAL)
        if intervals <= 0:
            return

        self.penalty *= PENALTY_DECAY_FACTOR**intervals
        if self.penalty < PENALTY_FLOOR:
            self.penalty = 0.0
        self.penalty_updated_at = now


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def penalty_for_error(error: BaseException | str | None) -> float:
    """Penalty weight for an error, heavier for auth failures than for throttling."""
    text = str(error or "").lower()
    if "401" in text or "unauthorized" in text or "invalid token" in text:
        return 1.0
    if "429" in text or "rate limit" in text or "too many requests" in text:
        return 0.5
    return 0.2


def calculate_status(
    health: ProfileHealth | None, now: datetime | None = None
) -> HealthStatus:
    """Derive a profile's status from token expiry and recent errors.

    An expired token or three or more errors in the last hour is critical.
    A token expiring within the hour or any recent error is a warning.
    """
    if health is None:
        return HealthStatus.UNKNOWN

    now = now or datetime.now(UTC)

    if health.token_expires_at is not None:
        remaining = _as_utc(health.token_expires_at) - now
        if remaining <= timedelta(0):
            return HealthStatus.CRITICAL
        if health.error_count_1h >= 3:
            return HealthStatus.CRITICAL
        if remaining < EXPIRY_WARNING_WINDOW or health.error_count_1h >= 1:
            return HealthStatus.WARNING
        return HealthStatus.HEALTHY

    if health.error_count_1h >= 3:
        return HealthStatus.CRITICAL
    if health.error_count_1h >= 1:
        return HealthStatus.WARNING
    return HealthStatus.HEALTHY
