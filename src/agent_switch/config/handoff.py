"""Handoff configuration settings."""

from pydantic import BaseModel, Field


class HandoffSettings(BaseModel):
    """Automatic rate-limit handoff configuration settings."""

    auto_trigger: bool = Field(
        default=True,
        description="Switch profiles automatically when a rate limit is detected",
    )

    debounce_delay_seconds: float = Field(
        default=2.0,
        description="Debounce delay; the login wait is ten times this value",
        ge=0,
    )

    min_login_timeout_seconds: float = Field(
        default=30.0,
        description="Lower bound for the login wait",
        gt=0,
    )

    max_retries: int = Field(
        default=1,
        description="Consecutive failed handoffs tolerated before manual mode",
        ge=0,
    )

    fallback_to_manual: bool = Field(
        default=True,
        description="Show manual switching instructions once retries run out",
    )

    exit_grace_seconds: float = Field(
        default=5.0,
        description="How long an in-flight handoff may finish after the CLI exits",
        ge=0,
    )

    poll_interval_seconds: float = Field(
        default=0.01,
        description="Output polling interval",
        gt=0,
    )

    @property
    def login_timeout(self) -> float:
        """Seconds to wait for a login marker after injecting the login command."""
        return max(self.debounce_delay_seconds * 10, self.min_login_timeout_seconds)
