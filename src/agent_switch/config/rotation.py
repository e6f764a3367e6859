"""Rotation configuration settings."""

from pydantic import BaseModel, Field, field_validator

from agent_switch.exceptions import ValidationError
from agent_switch.rotation.models import Algorithm


class RotationSettings(BaseModel):
    """Profile selection configuration settings."""

    algorithm: Algorithm = Field(
        default=Algorithm.SMART,
        description="Selection algorithm: smart, round_robin or random",
    )

    avoid_recent_minutes: float = Field(
        default=30.0,
        description="Penalize profiles activated within this many minutes",
        ge=0,
    )

    cooldown_minutes: float = Field(
        default=60.0,
        description="How long a rate-limited profile is skipped",
        gt=0,
    )

    @field_validator("algorithm", mode="before")
    @classmethod
    def parse_algorithm(cls, v: str | Algorithm) -> Algorithm:
        if isinstance(v, Algorithm):
            return v
        try:
            return Algorithm.parse(str(v))
        except ValidationError as e:
            raise ValueError(e.message) from e
