"""Logging configuration settings."""

from pydantic import BaseModel, ConfigDict, Field, field_validator


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class LoggingSettings(BaseModel):
    level: str = Field(default="WARNING", description="Minimum log level")
    json_logs: bool = Field(
        default=False, alias="json", description="Emit JSON lines instead of console output"
    )
    file: str | None = Field(default=None, description="Optional log file")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("level", mode="before")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = str(v).upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"invalid log level {v!r}, expected one of {LOG_LEVELS}")
        return level
