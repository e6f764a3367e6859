"""Settings configuration for agent-switch."""

import tomllib
from pathlib import Path
from typing import Any

import structlog
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from agent_switch.config.discovery import find_toml_config_file
from agent_switch.exceptions import ConfigurationError

from .handoff import HandoffSettings
from .logging_settings import LoggingSettings
from .patterns import LoginPatternSettings, RateLimitSettings
from .rotation import RotationSettings
from .storage import DatabaseSettings, HealthSettings
from .vault import VaultSettings


__all__ = [
    "Settings",
    "ConfigurationError",
    "get_settings",
]

logger = structlog.get_logger(__name__)


def _coerce_settings(value: Any, settings_class: type) -> Any:
    """Coerce value to settings class instance.

    Handles: None → default, dict → instance, passthrough existing instances.
    """
    if value is None:
        return settings_class()
    if isinstance(value, settings_class):
        return value
    if isinstance(value, dict):
        return settings_class(**value)
    if hasattr(value, "model_dump"):
        return settings_class(**value.model_dump())
    return value


class Settings(BaseSettings):
    """
    Configuration settings for agent-switch.

    Values come from (highest precedence first) keyword overrides, the
    TOML file, AGENT_SWITCH_* environment variables and a .env file.
    Nested sections use a double underscore, e.g.
    ``AGENT_SWITCH_HANDOFF__AUTO_TRIGGER=false``.
    """

    model_config = SettingsConfigDict(
        env_prefix="AGENT_SWITCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    vault: VaultSettings = Field(
        default_factory=VaultSettings,
        description="Vault location and automatic backup policy",
    )

    rotation: RotationSettings = Field(
        default_factory=RotationSettings,
        description="Profile selection settings",
    )

    handoff: HandoffSettings = Field(
        default_factory=HandoffSettings,
        description="Automatic handoff settings",
    )

    rate_limit_patterns: RateLimitSettings = Field(
        default_factory=RateLimitSettings,
        description="Per-provider rate limit regexes",
    )

    login_patterns: LoginPatternSettings = Field(
        default_factory=LoginPatternSettings,
        description="Per-provider login success and failure regexes",
    )

    database: DatabaseSettings = Field(
        default_factory=DatabaseSettings,
        description="Cooldown and activity database settings",
    )

    health: HealthSettings = Field(
        default_factory=HealthSettings,
        description="Profile health store settings",
    )

    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Logging settings",
    )

    @field_validator("vault", mode="before")
    @classmethod
    def validate_vault(cls, v: Any) -> Any:
        return _coerce_settings(v, VaultSettings)

    @field_validator("rotation", mode="before")
    @classmethod
    def validate_rotation(cls, v: Any) -> Any:
        return _coerce_settings(v, RotationSettings)

    @field_validator("handoff", mode="before")
    @classmethod
    def validate_handoff(cls, v: Any) -> Any:
        return _coerce_settings(v, HandoffSettings)

    @field_validator("rate_limit_patterns", mode="before")
    @classmethod
    def validate_rate_limit_patterns(cls, v: Any) -> Any:
        return _coerce_settings(v, RateLimitSettings)

    @field_validator("login_patterns", mode="before")
    @classmethod
    def validate_login_patterns(cls, v: Any) -> Any:
        return _coerce_settings(v, LoginPatternSettings)

    @field_validator("database", mode="before")
    @classmethod
    def validate_database(cls, v: Any) -> Any:
        return _coerce_settings(v, DatabaseSettings)

    @field_validator("health", mode="before")
    @classmethod
    def validate_health(cls, v: Any) -> Any:
        return _coerce_settings(v, HealthSettings)

    @field_validator("logging", mode="before")
    @classmethod
    def validate_logging(cls, v: Any) -> Any:
        return _coerce_settings(v, LoggingSettings)

    @classmethod
    def load_toml_config(cls, toml_path: Path) -> dict[str, Any]:
        """Load configuration from a TOML file.

        Raises:
            ValueError: If the TOML file is invalid or cannot be read
        """
        try:
            with toml_path.open("rb") as f:
                return tomllib.load(f)
        except OSError as e:
            raise ValueError(f"Cannot read TOML config file {toml_path}: {e}") from e
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML syntax in {toml_path}: {e}") from e

    @classmethod
    def load_config_file(cls, config_path: Path) -> dict[str, Any]:
        """Load configuration from a file based on its extension."""
        suffix = config_path.suffix.lower()

        if suffix == ".toml":
            return cls.load_toml_config(config_path)
        raise ValueError(
            f"Unsupported config file format: {suffix}. "
            "Only TOML (.toml) files are supported."
        )

    @classmethod
    def from_config(
        cls, config_path: Path | str | None = None, **kwargs: Any
    ) -> "Settings":
        """Create Settings instance from configuration file.

        Args:
            config_path: Path to configuration file. If None, auto-discovers one
                (see :func:`find_toml_config_file`).
            **kwargs: Additional keyword arguments to override config values
        """
        if isinstance(config_path, str):
            config_path = Path(config_path)

        if config_path is None:
            config_path = find_toml_config_file()
        elif not config_path.exists():
            raise ValueError(f"Config file not found: {config_path}")

        config_data: dict[str, Any] = {}
        if config_path is not None:
            config_data = cls.load_config_file(config_path)
            logger.debug("config_loaded", path=str(config_path))

        merged_config = dict(config_data)
        for key, value in kwargs.items():
            if isinstance(value, dict) and isinstance(merged_config.get(key), dict):
                merged_config[key] = {**merged_config[key], **value}
            else:
                merged_config[key] = value
        return cls(**merged_config)


def get_settings(
    config_path: Path | str | None = None, **overrides: Any
) -> Settings:
    """Load settings from the config file, environment and ``overrides``.

    Raises:
        ConfigurationError: If the file cannot be read or a value is invalid
    """
    try:
        return Settings.from_config(config_path=config_path, **overrides)
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Configuration error: {e}") from e
