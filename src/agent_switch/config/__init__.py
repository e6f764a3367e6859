"""Configuration module for agent-switch."""

from .discovery import find_git_root, find_toml_config_file
from .handoff import HandoffSettings
from .logging_settings import LoggingSettings
from .patterns import LoginPatternSet, LoginPatternSettings, RateLimitSettings
from .rotation import RotationSettings
from .settings import (
    ConfigurationError,
    Settings,
    get_settings,
)
from .storage import DatabaseSettings, HealthSettings
from .vault import AutoBackupMode, VaultSettings


__all__ = [
    "AutoBackupMode",
    "ConfigurationError",
    "DatabaseSettings",
    "HandoffSettings",
    "HealthSettings",
    "LoggingSettings",
    "LoginPatternSet",
    "LoginPatternSettings",
    "RateLimitSettings",
    "RotationSettings",
    "Settings",
    "VaultSettings",
    "find_git_root",
    "find_toml_config_file",
    "get_settings",
]
