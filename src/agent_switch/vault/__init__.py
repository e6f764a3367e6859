"""Vault of per-tool auth file profiles."""

from agent_switch.vault.authfiles import KNOWN_TOOLS, get_auth_file_set
from agent_switch.vault.models import (
    AuthFileSet,
    AuthFileSpec,
    CreatedBy,
    ProfileMeta,
    ProfileType,
)
from agent_switch.vault.vault import (
    AUTO_BACKUP_PREFIX,
    ORIGINAL_PROFILE,
    Vault,
    clear_auth_files,
    default_vault_path,
    has_auth_files,
    is_system_profile,
)


__all__ = [
    "AUTO_BACKUP_PREFIX",
    "AuthFileSet",
    "AuthFileSpec",
    "CreatedBy",
    "KNOWN_TOOLS",
    "ORIGINAL_PROFILE",
    "ProfileMeta",
    "ProfileType",
    "Vault",
    "clear_auth_files",
    "default_vault_path",
    "get_auth_file_set",
    "has_auth_files",
    "is_system_profile",
]
