"""On-disk vault of per-tool auth file snapshots.

Layout::

    <base>/<tool>/<profile>/<basename of each auth file>
    <base>/<tool>/<profile>/meta.json

Profiles whose name starts with ``_`` are system profiles managed by
agent-switch itself (``_original`` and ``_backup_<timestamp>``). They can't be
overwritten or deleted without ``delete_force``.
"""

from __future__ import annotations

import hashlib
import os
import shutil
import tempfile
from datetime import UTC, datetime
from pathlib import Path

import orjson
from structlog import get_logger

from agent_switch.core.system import get_app_data_dir
from agent_switch.exceptions import (
    ProfileNotFoundError,
    ProtectedProfileError,
    RequiredFileMissingError,
    VaultError,
)
from agent_switch.vault.models import (
    AuthFileSet,
    CreatedBy,
    ProfileMeta,
    ProfileType,
)
from agent_switch.vault.paths import safe_join, validate_segment


logger = get_logger(__name__)

ORIGINAL_PROFILE = "_original"
AUTO_BACKUP_PREFIX = "_backup_"
AUTO_BACKUP_TIME_FORMAT = "%Y%m%d_%H%M%S"
META_FILENAME = "meta.json"

DIR_MODE = 0o700
FILE_MODE = 0o600


def is_system_profile(name: str) -> bool:
    """Return True for profiles managed by agent-switch (leading underscore)."""
    return name.startswith("_")


def has_auth_files(file_set: AuthFileSet) -> bool:
    """Return True if any required auth file for the tool is present."""
    return any(spec.path.exists() for spec in file_set.required_files)


def clear_auth_files(file_set: AuthFileSet) -> None:
    """Remove every live auth file for the tool (logout)."""
    for spec in file_set.files:
        try:
            spec.path.unlink()
        except FileNotFoundError:
            continue
        except OSError as e:
            raise VaultError(
                f"failed to remove {spec.path}: {e}", details={"path": str(spec.path)}
            ) from e
    logger.info("auth_files_cleared", tool=file_set.tool)


def default_vault_path() -> Path:
    """Default vault location under the user data directory."""
    return get_app_data_dir() / "vault"


def hash_file(path: Path) -> str:
    """SHA-256 hex digest of a file's contents."""
    digest = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _atomic_copy(src: Path, dest: Path) -> None:
    _atomic_write_bytes(dest, src.read_bytes())


def _atomic_write_bytes(dest: Path, data: bytes) -> None:
    """Write ``data`` to ``dest`` through a per-call unique temp file.

    The temp file lives next to ``dest`` so the final rename stays on one
    filesystem. Concurrent writers to the same destination never share a
    temp file.
    """
    fd, tmp_name = tempfile.mkstemp(
        dir=dest.parent, prefix=f".{dest.name}.", suffix=".tmp"
    )
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, FILE_MODE)
        os.replace(tmp_path, dest)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


class Vault:
    """Backup and restore store for tool auth files, one directory per profile."""

    def __init__(self, base_path: Path | str | None = None) -> None:
        self.base_path = (
            Path(base_path).expanduser() if base_path else default_vault_path()
        )

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def tool_path(self, tool: str) -> Path:
        return safe_join(self.base_path, ("tool", tool))

    def profile_path(self, tool: str, profile: str) -> Path:
        """Directory holding ``profile``'s files for ``tool``.

        Raises:
            ValidationError: If either name is not a safe path segment
        """
        return safe_join(self.base_path, ("tool", tool), ("profile", profile))

    def backup_path(self, tool: str, profile: str, filename: str) -> Path:
        """Vault location of one stored auth file."""
        validate_segment("filename", filename)
        return self.profile_path(tool, profile) / filename

    # ------------------------------------------------------------------
    # Backup / restore
    # ------------------------------------------------------------------

    def backup(self, file_set: AuthFileSet, profile: str) -> None:
        """Copy the tool's live auth files into the vault as ``profile``.

        Required files that are missing abort the backup. Optional ones are
        skipped. ``meta.json`` is written only after every file was copied.

        Raises:
            ValidationError: Invalid name or a required auth file is missing
            ProtectedProfileError: ``profile`` is a system profile that exists
            VaultError: I/O failure, or nothing could be copied
        """
        profile_dir = self.profile_path(file_set.tool, profile)
        system = is_system_profile(profile)

        if profile_dir.exists() or profile_dir.is_symlink():
            if not profile_dir.is_dir():
                raise VaultError(
                    f"vault path exists but is not a directory: {profile_dir}",
                    details={"path": str(profile_dir)},
                )
            if system:
                raise ProtectedProfileError(file_set.tool, profile, "overwrite")

        try:
            profile_dir.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
            os.chmod(profile_dir, DIR_MODE)
        except OSError as e:
            raise VaultError(f"create vault dir: {e}") from e

        copied: list[str] = []
        for spec in file_set.files:
            if not spec.path.exists():
                if spec.required:
                    raise RequiredFileMissingError(str(spec.path))
                continue

            dest = profile_dir / spec.basename
            try:
                _atomic_copy(spec.path, dest)
            except OSError as e:
                raise VaultError(
                    f"backup {spec.path}: {e}", details={"path": str(spec.path)}
                ) from e
            copied.append(str(spec.path))

        if not copied:
            raise VaultError(
                f"no auth files found to backup for {file_set.tool}",
                details={"tool": file_set.tool},
            )

        if profile == ORIGINAL_PROFILE:
            created_by = CreatedBy.FIRST_ACTIVATE
        elif system:
            created_by = CreatedBy.AUTO
        else:
            created_by = CreatedBy.USER

        meta = ProfileMeta(
            tool=file_set.tool,
            profile=profile,
            backed_up_at=datetime.now(UTC),
            files=len(copied),
            type=ProfileType.SYSTEM if system else ProfileType.USER,
            created_by=created_by,
            original_paths=copied,
        )
        try:
            _atomic_write_bytes(
                profile_dir / META_FILENAME,
                orjson.dumps(meta.to_dict(), option=orjson.OPT_INDENT_2),
            )
        except OSError as e:
            raise VaultError(f"write metadata: {e}") from e

        logger.info(
            "vault_backup_complete",
            tool=file_set.tool,
            profile=profile,
            files=len(copied),
        )

    def restore(self, file_set: AuthFileSet, profile: str) -> None:
        """Copy ``profile``'s stored files back to the tool's live locations.

        Raises:
            ValidationError: Invalid name or a required backup file is missing
            ProfileNotFoundError: The profile directory does not exist
            VaultError: I/O failure, or nothing could be restored
        """
        profile_dir = self.profile_path(file_set.tool, profile)
        if not profile_dir.is_dir():
            raise ProfileNotFoundError(file_set.tool, profile)

        restored = 0
        for spec in file_set.files:
            src = profile_dir / spec.basename
            if not src.exists():
                if spec.required:
                    raise RequiredFileMissingError(str(src), backup=True)
                continue

            try:
                spec.path.parent.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
                _atomic_copy(src, spec.path)
            except OSError as e:
                raise VaultError(
                    f"restore {spec.path}: {e}", details={"path": str(spec.path)}
                ) from e
            restored += 1

        if restored == 0:
            raise VaultError(
                f"no files restored for {file_set.tool}/{profile}",
                details={"tool": file_set.tool, "profile": profile},
            )

        logger.info(
            "vault_restore_complete",
            tool=file_set.tool,
            profile=profile,
            files=restored,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list(self, tool: str) -> list[str]:
        """Sorted profile names stored for ``tool``."""
        tool_dir = self.tool_path(tool)
        try:
            entries = list(tool_dir.iterdir())
        except FileNotFoundError:
            return []
        except OSError as e:
            raise VaultError(f"list profiles for {tool}: {e}") from e
        return sorted(entry.name for entry in entries if entry.is_dir())

    def list_all(self) -> dict[str, list[str]]:
        """Profiles for every tool that has at least one."""
        try:
            entries = sorted(self.base_path.iterdir())
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise VaultError(f"list vault: {e}") from e

        result: dict[str, list[str]] = {}
        for entry in entries:
            if not entry.is_dir():
                continue
            profiles = self.list(entry.name)
            if profiles:
                result[entry.name] = profiles
        return result

    def read_meta(self, tool: str, profile: str) -> ProfileMeta | None:
        """Parsed meta.json for a profile, or None if absent or unreadable."""
        meta_path = self.profile_path(tool, profile) / META_FILENAME
        try:
            data = orjson.loads(meta_path.read_bytes())
            return ProfileMeta.from_dict(data)
        except FileNotFoundError:
            return None
        except (OSError, orjson.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning(
                "vault_meta_unreadable", tool=tool, profile=profile, error=str(e)
            )
            return None

    def active_profile(self, file_set: AuthFileSet) -> str:
        """Name of the stored profile matching the live auth files, or "".

        User profiles are checked before system profiles, each group in name
        order. A profile matches when every currently present auth file has a
        same-named stored copy with identical content.
        """
        current: dict[str, str] = {}
        for spec in file_set.files:
            if not spec.path.exists():
                continue
            try:
                current[spec.basename] = hash_file(spec.path)
            except OSError:
                continue

        if not current:
            return ""

        profiles = self.list(file_set.tool)
        ordered = [p for p in profiles if not is_system_profile(p)] + [
            p for p in profiles if is_system_profile(p)
        ]

        for profile in ordered:
            profile_dir = self.profile_path(file_set.tool, profile)
            if self._matches(profile_dir, current):
                return profile
        return ""

    @staticmethod
    def _matches(profile_dir: Path, current: dict[str, str]) -> bool:
        for filename, digest in current.items():
            try:
                if hash_file(profile_dir / filename) != digest:
                    return False
            except OSError:
                return False
        return True

    def has_original_backup(self, tool: str) -> bool:
        return self.profile_path(tool, ORIGINAL_PROFILE).is_dir()

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def delete(self, tool: str, profile: str) -> None:
        """Remove a user profile.

        Raises:
            ProtectedProfileError: ``profile`` is a system profile
            ProfileNotFoundError: The profile does not exist
        """
        profile_dir = self.profile_path(tool, profile)
        if is_system_profile(profile):
            raise ProtectedProfileError(tool, profile, "delete")
        self._remove(tool, profile, profile_dir)

    def delete_force(self, tool: str, profile: str) -> None:
        """Remove any profile, system profiles included."""
        self._remove(tool, profile, self.profile_path(tool, profile))

    def _remove(self, tool: str, profile: str, profile_dir: Path) -> None:
        if not profile_dir.is_dir():
            raise ProfileNotFoundError(tool, profile)
        try:
            shutil.rmtree(profile_dir)
        except OSError as e:
            raise VaultError(f"delete {tool}/{profile}: {e}") from e
        logger.info("vault_profile_deleted", tool=tool, profile=profile)

    # ------------------------------------------------------------------
    # System snapshots
    # ------------------------------------------------------------------

    def backup_original(self, file_set: AuthFileSet) -> bool:
        """Snapshot the pre-agent-switch login state as ``_original`` once.

        Returns:
            True if a snapshot was created
        """
        if self.has_original_backup(file_set.tool):
            return False
        if not has_auth_files(file_set):
            return False
        if self.active_profile(file_set):
            return False

        self.backup(file_set, ORIGINAL_PROFILE)
        logger.info("vault_original_backed_up", tool=file_set.tool)
        return True

    def backup_current(self, file_set: AuthFileSet) -> str:
        """Snapshot the live auth files as ``_backup_<YYYYMMDD_HHMMSS>``.

        Returns:
            The snapshot name, or "" when no required auth file is present
        """
        if not has_auth_files(file_set):
            return ""

        name = AUTO_BACKUP_PREFIX + datetime.now().strftime(AUTO_BACKUP_TIME_FORMAT)
        self.backup(file_set, name)
        return name

    def rotate_auto_backups(self, tool: str, max_backups: int) -> list[str]:
        """Delete the oldest ``_backup_*`` profiles beyond ``max_backups``.

        ``max_backups <= 0`` keeps everything.

        Returns:
            Names of deleted profiles, oldest first
        """
        if max_backups <= 0:
            return []

        backups = sorted(
            p for p in self.list(tool) if p.startswith(AUTO_BACKUP_PREFIX)
        )
        excess = len(backups) - max_backups
        if excess <= 0:
            return []

        deleted = backups[:excess]
        for name in deleted:
            self.delete_force(tool, name)

        logger.info("vault_auto_backups_rotated", tool=tool, deleted=deleted)
        return deleted
