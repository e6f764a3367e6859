"""JSON file storage for profile health."""

import os
import tempfile
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import orjson
from pydantic import ValidationError as PydanticValidationError
from structlog import get_logger

from agent_switch.core.system import get_app_data_dir
from agent_switch.health.models import (
    HealthStatus,
    ProfileHealth,
    calculate_status,
    penalty_for_error,
)


logger = get_logger(__name__)

STORE_VERSION = 1


def default_health_path() -> Path:
    return get_app_data_dir() / "health.json"


def profile_key(tool: str, profile: str) -> str:
    return f"{tool}/{profile}"


class HealthStorage:
    """JSON file storage for per-profile health records.

    Records are keyed ``"<tool>/<profile>"``. Every mutation is a locked
    read-modify-write followed by an atomic rename, and a corrupted file is
    treated as empty so the next save overwrites it.
    """

    def __init__(self, file_path: Path | None = None) -> None:
        """Initialize storage with file path.

        Args:
            file_path: Path to health.json, defaults to the user data directory
        """
        self.file_path = file_path or default_health_path()
        self._lock = threading.RLock()

    def _load_all(self) -> dict[str, dict[str, Any]]:
        if not self.file_path.exists():
            return {}

        try:
            data = orjson.loads(self.file_path.read_bytes())
        except orjson.JSONDecodeError:
            logger.warning("health_file_corrupted", path=str(self.file_path))
            return {}

        if not isinstance(data, dict):
            logger.warning("health_file_corrupted", path=str(self.file_path))
            return {}
        profiles: dict[str, dict[str, Any]] = data.get("profiles") or {}
        return profiles

    def _save_all(self, profiles: dict[str, dict[str, Any]]) -> None:
        """Write every record atomically.

        Raises:
            OSError: If the file cannot be written
        """
        self.file_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        data = {
            "version": STORE_VERSION,
            "profiles": profiles,
            "updated_at": datetime.now(UTC).isoformat(),
        }
        fd, tmp_name = tempfile.mkstemp(
            dir=self.file_path.parent, prefix=".health.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(orjson.dumps(data, option=orjson.OPT_INDENT_2))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.file_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _mutate(
        self, tool: str, profile: str, change: Callable[[ProfileHealth], None]
    ) -> ProfileHealth:
        with self._lock:
            profiles = self._load_all()
            key = profile_key(tool, profile)
            health = self._parse(key, profiles.get(key)) or ProfileHealth()
            change(health)
            profiles[key] = health.model_dump(mode="json")
            self._save_all(profiles)
            return health

    @staticmethod
    def _parse(key: str, raw: dict[str, Any] | None) -> ProfileHealth | None:
        if raw is None:
            return None
        try:
            return ProfileHealth.model_validate(raw)
        except PydanticValidationError:
            logger.warning("health_record_invalid", profile=key)
            return None

    def get_profile(self, tool: str, profile: str) -> ProfileHealth | None:
        """Health record for a profile, or None if nothing is stored."""
        with self._lock:
            key = profile_key(tool, profile)
            return self._parse(key, self._load_all().get(key))

    def update_profile(self, tool: str, profile: str, health: ProfileHealth) -> None:
        with self._lock:
            profiles = self._load_all()
            profiles[profile_key(tool, profile)] = health.model_dump(mode="json")
            self._save_all(profiles)

    def delete_profile(self, tool: str, profile: str) -> bool:
        with self._lock:
            profiles = self._load_all()
            if profiles.pop(profile_key(tool, profile), None) is None:
                return False
            self._save_all(profiles)
            return True

    def record_error(
        self, tool: str, profile: str, error: BaseException | str | None = None
    ) -> ProfileHealth:
        """Count an error against a profile and add the matching penalty."""
        now = datetime.now(UTC)

        def change(health: ProfileHealth) -> None:
            health.error_count_1h += 1
            health.last_error = now
            health.add_penalty(penalty_for_error(error), now)

        health = self._mutate(tool, profile, change)
        logger.info(
            "health_error_recorded",
            tool=tool,
            profile=profile,
            error_count=health.error_count_1h,
            penalty=round(health.penalty, 2),
        )
        return health

    def clear_errors(self, tool: str, profile: str) -> None:
        """Reset the error count. The penalty is left to decay."""

        def change(health: ProfileHealth) -> None:
            health.error_count_1h = 0
            health.last_error = None

        self._mutate(tool, profile, change)

    def set_token_expiry(self, tool: str, profile: str, expires_at: datetime) -> None:
        def change(health: ProfileHealth) -> None:
            health.token_expires_at = expires_at
            health.last_checked = datetime.now(UTC)

        self._mutate(tool, profile, change)

    def set_plan_type(self, tool: str, profile: str, plan_type: str) -> None:
        def change(health: ProfileHealth) -> None:
            health.plan_type = plan_type

        self._mutate(tool, profile, change)

    def decay_penalties(self, now: datetime | None = None) -> int:
        """Decay every stored penalty.

        Returns:
            Number of records whose penalty changed
        """
        now = now or datetime.now(UTC)
        with self._lock:
            profiles = self._load_all()
            changed = 0
            for key, raw in profiles.items():
                health = self._parse(key, raw)
                if health is None:
                    continue
                before = health.penalty
                health.decay_penalty(now)
                if health.penalty != before:
                    profiles[key] = health.model_dump(mode="json")
                    changed += 1
            if changed:
                self._save_all(profiles)
            return changed

    def get_status(self, tool: str, profile: str) -> HealthStatus:
        return calculate_status(self.get_profile(tool, profile))

    def list_profiles(self) -> dict[str, ProfileHealth]:
        """All valid records keyed ``"<tool>/<profile>"``."""
        with self._lock:
            result = {}
            for key, raw in self._load_all().items():
                health = self._parse(key, raw)
                if health is not None:
                    result[key] = health
            return result
