"""In-memory auth pool tracking per-profile cooldowns and usage.

The pool backs rotation when no database is configured and mirrors every
cooldown the handoff controller sets, so a single session never switches
back to a profile it just left.
"""

import threading
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum

from structlog import get_logger


logger = get_logger(__name__)

DEFAULT_COOLDOWN = timedelta(minutes=60)


class PoolState(StrEnum):
    """Profile availability states."""

    AVAILABLE = "available"
    COOLDOWN = "cooldown"


@dataclass
class PoolEntry:
    """Runtime state for one tool/profile pair."""

    tool: str
    profile: str
    state: PoolState = PoolState.AVAILABLE
    hit_at: datetime | None = None
    cooldown_until: datetime | None = None
    notes: str | None = None
    last_used: datetime | None = None
    use_count: int = 0


@dataclass(frozen=True)
class PoolCooldown:
    """Snapshot of an active cooldown, shaped like the database record."""

    tool: str
    profile: str
    hit_at: datetime
    cooldown_until: datetime
    notes: str | None = None


class AuthPool:
    """Thread-safe registry of profile cooldowns for one process."""

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], PoolEntry] = {}
        self._lock = threading.Lock()

    def _entry(self, tool: str, profile: str) -> PoolEntry:
        key = (tool, profile)
        entry = self._entries.get(key)
        if entry is None:
            entry = PoolEntry(tool=tool, profile=profile)
            self._entries[key] = entry
        return entry

    @staticmethod
    def _expire(entry: PoolEntry, now: datetime) -> None:
        if (
            entry.state == PoolState.COOLDOWN
            and entry.cooldown_until is not None
            and now >= entry.cooldown_until
        ):
            entry.state = PoolState.AVAILABLE
            entry.hit_at = None
            entry.cooldown_until = None
            entry.notes = None
            logger.info("pool_cooldown_expired", tool=entry.tool, profile=entry.profile)

    def set_cooldown(
        self,
        tool: str,
        profile: str,
        duration: timedelta = DEFAULT_COOLDOWN,
        notes: str | None = None,
    ) -> PoolCooldown:
        """Put a profile in cooldown for ``duration`` starting now."""
        now = datetime.now(UTC)
        with self._lock:
            entry = self._entry(tool, profile)
            entry.state = PoolState.COOLDOWN
            entry.hit_at = now
            entry.cooldown_until = now + duration
            entry.notes = notes

        logger.info(
            "pool_cooldown_set",
            tool=tool,
            profile=profile,
            until=entry.cooldown_until.isoformat(),
        )
        return PoolCooldown(
            tool=tool,
            profile=profile,
            hit_at=now,
            cooldown_until=now + duration,
            notes=notes,
        )

    def active_cooldown(
        self, tool: str, profile: str, now: datetime | None = None
    ) -> PoolCooldown | None:
        """Active cooldown for a profile, or None."""
        now = now or datetime.now(UTC)
        with self._lock:
            entry = self._entries.get((tool, profile))
            if entry is None:
                return None
            self._expire(entry, now)
            if entry.state != PoolState.COOLDOWN:
                return None
            assert entry.hit_at is not None and entry.cooldown_until is not None
            return PoolCooldown(
                tool=tool,
                profile=profile,
                hit_at=entry.hit_at,
                cooldown_until=entry.cooldown_until,
                notes=entry.notes,
            )

    def in_cooldown(self, tool: str, profile: str) -> bool:
        return self.active_cooldown(tool, profile) is not None

    def cooldown_remaining(self, tool: str, profile: str) -> timedelta:
        """Time left in the cooldown (zero when not cooling down)."""
        now = datetime.now(UTC)
        cooldown = self.active_cooldown(tool, profile, now)
        if cooldown is None:
            return timedelta(0)
        return max(cooldown.cooldown_until - now, timedelta(0))

    def clear_cooldown(self, tool: str, profile: str) -> bool:
        """Make a profile available again.

        Returns:
            True if the profile was cooling down
        """
        with self._lock:
            entry = self._entries.get((tool, profile))
            if entry is None or entry.state != PoolState.COOLDOWN:
                return False
            entry.state = PoolState.AVAILABLE
            entry.hit_at = None
            entry.cooldown_until = None
            entry.notes = None
        logger.info("pool_cooldown_cleared", tool=tool, profile=profile)
        return True

    def mark_used(self, tool: str, profile: str) -> None:
        with self._lock:
            entry = self._entry(tool, profile)
            entry.last_used = datetime.now(UTC)
            entry.use_count += 1

    def get_status(self, tool: str | None = None) -> list[PoolEntry]:
        """Copies of every tracked entry, optionally for one tool."""
        now = datetime.now(UTC)
        with self._lock:
            entries = []
            for entry in self._entries.values():
                if tool is not None and entry.tool != tool:
                    continue
                self._expire(entry, now)
                entries.append(PoolEntry(**vars(entry)))
        return sorted(entries, key=lambda e: (e.tool, e.profile))
