"""Profile selection for rotation.

Three algorithms pick the next profile for a tool:

- ``smart`` scores every candidate on cooldown, health, recency and live
  usage, then takes the best.
- ``round_robin`` walks the sorted profile list after the current one.
- ``random`` picks uniformly among profiles not in cooldown.

System profiles (leading ``_``) are never candidates.
"""

import inspect
import random
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from structlog import get_logger

from agent_switch.exceptions import AllProfilesInCooldownError, NoProfilesError
from agent_switch.health.models import HealthStatus, ProfileHealth, calculate_status
from agent_switch.rotation.formatting import COOLDOWN_SCORE_THRESHOLD, format_duration
from agent_switch.rotation.models import (
    Algorithm,
    ProfileScore,
    Reason,
    SelectionResult,
    UsageInfo,
)
from agent_switch.vault.vault import is_system_profile


logger = get_logger(__name__)

DEFAULT_AVOID_RECENT = timedelta(minutes=30)

SMART_COOLDOWN_SCORE = -10000.0
SIMPLE_COOLDOWN_SCORE = -1000.0


class CooldownRecord(Protocol):
    cooldown_until: datetime


class CooldownStore(Protocol):
    """Anything that can say whether a profile is cooling down.

    Methods may be plain or ``async``.
    """

    def active_cooldown(
        self, tool: str, profile: str, now: datetime
    ) -> Any: ...  # CooldownRecord | None, or an awaitable of it


class ActivityStore(Protocol):
    def last_activation(self, tool: str, profile: str) -> Any: ...  # datetime | None


class HealthStore(Protocol):
    def get_profile(self, tool: str, profile: str) -> Any: ...  # ProfileHealth | None


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=UTC)


class RotationSelector:
    """Chooses which profile to switch to next."""

    def __init__(
        self,
        algorithm: Algorithm | str = Algorithm.SMART,
        *,
        cooldown_store: CooldownStore | None = None,
        activity_store: ActivityStore | None = None,
        health_store: HealthStore | None = None,
        rng: random.Random | None = None,
        avoid_recent: timedelta = DEFAULT_AVOID_RECENT,
    ) -> None:
        self.algorithm = (
            algorithm if isinstance(algorithm, Algorithm) else Algorithm.parse(algorithm)
        )
        self.cooldown_store = cooldown_store
        self.activity_store = activity_store
        self.health_store = health_store
        self._rng = rng or random.Random()
        self._avoid_recent = avoid_recent
        self._usage: dict[str, UsageInfo] = {}

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_avoid_recent(self, window: timedelta) -> None:
        self._avoid_recent = window

    def set_usage_data(self, usage: Mapping[str, UsageInfo] | None) -> None:
        """Live usage per profile name, consulted by the smart algorithm."""
        self._usage = dict(usage or {})

    def set_rng(self, rng: random.Random) -> None:
        self._rng = rng

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    async def select(
        self, tool: str, profiles: Sequence[str], current_profile: str = ""
    ) -> SelectionResult:
        """Pick the next profile for ``tool``.

        Raises:
            NoProfilesError: No user profiles among ``profiles``
            AllProfilesInCooldownError: Every candidate is cooling down
        """
        if not profiles:
            raise NoProfilesError(f"no profiles available for {tool}", tool=tool)

        available = [p for p in profiles if not is_system_profile(p)]
        if not available:
            raise NoProfilesError(
                f"no user profiles available for {tool} (only system profiles found)",
                tool=tool,
            )

        if len(available) == 1:
            only = available[0]
            return SelectionResult(
                selected=only,
                alternatives=[
                    ProfileScore(
                        name=only,
                        score=100,
                        reasons=[Reason("Only available profile", True)],
                    )
                ],
                algorithm=self.algorithm,
            )

        if self.algorithm == Algorithm.RANDOM:
            result = await self._select_random(tool, available)
        elif self.algorithm == Algorithm.ROUND_ROBIN:
            result = await self._select_round_robin(tool, available, current_profile)
        else:
            result = await self._select_smart(tool, available)

        logger.debug(
            "profile_selected",
            tool=tool,
            algorithm=str(result.algorithm),
            selected=result.selected,
            candidates=len(available),
        )
        return result

    async def _select_random(self, tool: str, profiles: list[str]) -> SelectionResult:
        now = datetime.now(UTC)
        eligible: list[str] = []
        in_cooldown: list[ProfileScore] = []

        for profile in profiles:
            remaining = await self._cooldown_remaining(tool, profile, now)
            if remaining is None:
                eligible.append(profile)
            else:
                in_cooldown.append(
                    self._cooldown_score(profile, remaining, SIMPLE_COOLDOWN_SCORE)
                )

        if not eligible:
            raise AllProfilesInCooldownError(tool)

        selected = eligible[self._rng.randrange(len(eligible))]

        alternatives = []
        for profile in eligible:
            reasons = [Reason("Random selection", True)]
            if profile == selected:
                reasons.append(Reason("Selected", True))
            alternatives.append(ProfileScore(name=profile, score=100, reasons=reasons))
        alternatives.extend(in_cooldown)

        return SelectionResult(
            selected=selected, alternatives=alternatives, algorithm=Algorithm.RANDOM
        )

    async def _select_round_robin(
        self, tool: str, profiles: list[str], current_profile: str
    ) -> SelectionResult:
        ordered = sorted(profiles)
        count = len(ordered)
        current_idx = (
            ordered.index(current_profile) if current_profile in ordered else -1
        )

        now = datetime.now(UTC)
        remaining_by_profile = {
            p: await self._cooldown_remaining(tool, p, now) for p in ordered
        }

        selected = ""
        for step in range(count):
            candidate = ordered[(current_idx + 1 + step) % count]
            if remaining_by_profile[candidate] is None:
                selected = candidate
                break

        if not selected:
            raise AllProfilesInCooldownError(tool)

        alternatives: list[ProfileScore] = []
        for idx, profile in enumerate(ordered):
            remaining = remaining_by_profile[profile]
            if remaining is not None:
                alternatives.append(
                    self._cooldown_score(profile, remaining, SIMPLE_COOLDOWN_SCORE)
                )
                continue

            position = (idx - current_idx + count) % count
            reasons = [Reason(f"Position {position} in rotation", True)]
            if profile == selected:
                reasons.append(Reason("Next in sequence", True))
            alternatives.append(
                ProfileScore(name=profile, score=float(count - position), reasons=reasons)
            )

        alternatives.sort(key=lambda s: s.score, reverse=True)
        return SelectionResult(
            selected=selected,
            alternatives=alternatives,
            algorithm=Algorithm.ROUND_ROBIN,
        )

    async def _select_smart(self, tool: str, profiles: list[str]) -> SelectionResult:
        now = datetime.now(UTC)
        scores: list[ProfileScore] = []

        for profile in profiles:
            remaining = await self._cooldown_remaining(tool, profile, now)
            if remaining is not None:
                scores.append(
                    self._cooldown_score(profile, remaining, SMART_COOLDOWN_SCORE)
                )
                continue

            score = ProfileScore(name=profile, score=0.0)
            if self.health_store is not None:
                await self._score_health(score, tool, profile, now)
            await self._score_recency(score, tool, profile, now)
            self._score_usage(score, profile)

            # Tie-breaker
            score.score += self._rng.random() * 5
            scores.append(score)

        scores.sort(key=lambda s: s.score, reverse=True)

        if scores[0].score < COOLDOWN_SCORE_THRESHOLD:
            raise AllProfilesInCooldownError(tool)

        return SelectionResult(
            selected=scores[0].name, alternatives=scores, algorithm=Algorithm.SMART
        )

    # ------------------------------------------------------------------
    # Scoring factors
    # ------------------------------------------------------------------

    async def _score_health(
        self, score: ProfileScore, tool: str, profile: str, now: datetime
    ) -> None:
        health: ProfileHealth | None = await self._lookup(
            "health", self.health_store, "get_profile", tool, profile
        )
        if health is None:
            score.reasons.append(Reason("No health data available", False))
            return

        status = calculate_status(health, now)
        expires_at = health.token_expires_at
        if status == HealthStatus.HEALTHY:
            score.score += 100
            if expires_at is not None:
                ttl = format_duration(_as_utc(expires_at) - now)
                score.reasons.append(Reason(f"Healthy token (expires in {ttl})", True))
            else:
                score.reasons.append(Reason("Healthy status", True))
        elif status == HealthStatus.WARNING:
            score.score += 50
            if expires_at is not None:
                ttl = format_duration(_as_utc(expires_at) - now)
                score.reasons.append(Reason(f"Token expiring soon ({ttl})", False))
        elif status == HealthStatus.CRITICAL:
            score.score -= 50
            score.reasons.append(
                Reason("Critical status (token expired or many errors)", False)
            )

        if health.penalty > 0:
            score.score -= health.penalty * 10
            score.reasons.append(
                Reason(f"Has penalty score ({health.penalty:.1f})", False)
            )

        plan = (health.plan_type or "").lower()
        if plan == "enterprise":
            score.score += 30
            score.reasons.append(Reason("Enterprise plan", True))
        elif plan == "pro":
            score.score += 20
            score.reasons.append(Reason("Pro plan", True))
        elif plan == "team":
            score.score += 20
            score.reasons.append(Reason("Team plan", True))

    async def _score_recency(
        self, score: ProfileScore, tool: str, profile: str, now: datetime
    ) -> None:
        last_used: datetime | None = await self._lookup(
            "activity", self.activity_store, "last_activation", tool, profile
        )
        if last_used is None:
            score.score += 25
            score.reasons.append(Reason("Never used before", True))
            return

        since = now - _as_utc(last_used)
        ago = format_duration(since)
        if since < self._avoid_recent:
            score.score -= (self._avoid_recent - since) / timedelta(hours=1) * 50
            score.reasons.append(Reason(f"Used recently ({ago} ago)", False))
        else:
            score.score += min(since / timedelta(hours=1) * 5, 50.0)
            score.reasons.append(Reason(f"Not used recently ({ago} ago)", True))

    def _score_usage(self, score: ProfileScore, profile: str) -> None:
        usage = self._usage.get(profile)
        if usage is None:
            return

        if usage.error:
            score.score -= 10
            score.reasons.append(Reason("Usage data unavailable", False))
            return

        score.score += usage.availability_score - 50

        primary = usage.primary_percent
        if primary >= 80:
            score.reasons.append(
                Reason(f"Primary limit {primary}% used (near limit)", False)
            )
        elif primary <= 30:
            score.reasons.append(
                Reason(f"Primary limit {primary}% used (plenty available)", True)
            )
        else:
            score.reasons.append(Reason(f"Primary limit {primary}% used", True))

        secondary = usage.secondary_percent
        if secondary >= 80:
            score.score -= 30
            score.reasons.append(
                Reason(f"Secondary limit {secondary}% used (near limit)", False)
            )

    # ------------------------------------------------------------------
    # Store access
    # ------------------------------------------------------------------

    async def _cooldown_remaining(
        self, tool: str, profile: str, now: datetime
    ) -> timedelta | None:
        """Time left in an active cooldown, or None when not cooling down."""
        record: CooldownRecord | None = await self._lookup(
            "cooldown", self.cooldown_store, "active_cooldown", tool, profile, now
        )
        if record is None:
            return None
        return max(_as_utc(record.cooldown_until) - now, timedelta(0))

    @staticmethod
    def _cooldown_score(
        profile: str, remaining: timedelta, score: float
    ) -> ProfileScore:
        return ProfileScore(
            name=profile,
            score=score,
            reasons=[
                Reason(f"In cooldown ({format_duration(remaining)} remaining)", False)
            ],
        )

    @staticmethod
    async def _lookup(
        kind: str, store: Any, method: str, tool: str, profile: str, *args: Any
    ) -> Any:
        """Query a store; failures count as "no data"."""
        if store is None:
            return None
        try:
            return await _resolve(getattr(store, method)(tool, profile, *args))
        except Exception as e:
            logger.warning(
                "rotation_store_lookup_failed",
                store=kind,
                tool=tool,
                profile=profile,
                error=str(e),
            )
            return None
