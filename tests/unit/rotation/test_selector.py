"""Tests for profile selection."""

import random
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

import pytest

from agent_switch.exceptions import (
    AllProfilesInCooldownError,
    NoProfilesError,
    ValidationError,
)
from agent_switch.health.models import ProfileHealth
from agent_switch.rotation.models import Algorithm, UsageInfo
from agent_switch.rotation.pool import AuthPool
from agent_switch.rotation.selector import (
    SIMPLE_COOLDOWN_SCORE,
    SMART_COOLDOWN_SCORE,
    RotationSelector,
)


class ExplodingStore:
    """Store whose every method raises."""

    def __getattr__(self, name):
        def method(*args, **kwargs):
            raise RuntimeError(f"{name} unavailable")

        return method


class FakeActivity:
    def __init__(self, last_used: dict[str, datetime]) -> None:
        self.last_used = last_used

    async def last_activation(self, tool: str, profile: str) -> datetime | None:
        return self.last_used.get(profile)


class FakeHealth:
    def __init__(self, records: dict[str, ProfileHealth]) -> None:
        self.records = records

    def get_profile(self, tool: str, profile: str) -> ProfileHealth | None:
        return self.records.get(profile)


class FakeCooldowns:
    def __init__(self, cooling: set[str]) -> None:
        self.cooling = cooling

    async def active_cooldown(self, tool: str, profile: str, now: datetime):
        if profile in self.cooling:
            return SimpleNamespace(cooldown_until=now + timedelta(minutes=20))
        return None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_empty_and_system_only_inputs_rejected() -> None:
    selector = RotationSelector(Algorithm.SMART)

    with pytest.raises(NoProfilesError):
        await selector.select("claude", [])
    with pytest.raises(NoProfilesError, match="only system profiles"):
        await selector.select("claude", ["_original", "_backup_20250101_000000"])


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize("algorithm", list(Algorithm))
async def test_single_candidate_skips_stores(algorithm: Algorithm) -> None:
    """Test the single user profile short-circuit.

    Verifies:
    - The only user profile wins with score 100
    - No store is consulted (exploding stores would be logged, not raised)
    """
    store = ExplodingStore()
    selector = RotationSelector(
        algorithm,
        cooldown_store=store,
        activity_store=store,
        health_store=store,
    )

    result = await selector.select("claude", ["_original", "work"], "work")

    assert result.selected == "work"
    assert [(s.name, s.score) for s in result.alternatives] == [("work", 100)]
    assert result.alternatives[0].reasons[0].text == "Only available profile"


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize("algorithm", list(Algorithm))
async def test_all_in_cooldown_raises(algorithm: Algorithm) -> None:
    pool = AuthPool()
    for name in ("a", "b", "c"):
        pool.set_cooldown("claude", name, timedelta(minutes=10))
    selector = RotationSelector(algorithm, cooldown_store=pool)

    with pytest.raises(AllProfilesInCooldownError):
        await selector.select("claude", ["a", "b", "c"], "a")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_round_robin_walks_sorted_order() -> None:
    selector = RotationSelector(Algorithm.ROUND_ROBIN)
    profiles = ["c", "a", "b"]

    assert (await selector.select("claude", profiles, "a")).selected == "b"
    assert (await selector.select("claude", profiles, "b")).selected == "c"
    assert (await selector.select("claude", profiles, "c")).selected == "a"
    assert (await selector.select("claude", profiles, "")).selected == "a"
    assert (await selector.select("claude", profiles, "gone")).selected == "a"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_round_robin_skips_cooldowns() -> None:
    selector = RotationSelector(
        Algorithm.ROUND_ROBIN, cooldown_store=FakeCooldowns({"b"})
    )

    result = await selector.select("claude", ["a", "b", "c"], "a")

    assert result.selected == "c"
    cooling = result.score_for("b")
    assert cooling is not None
    assert cooling.score == SIMPLE_COOLDOWN_SCORE
    assert cooling.reasons[0].text.startswith("In cooldown (")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_random_is_reproducible_with_seeded_rng() -> None:
    profiles = ["a", "b", "c", "d"]
    first = RotationSelector(Algorithm.RANDOM, rng=random.Random(7))
    second = RotationSelector(Algorithm.RANDOM, rng=random.Random(7))

    picks_first = [(await first.select("claude", profiles)).selected for _ in range(5)]
    picks_second = [
        (await second.select("claude", profiles)).selected for _ in range(5)
    ]

    assert picks_first == picks_second
    assert set(picks_first) <= set(profiles)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_random_never_picks_cooling_profile() -> None:
    selector = RotationSelector(
        Algorithm.RANDOM,
        cooldown_store=FakeCooldowns({"a", "b"}),
        rng=random.Random(1),
    )

    for _ in range(10):
        assert (await selector.select("claude", ["a", "b", "c"])).selected == "c"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_smart_prefers_healthy_profile() -> None:
    """Test smart scoring.

    Verifies:
    - A healthy, unused profile beats a critical, recently used one
    - Cooling profiles get the smart cooldown score
    - Reasons explain the scores
    """
    now = datetime.now(UTC)
    health = FakeHealth(
        {
            "good": ProfileHealth(token_expires_at=now + timedelta(days=2)),
            "bad": ProfileHealth(error_count_1h=5, penalty=2.0),
        }
    )
    activity = FakeActivity({"bad": now - timedelta(minutes=5)})
    selector = RotationSelector(
        Algorithm.SMART,
        cooldown_store=FakeCooldowns({"cold"}),
        activity_store=activity,
        health_store=health,
        rng=random.Random(0),
    )

    result = await selector.select("claude", ["bad", "cold", "good"])

    assert result.selected == "good"
    assert [s.name for s in result.alternatives] == ["good", "bad", "cold"]
    assert result.score_for("cold").score == SMART_COOLDOWN_SCORE
    good_reasons = [r.text for r in result.score_for("good").reasons]
    assert any(text.startswith("Healthy token") for text in good_reasons)
    assert "Never used before" in good_reasons
    bad_reasons = [r.text for r in result.score_for("bad").reasons]
    assert any(text.startswith("Used recently") for text in bad_reasons)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_smart_uses_live_usage() -> None:
    selector = RotationSelector(Algorithm.SMART, rng=random.Random(0))
    selector.set_usage_data(
        {
            "busy": UsageInfo("busy", primary_percent=95, availability_score=5),
            "idle": UsageInfo("idle", primary_percent=10, availability_score=90),
        }
    )

    result = await selector.select("claude", ["busy", "idle"])

    assert result.selected == "idle"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_store_failures_count_as_no_data() -> None:
    store = ExplodingStore()
    selector = RotationSelector(
        Algorithm.SMART,
        cooldown_store=store,
        activity_store=store,
        health_store=store,
        rng=random.Random(0),
    )

    result = await selector.select("claude", ["a", "b"])

    assert result.selected in {"a", "b"}
    assert all(s.score > 0 for s in result.alternatives)


@pytest.mark.unit
def test_algorithm_parse() -> None:
    assert Algorithm.parse("Round-Robin") is Algorithm.ROUND_ROBIN
    assert RotationSelector("random").algorithm is Algorithm.RANDOM
    with pytest.raises(ValidationError, match="unknown rotation algorithm"):
        Algorithm.parse("fastest")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_avoid_recent_window_and_rng_setters() -> None:
    now = datetime.now(UTC)
    activity = FakeActivity({"recent": now - timedelta(minutes=20)})
    selector = RotationSelector(Algorithm.SMART, activity_store=activity)
    selector.set_rng(random.Random(3))

    selector.set_avoid_recent(timedelta(minutes=10))
    relaxed = await selector.select("claude", ["fresh", "recent"])
    recent_score = relaxed.score_for("recent")
    assert any(r.text.startswith("Not used recently") for r in recent_score.reasons)

    selector.set_avoid_recent(timedelta(hours=1))
    strict = await selector.select("claude", ["fresh", "recent"])
    assert strict.selected == "fresh"
    assert any(
        r.text.startswith("Used recently") for r in strict.score_for("recent").reasons
    )
