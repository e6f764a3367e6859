"""Tests for profile health records and their JSON store."""

from datetime import UTC, datetime, timedelta

import pytest

from agent_switch.health.models import (
    HealthStatus,
    ProfileHealth,
    calculate_status,
    penalty_for_error,
)
from agent_switch.health.storage import HealthStorage


NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def storage(tmp_path) -> HealthStorage:
    return HealthStorage(tmp_path / "health.json")


@pytest.mark.unit
@pytest.mark.parametrize(
    ("health", "expected"),
    [
        (None, HealthStatus.UNKNOWN),
        (ProfileHealth(), HealthStatus.HEALTHY),
        (ProfileHealth(token_expires_at=NOW + timedelta(days=1)), HealthStatus.HEALTHY),
        (ProfileHealth(token_expires_at=NOW + timedelta(minutes=30)), HealthStatus.WARNING),
        (ProfileHealth(token_expires_at=NOW - timedelta(seconds=1)), HealthStatus.CRITICAL),
        (ProfileHealth(error_count_1h=1), HealthStatus.WARNING),
        (ProfileHealth(error_count_1h=3), HealthStatus.CRITICAL),
        (
            ProfileHealth(token_expires_at=NOW + timedelta(days=1), error_count_1h=3),
            HealthStatus.CRITICAL,
        ),
    ],
)
def test_calculate_status(health, expected) -> None:
    assert calculate_status(health, NOW) == expected


@pytest.mark.unit
def test_penalty_weights() -> None:
    assert penalty_for_error("401 Unauthorized") == 1.0
    assert penalty_for_error("HTTP 429") == 0.5
    assert penalty_for_error(RuntimeError("boom")) == 0.2
    assert penalty_for_error(None) == 0.2


@pytest.mark.unit
def test_penalty_decays_per_interval() -> None:
    """Test exponential decay.

    Verifies:
    - Partial intervals leave the penalty alone
    - Each full five-minute interval multiplies by 0.8
    - Tiny penalties snap to zero
    """
    health = ProfileHealth(penalty=1.0, penalty_updated_at=NOW)

    health.decay_penalty(NOW + timedelta(minutes=4))
    assert health.penalty == 1.0

    health.decay_penalty(NOW + timedelta(minutes=10))
    assert health.penalty == pytest.approx(0.64)

    health.decay_penalty(NOW + timedelta(hours=10))
    assert health.penalty == 0.0


@pytest.mark.unit
def test_record_error_and_clear(storage: HealthStorage) -> None:
    storage.record_error("claude", "work", "429 too many requests")
    health = storage.record_error("claude", "work", "401 unauthorized")

    assert health.error_count_1h == 2
    assert health.penalty == pytest.approx(1.5)
    assert storage.get_status("claude", "work") == HealthStatus.WARNING

    storage.clear_errors("claude", "work")

    cleared = storage.get_profile("claude", "work")
    assert cleared is not None
    assert cleared.error_count_1h == 0
    assert cleared.penalty == pytest.approx(1.5)


@pytest.mark.unit
def test_storage_round_trip(storage: HealthStorage, tmp_path) -> None:
    expires = NOW + timedelta(days=3)
    storage.set_token_expiry("claude", "work", expires)
    storage.set_plan_type("claude", "work", "pro")

    reopened = HealthStorage(tmp_path / "health.json")
    health = reopened.get_profile("claude", "work")

    assert health is not None
    assert health.token_expires_at == expires
    assert health.plan_type == "pro"
    assert health.last_checked is not None
    assert list(reopened.list_profiles()) == ["claude/work"]


@pytest.mark.unit
def test_delete_profile(storage: HealthStorage) -> None:
    storage.set_plan_type("claude", "work", "team")

    assert storage.delete_profile("claude", "work") is True
    assert storage.delete_profile("claude", "work") is False
    assert storage.get_profile("claude", "work") is None
    assert storage.get_status("claude", "work") == HealthStatus.UNKNOWN


@pytest.mark.unit
def test_decay_penalties_updates_store(storage: HealthStorage) -> None:
    storage.update_profile(
        "claude", "work", ProfileHealth(penalty=1.0, penalty_updated_at=NOW)
    )
    storage.update_profile("claude", "clean", ProfileHealth())

    changed = storage.decay_penalties(NOW + timedelta(minutes=5))

    assert changed == 1
    assert storage.get_profile("claude", "work").penalty == pytest.approx(0.8)


@pytest.mark.unit
def test_corrupted_file_reads_as_empty(storage: HealthStorage) -> None:
    storage.file_path.write_text("{not json")

    assert storage.get_profile("claude", "work") is None
    assert storage.list_profiles() == {}

    storage.set_plan_type("claude", "work", "pro")
    assert storage.get_profile("claude", "work").plan_type == "pro"
