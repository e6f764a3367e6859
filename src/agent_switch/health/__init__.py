"""Profile health tracking."""

from agent_switch.health.models import (
    HealthStatus,
    ProfileHealth,
    calculate_status,
    penalty_for_error,
)
from agent_switch.health.storage import HealthStorage, default_health_path


__all__ = [
    "HealthStatus",
    "HealthStorage",
    "ProfileHealth",
    "calculate_status",
    "default_health_path",
    "penalty_for_error",
]
