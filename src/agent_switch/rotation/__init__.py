"""Profile rotation: selection algorithms and the in-memory auth pool."""

from agent_switch.rotation.formatting import format_duration, format_result
from agent_switch.rotation.models import (
    Algorithm,
    ProfileScore,
    Reason,
    SelectionResult,
    UsageInfo,
)
from agent_switch.rotation.pool import AuthPool, PoolCooldown
from agent_switch.rotation.selector import (
    ActivityStore,
    CooldownStore,
    HealthStore,
    RotationSelector,
)


__all__ = [
    "ActivityStore",
    "Algorithm",
    "AuthPool",
    "CooldownStore",
    "HealthStore",
    "PoolCooldown",
    "ProfileScore",
    "Reason",
    "RotationSelector",
    "SelectionResult",
    "UsageInfo",
    "format_duration",
    "format_result",
]
