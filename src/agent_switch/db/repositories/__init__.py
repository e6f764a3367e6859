"""Repository layer for database operations."""

from agent_switch.db.repositories.activity_repo import ActivityRepository
from agent_switch.db.repositories.cooldown_repo import CooldownRepository


__all__ = ["ActivityRepository", "CooldownRepository"]
