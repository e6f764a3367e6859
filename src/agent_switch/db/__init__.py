"""Database package for SQLite persistence."""

from agent_switch.db.engine import close_db, get_engine, get_session, init_db
from agent_switch.db.models import ActivityEvent, ActivityType, Cooldown


__all__ = [
    "ActivityEvent",
    "ActivityType",
    "Cooldown",
    "close_db",
    "get_engine",
    "get_session",
    "init_db",
]
