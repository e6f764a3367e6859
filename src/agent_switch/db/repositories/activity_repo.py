"""Activity log repository for database operations."""

from datetime import UTC, datetime

from sqlmodel import select

from agent_switch.db.engine import get_session
from agent_switch.db.models import ActivityEvent, ActivityType, as_utc


class ActivityRepository:
    """Repository for the profile activity log."""

    async def log_event(
        self,
        event_type: ActivityType | str,
        tool: str,
        profile: str,
        details: str | None = None,
        timestamp: datetime | None = None,
    ) -> ActivityEvent:
        event = ActivityEvent(
            timestamp=as_utc(timestamp or datetime.now(UTC)),
            event_type=str(event_type),
            tool=tool,
            profile=profile,
            details=details,
        )
        async with get_session() as session:
            session.add(event)
            await session.commit()
            await session.refresh(event)
            return event

    async def last_activation(self, tool: str, profile: str) -> datetime | None:
        """When the profile was last activated, or None if never."""
        async with get_session() as session:
            result = await session.execute(
                select(ActivityEvent)
                .where(
                    ActivityEvent.tool == tool,
                    ActivityEvent.profile == profile,
                    ActivityEvent.event_type == str(ActivityType.ACTIVATE),
                )
                .order_by(ActivityEvent.timestamp.desc())  # type: ignore[attr-defined]
                .limit(1)
            )
            event = result.scalar_one_or_none()
            return as_utc(event.timestamp) if event else None

    async def recent(
        self, tool: str | None = None, limit: int = 20
    ) -> list[ActivityEvent]:
        """Newest events first, optionally for one tool."""
        statement = select(ActivityEvent)
        if tool is not None:
            statement = statement.where(ActivityEvent.tool == tool)
        statement = statement.order_by(
            ActivityEvent.timestamp.desc()  # type: ignore[attr-defined]
        ).limit(limit)

        async with get_session() as session:
            result = await session.execute(statement)
            return list(result.scalars().all())
