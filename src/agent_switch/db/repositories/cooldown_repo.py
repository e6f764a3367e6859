"""Cooldown repository for database operations."""

from datetime import UTC, datetime, timedelta

from sqlmodel import select

from agent_switch.db.engine import get_session
from agent_switch.db.models import Cooldown, as_utc


class CooldownRepository:
    """Repository for profile cooldown records."""

    async def set_cooldown(
        self,
        tool: str,
        profile: str,
        hit_at: datetime,
        duration: timedelta,
        notes: str | None = None,
    ) -> Cooldown:
        """Record a cooldown starting at ``hit_at`` and lasting ``duration``."""
        hit_at = as_utc(hit_at)
        cooldown = Cooldown(
            tool=tool,
            profile=profile,
            hit_at=hit_at,
            cooldown_until=hit_at + duration,
            notes=notes,
        )
        async with get_session() as session:
            session.add(cooldown)
            await session.commit()
            await session.refresh(cooldown)
            return cooldown

    async def active_cooldown(
        self, tool: str, profile: str, now: datetime | None = None
    ) -> Cooldown | None:
        """Latest cooldown for a profile that has not yet expired."""
        now = as_utc(now or datetime.now(UTC))
        async with get_session() as session:
            result = await session.execute(
                select(Cooldown)
                .where(
                    Cooldown.tool == tool,
                    Cooldown.profile == profile,
                    Cooldown.cooldown_until > now,
                )
                .order_by(Cooldown.cooldown_until.desc())  # type: ignore[attr-defined]
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def list_active(self, now: datetime | None = None) -> list[Cooldown]:
        """All unexpired cooldowns, soonest to expire first."""
        now = as_utc(now or datetime.now(UTC))
        async with get_session() as session:
            result = await session.execute(
                select(Cooldown)
                .where(Cooldown.cooldown_until > now)
                .order_by(Cooldown.cooldown_until)
            )
            return list(result.scalars().all())

    async def clear(self, tool: str, profile: str) -> int:
        """Delete every cooldown for a profile. Returns count deleted."""
        async with get_session() as session:
            result = await session.execute(
                select(Cooldown).where(
                    Cooldown.tool == tool, Cooldown.profile == profile
                )
            )
            records = list(result.scalars().all())
            for record in records:
                await session.delete(record)
            await session.commit()
            return len(records)

    async def cleanup_expired(self, now: datetime | None = None) -> int:
        """Delete expired cooldown records. Returns count deleted."""
        now = as_utc(now or datetime.now(UTC))
        async with get_session() as session:
            result = await session.execute(
                select(Cooldown).where(Cooldown.cooldown_until <= now)
            )
            expired = list(result.scalars().all())
            for record in expired:
                await session.delete(record)
            await session.commit()
            return len(expired)
