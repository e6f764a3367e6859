"""Database engine and session management."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

from agent_switch.core.system import get_app_data_dir


# Global engine (initialized on startup)
_engine: AsyncEngine | None = None
_async_session_maker: async_sessionmaker[AsyncSession] | None = None


def default_db_path() -> Path:
    return get_app_data_dir() / "agent_switch.db"


def get_db_url(path: Path | None = None) -> str:
    """Get SQLite database URL."""
    db_path = path or default_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite+aiosqlite:///{db_path}"


async def init_db(path: Path | None = None) -> None:
    """Initialize database and create tables."""
    global _engine, _async_session_maker

    if _engine is not None:
        await _engine.dispose()

    db_url = get_db_url(path)
    _engine = create_async_engine(db_url, echo=False)
    _async_session_maker = async_sessionmaker(
        _engine, class_=AsyncSession, expire_on_commit=False
    )

    async with _engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def close_db() -> None:
    """Dispose the engine so aiosqlite worker threads exit."""
    global _engine, _async_session_maker

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _async_session_maker = None


def get_engine() -> AsyncEngine:
    """Get the database engine."""
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _engine


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get an async database session."""
    if _async_session_maker is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")

    async with _async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
