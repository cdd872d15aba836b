"""Створення асинхронного підключення до БД."""
from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from threatwatcher.config import get_settings
from threatwatcher.db.models import Base


def build_engine(database_url: str) -> AsyncEngine:
    return create_async_engine(database_url, echo=False, future=True)


def build_session_maker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, expire_on_commit=False, class_=AsyncSession)


settings = get_settings()

engine = build_engine(settings.database_url)
async_session_maker = build_session_maker(engine)


async def init_models(bind: AsyncEngine | None = None) -> None:
    """Ініціалізує таблиці без Alembic (для розробки)."""

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


__all__ = ["engine", "async_session_maker", "init_models", "build_engine", "build_session_maker"]
