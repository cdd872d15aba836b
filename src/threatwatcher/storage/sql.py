"""Реалізація сховища на SQLAlchemy (PostgreSQL або SQLite)."""
from __future__ import annotations

from collections.abc import Collection
from datetime import datetime
from typing import Any

from sqlalchemy import Select, func, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from threatwatcher.db.models import Anomaly, DetectionSource, LogEntry
from threatwatcher.storage.base import AnomalyStore


class SqlAnomalyStore(AnomalyStore):
    """Збереження подій та аномалій у реляційній БД."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession] | None = None) -> None:
        if session_maker is None:
            from threatwatcher.db.session import async_session_maker

            session_maker = async_session_maker
        self._session_maker = session_maker

    def _session(self) -> AsyncSession:
        return self._session_maker()

    async def create_log(self, log: LogEntry) -> LogEntry:
        async with self._session() as session:
            session.add(log)
            await session.flush()
            await session.commit()
            await session.refresh(log)
            return log

    async def count_logs(self, ip: str, event_type: str, since: datetime) -> int:
        stmt = (
            select(func.count())
            .select_from(LogEntry)
            .where(LogEntry.ip == ip, LogEntry.event_type == event_type, LogEntry.timestamp >= since)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return int(result.scalar_one())

    async def list_recent_logs(self, limit: int, exclude_ids: Collection[int] = ()) -> list[LogEntry]:
        stmt: Select[tuple[LogEntry]] = (
            select(LogEntry).order_by(LogEntry.timestamp.desc(), LogEntry.id.desc()).limit(limit)
        )
        if exclude_ids:
            stmt = stmt.where(LogEntry.id.not_in(list(exclude_ids)))
        async with self._session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_logs_by_ip(self, ip: str, limit: int = 100) -> list[LogEntry]:
        stmt: Select[tuple[LogEntry]] = (
            select(LogEntry)
            .where(LogEntry.ip == ip)
            .order_by(LogEntry.timestamp.desc(), LogEntry.id.desc())
            .limit(limit)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def create_anomaly(self, anomaly: Anomaly) -> Anomaly:
        async with self._session() as session:
            session.add(anomaly)
            await session.flush()
            await session.commit()
            return await self._reload(session, anomaly.id)

    async def get_anomaly(self, anomaly_id: int) -> Anomaly | None:
        async with self._session() as session:
            return await self._load(session, anomaly_id)

    async def find_anomaly(self, ip: str, log_entry_id: int, since: datetime) -> Anomaly | None:
        stmt = (
            self._anomaly_query()
            .where(Anomaly.ip == ip, Anomaly.log_entry_id == log_entry_id, Anomaly.timestamp >= since)
            .limit(1)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return result.scalars().first()

    async def update_anomaly(self, anomaly_id: int, **changes: Any) -> Anomaly | None:
        async with self._session() as session:
            anomaly = await session.get(Anomaly, anomaly_id)
            if anomaly is None:
                return None
            for key, value in changes.items():
                setattr(anomaly, key, value)
            await session.commit()
            return await self._reload(session, anomaly_id)

    async def list_anomalies(self, limit: int = 15, offset: int = 0) -> list[Anomaly]:
        stmt = self._anomaly_query().offset(offset).limit(limit)
        async with self._session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def count_anomalies(self) -> int:
        async with self._session() as session:
            result = await session.execute(select(func.count()).select_from(Anomaly))
            return int(result.scalar_one())

    async def list_anomalies_by_ip(self, ip: str, limit: int = 100) -> list[Anomaly]:
        stmt = self._anomaly_query().where(Anomaly.ip == ip).limit(limit)
        async with self._session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_anomalies_since(
        self,
        since: datetime,
        limit: int = 100,
        sources: Collection[DetectionSource] | None = None,
    ) -> list[Anomaly]:
        stmt = self._anomaly_query().where(Anomaly.timestamp >= since).limit(limit)
        if sources is not None:
            stmt = stmt.where(Anomaly.detection_source.in_(list(sources)))
        async with self._session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def confidence_stats_since(
        self,
        since: datetime,
        sources: Collection[DetectionSource] | None = None,
        missing_confidence: float = 50.0,
    ) -> tuple[int, float | None]:
        stmt = select(
            func.count(Anomaly.id),
            func.avg(func.coalesce(Anomaly.confidence_score, missing_confidence)),
        ).where(Anomaly.timestamp >= since)
        if sources is not None:
            stmt = stmt.where(Anomaly.detection_source.in_(list(sources)))
        async with self._session() as session:
            result = await session.execute(stmt)
            count, average = result.one()
        return int(count), None if average is None else float(average)

    async def ping(self) -> bool:
        async with self._session() as session:
            await session.execute(text("SELECT 1"))
        return True

    async def close(self) -> None:
        bind = self._session_maker.kw.get("bind")
        if bind is not None:
            await bind.dispose()

    def _anomaly_query(self) -> Select[tuple[Anomaly]]:
        return (
            select(Anomaly)
            .options(selectinload(Anomaly.log_entry))
            .order_by(Anomaly.timestamp.desc(), Anomaly.id.desc())
        )

    async def _load(self, session: AsyncSession, anomaly_id: int) -> Anomaly | None:
        stmt = self._anomaly_query().where(Anomaly.id == anomaly_id)
        result = await session.execute(stmt)
        return result.scalars().first()

    async def _reload(self, session: AsyncSession, anomaly_id: int) -> Anomaly:
        stmt = (
            self._anomaly_query()
            .where(Anomaly.id == anomaly_id)
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalars().one()


__all__ = ["SqlAnomalyStore"]
