"""In-memory реалізація сховища для тестів і демо-запусків."""
from __future__ import annotations

from collections.abc import Collection
from datetime import datetime
from typing import Any

from threatwatcher.db.models import Anomaly, AnomalyStatus, DetectionSource, LogEntry, utcnow
from threatwatcher.storage.base import AnomalyStore


def _newest_first(item: LogEntry | Anomaly) -> tuple[datetime, int]:
    return item.timestamp, item.id


class MemoryAnomalyStore(AnomalyStore):
    """Тримає записи у списках процесу."""

    def __init__(self) -> None:
        self._logs: list[LogEntry] = []
        self._anomalies: list[Anomaly] = []

    async def create_log(self, log: LogEntry) -> LogEntry:
        log.id = len(self._logs) + 1  # type: ignore[assignment]
        if log.timestamp is None:
            log.timestamp = utcnow()
        self._logs.append(log)
        return log

    async def count_logs(self, ip: str, event_type: str, since: datetime) -> int:
        return sum(
            1 for log in self._logs if log.ip == ip and log.event_type == event_type and log.timestamp >= since
        )

    async def list_recent_logs(self, limit: int, exclude_ids: Collection[int] = ()) -> list[LogEntry]:
        excluded = set(exclude_ids)
        result = [log for log in self._logs if log.id not in excluded]
        return sorted(result, key=_newest_first, reverse=True)[:limit]

    async def list_logs_by_ip(self, ip: str, limit: int = 100) -> list[LogEntry]:
        result = [log for log in self._logs if log.ip == ip]
        return sorted(result, key=_newest_first, reverse=True)[:limit]

    async def create_anomaly(self, anomaly: Anomaly) -> Anomaly:
        anomaly.id = len(self._anomalies) + 1  # type: ignore[assignment]
        if anomaly.timestamp is None:
            anomaly.timestamp = utcnow()
        if anomaly.status is None:
            anomaly.status = AnomalyStatus.OPEN
        if anomaly.detection_source is None:
            anomaly.detection_source = DetectionSource.RULE
        if anomaly.log_entry_id is not None:
            anomaly.log_entry = self._get_log(anomaly.log_entry_id)
        self._anomalies.append(anomaly)
        return anomaly

    async def get_anomaly(self, anomaly_id: int) -> Anomaly | None:
        for anomaly in self._anomalies:
            if anomaly.id == anomaly_id:
                return anomaly
        return None

    async def find_anomaly(self, ip: str, log_entry_id: int, since: datetime) -> Anomaly | None:
        matches = [
            item
            for item in self._anomalies
            if item.ip == ip and item.log_entry_id == log_entry_id and item.timestamp >= since
        ]
        if not matches:
            return None
        return max(matches, key=_newest_first)

    async def update_anomaly(self, anomaly_id: int, **changes: Any) -> Anomaly | None:
        anomaly = await self.get_anomaly(anomaly_id)
        if anomaly is None:
            return None
        for key, value in changes.items():
            setattr(anomaly, key, value)
        return anomaly

    async def list_anomalies(self, limit: int = 15, offset: int = 0) -> list[Anomaly]:
        ordered = sorted(self._anomalies, key=_newest_first, reverse=True)
        return ordered[offset : offset + limit]

    async def count_anomalies(self) -> int:
        return len(self._anomalies)

    async def list_anomalies_by_ip(self, ip: str, limit: int = 100) -> list[Anomaly]:
        result = [item for item in self._anomalies if item.ip == ip]
        return sorted(result, key=_newest_first, reverse=True)[:limit]

    async def list_anomalies_since(
        self,
        since: datetime,
        limit: int = 100,
        sources: Collection[DetectionSource] | None = None,
    ) -> list[Anomaly]:
        result = [item for item in self._anomalies if item.timestamp >= since]
        if sources is not None:
            allowed = set(sources)
            result = [item for item in result if item.detection_source in allowed]
        return sorted(result, key=_newest_first, reverse=True)[:limit]

    async def confidence_stats_since(
        self,
        since: datetime,
        sources: Collection[DetectionSource] | None = None,
        missing_confidence: float = 50.0,
    ) -> tuple[int, float | None]:
        result = [item for item in self._anomalies if item.timestamp >= since]
        if sources is not None:
            allowed = set(sources)
            result = [item for item in result if item.detection_source in allowed]
        if not result:
            return 0, None
        scores = [
            item.confidence_score if item.confidence_score is not None else missing_confidence for item in result
        ]
        return len(scores), sum(scores) / len(scores)

    def _get_log(self, log_id: int) -> LogEntry | None:
        for log in self._logs:
            if log.id == log_id:
                return log
        return None


__all__ = ["MemoryAnomalyStore"]
