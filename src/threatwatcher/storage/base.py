"""Інтерфейс сховища подій та аномалій."""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Collection
from datetime import datetime
from typing import Any

from threatwatcher.db.models import Anomaly, DetectionSource, LogEntry


class AnomalyStore(ABC):
    """Абстрактний клас для різних реалізацій сховищ.

    Усі списки впорядковані за timestamp від новіших до старіших.
    Будь-який метод може завершитися помилкою вводу-виводу; викликач
    сам вирішує, як деградувати.
    """

    @abstractmethod
    async def create_log(self, log: LogEntry) -> LogEntry:
        """Зберігає подію та повертає її з id."""

    @abstractmethod
    async def count_logs(self, ip: str, event_type: str, since: datetime) -> int:
        """Кількість подій з ip та event_type, не старших за since."""

    @abstractmethod
    async def list_recent_logs(self, limit: int, exclude_ids: Collection[int] = ()) -> list[LogEntry]:
        """Останні події, окрім тих, чиї id вже оброблено."""

    @abstractmethod
    async def list_logs_by_ip(self, ip: str, limit: int = 100) -> list[LogEntry]:
        """Останні події для ip."""

    @abstractmethod
    async def create_anomaly(self, anomaly: Anomaly) -> Anomaly:
        """Зберігає аномалію та повертає її з id."""

    @abstractmethod
    async def get_anomaly(self, anomaly_id: int) -> Anomaly | None:
        """Повертає аномалію за id."""

    @abstractmethod
    async def find_anomaly(self, ip: str, log_entry_id: int, since: datetime) -> Anomaly | None:
        """Шукає аномалію для пари ip + подія, не старшу за since."""

    @abstractmethod
    async def update_anomaly(self, anomaly_id: int, **changes: Any) -> Anomaly | None:
        """Оновлює поля аномалії; None, якщо її не існує."""

    @abstractmethod
    async def list_anomalies(self, limit: int = 15, offset: int = 0) -> list[Anomaly]:
        """Сторінка аномалій."""

    @abstractmethod
    async def count_anomalies(self) -> int:
        """Загальна кількість аномалій."""

    @abstractmethod
    async def list_anomalies_by_ip(self, ip: str, limit: int = 100) -> list[Anomaly]:
        """Аномалії для ip."""

    @abstractmethod
    async def list_anomalies_since(
        self,
        since: datetime,
        limit: int = 100,
        sources: Collection[DetectionSource] | None = None,
    ) -> list[Anomaly]:
        """Аномалії у часовому вікні, за потреби лише з вказаних джерел."""

    @abstractmethod
    async def confidence_stats_since(
        self,
        since: datetime,
        sources: Collection[DetectionSource] | None = None,
        missing_confidence: float = 50.0,
    ) -> tuple[int, float | None]:
        """Кількість аномалій у вікні та середня впевненість (без оцінки = missing_confidence)."""

    async def ping(self) -> bool:
        """Перевіряє доступність сховища."""

        return True

    async def close(self) -> None:
        """Звільняє ресурси."""


__all__ = ["AnomalyStore"]
