"""Пороговий рушій правил для однієї події."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Sequence

from threatwatcher.db.models import LogEntry, Severity, utcnow
from threatwatcher.logging import logger
from threatwatcher.storage.base import AnomalyStore

FAILED_LOGIN = "FAILED_LOGIN"
BRUTE_FORCE_WINDOW = timedelta(minutes=10)
BRUTE_FORCE_THRESHOLD = 5
PRIVILEGE_MARKERS = ("sudo", "root")


@dataclass(frozen=True)
class LogRecord:
    """Поля події, потрібні правилам."""

    source: str
    event: str
    event_type: str | None
    ip: str
    user: str
    timestamp: datetime

    @classmethod
    def from_entry(cls, entry: LogEntry) -> "LogRecord":
        return cls(
            source=entry.source,
            event=entry.event,
            event_type=entry.event_type,
            ip=entry.ip,
            user=entry.user,
            timestamp=entry.timestamp,
        )


@dataclass(frozen=True)
class Finding:
    """Результат спрацювання правила."""

    severity: Severity
    reason: str


RuleCheck = Callable[[LogRecord], Awaitable["Finding | None"]]


class RuleEngine:
    """Запускає всі правила паралельно й зводить результати у порядку правил."""

    def __init__(self, store: AnomalyStore) -> None:
        self.store = store
        self.rules: List[tuple[str, RuleCheck]] = [
            ("brute_force", self.check_brute_force),
            ("privilege_escalation", self.check_privilege_escalation),
            ("geo_anomaly", self.check_geo_anomaly),
        ]

    async def evaluate(self, record: LogRecord) -> List[Finding]:
        """Повертає всі знахідки для події."""

        results = await asyncio.gather(*(self._run_rule(name, check, record) for name, check in self.rules))
        return [finding for finding in results if finding is not None]

    async def _run_rule(self, name: str, check: RuleCheck, record: LogRecord) -> Finding | None:
        try:
            return await check(record)
        except Exception as exc:  # noqa: BLE001
            logger.error("Помилка під час перевірки правила", rule=name, ip=record.ip, error=str(exc))
            return None

    async def check_brute_force(self, record: LogRecord) -> Finding | None:
        """Понад 5 FAILED_LOGIN з одного ip за останні 10 хвилин."""

        if record.event_type != FAILED_LOGIN:
            return None
        since = (record.timestamp or utcnow()) - BRUTE_FORCE_WINDOW
        count = await self.store.count_logs(record.ip, FAILED_LOGIN, since)
        if count > BRUTE_FORCE_THRESHOLD:
            return Finding(Severity.HIGH, "Brute force attempt detected")
        return None

    async def check_privilege_escalation(self, record: LogRecord) -> Finding | None:
        if not record.event_type:
            return None
        lowered = record.event_type.lower()
        if any(marker in lowered for marker in PRIVILEGE_MARKERS):
            return Finding(Severity.MEDIUM, "Privilege escalation detected")
        return None

    async def check_geo_anomaly(self, record: LogRecord) -> Finding | None:
        # TODO: перевіряти репутацію ip за гео-базою, коли зʼявиться джерело даних.
        return None

    def iter_rules(self) -> Sequence[str]:
        """Назви правил у порядку застосування."""

        return [name for name, _ in self.rules]


__all__ = ["RuleEngine", "LogRecord", "Finding", "FAILED_LOGIN"]
