"""Періодичний AI-аналіз пакетів подій без накладання циклів.

Один екземпляр планувальника живе весь час роботи процесу і тримає стан
між запусками таймера: час останнього аналізу, id вже оброблених подій
та прапорець виконання. Прапорець скидається у ``finally``, тому цикл,
що впав із винятком, не блокує наступні запуски.
"""
from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Sequence

from threatwatcher.analyzer.classifier import AiAnalysisResult, AiAnalyzer, AiAnomalyCandidate
from threatwatcher.analyzer.fanout import AnomalyBroadcaster
from threatwatcher.analyzer.serialize import anomaly_to_payload
from threatwatcher.config import Settings
from threatwatcher.db.models import Anomaly, AnomalyStatus, DetectionSource, LogEntry, utcnow
from threatwatcher.logging import logger
from threatwatcher.metrics import ANALYSIS_CYCLES_TOTAL, ANOMALIES_CREATED_TOTAL, ANOMALIES_UPGRADED_TOTAL
from threatwatcher.storage.base import AnomalyStore

CONTEXT_WINDOW = timedelta(hours=1)
CONTEXT_LIMIT = 100
DEDUP_WINDOW = timedelta(minutes=10)


class CycleOutcome(str, enum.Enum):
    SKIPPED_RUNNING = "skipped_running"
    SKIPPED_COOLDOWN = "skipped_cooldown"
    EMPTY = "empty"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class SchedulerState:
    """Стан між циклами: існує в одному екземплярі на процес."""

    started_at: datetime
    cooldown: timedelta
    last_analysis_time: datetime | None = None
    processed_ids: set[int] = field(default_factory=set)
    running: bool = False
    last_result: AiAnalysisResult | None = None
    last_outcome: CycleOutcome | None = None


class AnalysisScheduler:
    """Таймер AI-аналізу з взаємовиключенням та вікном охолодження."""

    def __init__(
        self,
        store: AnomalyStore,
        analyzer: AiAnalyzer,
        broadcaster: AnomalyBroadcaster,
        interval_minutes: float = 5,
        cooldown_seconds: float = 120,
        batch_size: int = 50,
        link_fallback_to_first_log: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.analyzer = analyzer
        self.broadcaster = broadcaster
        self.interval = timedelta(minutes=interval_minutes)
        self.batch_size = batch_size
        self.link_fallback_to_first_log = link_fallback_to_first_log
        self._clock = clock
        self.state = SchedulerState(started_at=clock(), cooldown=timedelta(seconds=cooldown_seconds))
        self._task: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: AnomalyStore,
        analyzer: AiAnalyzer,
        broadcaster: AnomalyBroadcaster,
    ) -> "AnalysisScheduler":
        return cls(
            store,
            analyzer,
            broadcaster,
            interval_minutes=settings.ai_analysis_interval_minutes,
            cooldown_seconds=settings.ai_cooldown_seconds,
            batch_size=settings.ai_batch_size,
            link_fallback_to_first_log=settings.ai_link_fallback_to_first_log,
        )

    @property
    def is_running(self) -> bool:
        return self.state.running

    @property
    def is_started(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_analysis_time(self) -> datetime:
        """Час останнього аналізу або старту планувальника, якщо циклів ще не було."""

        return self.state.last_analysis_time or self.state.started_at

    def start(self) -> None:
        if self.is_started:
            return
        logger.info("Запускаємо планувальник AI-аналізу", interval_minutes=self.interval.total_seconds() / 60)
        self._task = asyncio.create_task(self._timer_loop(), name="ai-analysis-scheduler")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Планувальник AI-аналізу зупинено")

    async def _timer_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval.total_seconds())
            await self.run_scheduled()

    async def run_scheduled(self) -> CycleOutcome:
        """Запуск від таймера: враховує охолодження."""

        return await self._run_cycle(force=False)

    async def trigger(self) -> CycleOutcome:
        """Ручний запуск: минає охолодження, але не взаємовиключення."""

        logger.info("Ручний запуск AI-аналізу")
        return await self._run_cycle(force=True)

    async def _run_cycle(self, force: bool) -> CycleOutcome:
        if self.state.running:
            logger.info("AI-аналіз уже виконується, цикл пропущено")
            return self._finish(CycleOutcome.SKIPPED_RUNNING)

        self.state.running = True
        try:
            started = self._clock()
            if not force and self._in_cooldown(started):
                logger.info("Цикл пропущено через вікно охолодження")
                return self._finish(CycleOutcome.SKIPPED_COOLDOWN)
            return self._finish(await self._analyze(started))
        except Exception:  # noqa: BLE001
            logger.exception("Помилка в циклі AI-аналізу")
            return self._finish(CycleOutcome.FAILED)
        finally:
            self.state.running = False

    def _in_cooldown(self, now: datetime) -> bool:
        last = self.state.last_analysis_time
        return last is not None and now - last < self.state.cooldown

    async def _analyze(self, started: datetime) -> CycleOutcome:
        logs = await self._fetch_logs()
        if not logs:
            logger.info("Немає нових подій для аналізу")
            return CycleOutcome.EMPTY

        try:
            context = await self._fetch_context()
            logger.info("Аналізуємо пакет", logs=len(logs), context_anomalies=len(context))
            result = await self.analyzer.analyze(logs, context)
            self.state.last_result = result
            await self._reconcile(result.new_anomalies, logs)
        finally:
            self.state.last_analysis_time = started
            self.state.processed_ids = {log.id for log in logs}

        logger.info("AI-аналіз завершено", candidates=len(result.new_anomalies))
        return CycleOutcome.COMPLETED

    def _finish(self, outcome: CycleOutcome) -> CycleOutcome:
        self.state.last_outcome = outcome
        ANALYSIS_CYCLES_TOTAL.labels(outcome=outcome.value).inc()
        return outcome

    async def _fetch_logs(self) -> list[LogEntry]:
        try:
            return await self.store.list_recent_logs(self.batch_size, exclude_ids=self.state.processed_ids)
        except Exception as exc:  # noqa: BLE001
            logger.error("Не вдалося отримати події для аналізу", error=str(exc))
            return []

    async def _fetch_context(self) -> list[Anomaly]:
        try:
            return await self.store.list_anomalies_since(self._clock() - CONTEXT_WINDOW, limit=CONTEXT_LIMIT)
        except Exception as exc:  # noqa: BLE001
            logger.error("Не вдалося отримати контекстні аномалії", error=str(exc))
            return []

    async def _reconcile(self, candidates: Sequence[AiAnomalyCandidate], logs: Sequence[LogEntry]) -> None:
        for candidate in candidates:
            try:
                await self._reconcile_one(candidate, logs)
            except Exception as exc:  # noqa: BLE001
                logger.error("Не вдалося обробити AI-аномалію", ip=candidate.ip, error=str(exc))

    def find_relevant_log(self, ip: str, logs: Sequence[LogEntry]) -> LogEntry | None:
        """Подія з тим самим ip; перша в пакеті лише з увімкненим запасним варіантом."""

        for log in logs:
            if log.ip == ip:
                return log
        if self.link_fallback_to_first_log and logs:
            return logs[0]
        return None

    async def _reconcile_one(self, candidate: AiAnomalyCandidate, logs: Sequence[LogEntry]) -> None:
        relevant = self.find_relevant_log(candidate.ip, logs)
        existing = None
        if relevant is not None:
            existing = await self.store.find_anomaly(candidate.ip, relevant.id, self._clock() - DEDUP_WINDOW)

        if existing is not None:
            if existing.detection_source == DetectionSource.RULE:
                # Порожні поля AI не затирають значення, виставлені правилом.
                changes: dict[str, object] = {"detection_source": DetectionSource.HYBRID}
                for field in ("ai_explanation", "recommended_action", "confidence_score"):
                    value = getattr(candidate, field)
                    if value is not None:
                        changes[field] = value
                await self.store.update_anomaly(existing.id, **changes)
                ANOMALIES_UPGRADED_TOTAL.inc()
                logger.info("Аномалію оновлено до HYBRID", anomaly_id=existing.id)
            return

        anomaly = await self.store.create_anomaly(
            Anomaly(
                ip=candidate.ip,
                severity=candidate.severity,
                reason=candidate.reason,
                timestamp=self._clock(),
                detection_source=DetectionSource.AI,
                ai_explanation=candidate.ai_explanation,
                recommended_action=candidate.recommended_action,
                confidence_score=candidate.confidence_score,
                log_entry_id=relevant.id if relevant is not None else None,
                status=AnomalyStatus.OPEN,
            )
        )
        ANOMALIES_CREATED_TOTAL.labels(detection_source=DetectionSource.AI.value).inc()
        self.broadcaster.publish(anomaly_to_payload(anomaly))
        logger.info(
            "Створено AI-аномалію",
            anomaly_id=anomaly.id,
            reason=candidate.reason,
            severity=candidate.severity.value,
        )


__all__ = ["AnalysisScheduler", "SchedulerState", "CycleOutcome"]
