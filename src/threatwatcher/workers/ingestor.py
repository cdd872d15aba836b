"""Прийом однієї події: збереження, правила, аномалії, розсилка."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from threatwatcher.analyzer.fanout import AnomalyBroadcaster
from threatwatcher.analyzer.rules_engine import Finding, LogRecord, RuleEngine
from threatwatcher.analyzer.serialize import anomaly_to_payload
from threatwatcher.db.models import (
    DEFAULT_REASON,
    RULE_CONFIDENCE,
    Anomaly,
    AnomalyStatus,
    DetectionSource,
    LogEntry,
    Severity,
    utcnow,
)
from threatwatcher.logging import logger
from threatwatcher.metrics import ANOMALIES_CREATED_TOTAL, LOGS_INGESTED_TOTAL
from threatwatcher.storage.base import AnomalyStore

REQUIRED_FIELDS = ("source", "event", "ip", "user")


@dataclass
class IngestResult:
    success: bool
    message: str
    log: LogEntry | None = None
    anomalies: List[Anomaly] = field(default_factory=list)


class IngestionPipeline:
    """RECEIVE -> PERSIST_LOG -> EVALUATE_RULES -> PERSIST_ANOMALIES -> PUBLISH."""

    def __init__(self, store: AnomalyStore, broadcaster: AnomalyBroadcaster, rules: RuleEngine | None = None) -> None:
        self.store = store
        self.broadcaster = broadcaster
        self.rules = rules or RuleEngine(store)

    async def ingest(
        self,
        source: str | None,
        event: str | None,
        ip: str | None,
        user: str | None,
        event_type: str | None = None,
    ) -> IngestResult:
        values = {"source": source, "event": event, "ip": ip, "user": user}
        missing = [name for name in REQUIRED_FIELDS if not (values[name] or "").strip()]
        if missing:
            logger.warning("Подію відхилено: бракує обовʼязкових полів", missing=missing)
            return IngestResult(False, f"Missing required fields: {', '.join(missing)}")

        entry = LogEntry(
            source=source.strip(),  # type: ignore[union-attr]
            event=event.strip(),  # type: ignore[union-attr]
            event_type=(event_type or "").strip() or None,
            ip=ip.strip(),  # type: ignore[union-attr]
            user=user.strip(),  # type: ignore[union-attr]
            timestamp=utcnow(),
        )
        try:
            entry = await self.store.create_log(entry)
        except Exception as exc:  # noqa: BLE001
            logger.error("Не вдалося зберегти подію", ip=entry.ip, error=str(exc))
            return IngestResult(False, "Failed to ingest log")
        LOGS_INGESTED_TOTAL.inc()

        findings = await self.rules.evaluate(LogRecord.from_entry(entry))
        if not findings:
            findings = [Finding(Severity.LOW, DEFAULT_REASON)]

        created: List[Anomaly] = []
        for finding in findings:
            anomaly = await self._persist_and_publish(entry, finding)
            if anomaly is not None:
                created.append(anomaly)

        logger.info("Подію прийнято", log_id=entry.id, ip=entry.ip, anomalies=len(created))
        return IngestResult(True, f"Log ingested, {len(created)} anomalies recorded", entry, created)

    async def _persist_and_publish(self, entry: LogEntry, finding: Finding) -> Anomaly | None:
        anomaly = Anomaly(
            ip=entry.ip,
            severity=finding.severity,
            reason=finding.reason,
            timestamp=utcnow(),
            detection_source=DetectionSource.RULE,
            confidence_score=RULE_CONFIDENCE,
            log_entry_id=entry.id,
            status=AnomalyStatus.OPEN,
        )
        try:
            anomaly = await self.store.create_anomaly(anomaly)
        except Exception as exc:  # noqa: BLE001
            logger.error("Не вдалося зберегти аномалію", ip=entry.ip, reason=finding.reason, error=str(exc))
            return None
        ANOMALIES_CREATED_TOTAL.labels(detection_source=DetectionSource.RULE.value).inc()
        try:
            self.broadcaster.publish(anomaly_to_payload(anomaly))
        except Exception as exc:  # noqa: BLE001
            logger.error("Не вдалося опублікувати аномалію", anomaly_id=anomaly.id, error=str(exc))
        return anomaly


__all__ = ["IngestionPipeline", "IngestResult", "REQUIRED_FIELDS"]
