"""Перетворення ORM-записів у транспортні словники."""
from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any

from threatwatcher.db.models import Anomaly, LogEntry


def isoformat(value: datetime | None) -> str | None:
    """ISO-8601 у UTC із суфіксом Z; naive-час вважається UTC."""

    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="milliseconds") + "Z"


def _enum_value(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    return value


def _string_id(value: int | None) -> str | None:
    return None if value is None else str(value)


def log_to_payload(log: LogEntry | None) -> dict[str, Any] | None:
    if log is None:
        return None
    return {
        "id": _string_id(log.id),
        "source": log.source,
        "event": log.event,
        "eventType": log.event_type,
        "ip": log.ip,
        "user": log.user,
        "timestamp": isoformat(log.timestamp),
    }


def anomaly_to_payload(anomaly: Anomaly) -> dict[str, Any]:
    """Повний набір полів аномалії для API та підписок."""

    return {
        "id": _string_id(anomaly.id),
        "ip": anomaly.ip,
        "severity": _enum_value(anomaly.severity),
        "reason": anomaly.reason,
        "timestamp": isoformat(anomaly.timestamp),
        "aiExplanation": anomaly.ai_explanation,
        "recommendedAction": anomaly.recommended_action,
        "detectionSource": _enum_value(anomaly.detection_source),
        "confidenceScore": anomaly.confidence_score,
        "status": _enum_value(anomaly.status),
        "resolutionNotes": anomaly.resolution_notes,
        "resolvedAt": isoformat(anomaly.resolved_at),
        "resolvedBy": anomaly.resolved_by,
        "logEntry": log_to_payload(anomaly.log_entry),
    }


__all__ = ["isoformat", "log_to_payload", "anomaly_to_payload"]
