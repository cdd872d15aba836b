"""Запити для API: сторінки аномалій, події за ip, AI-зведення."""
from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Any

from threatwatcher.analyzer.serialize import anomaly_to_payload, isoformat, log_to_payload
from threatwatcher.db.models import Anomaly, DetectionSource, utcnow
from threatwatcher.logging import logger
from threatwatcher.storage.base import AnomalyStore

LOGS_BY_IP_LIMIT = 100
ANOMALIES_BY_IP_LIMIT = 100
SUMMARY_WINDOW = timedelta(hours=1)
REASONS_SCAN_LIMIT = 1000
DEFAULT_CONFIDENCE = 50.0
TOP_THREATS = 5
TOP_PATTERNS = 3
AI_SOURCES = (DetectionSource.AI, DetectionSource.HYBRID)


async def anomalies_page(store: AnomalyStore, limit: int = 15, offset: int = 0) -> dict[str, Any]:
    """Сторінка аномалій від новіших до старіших."""

    try:
        anomalies = await store.list_anomalies(limit=limit, offset=offset)
        total = await store.count_anomalies()
    except Exception as exc:  # noqa: BLE001
        logger.error("Не вдалося отримати аномалії", error=str(exc))
        anomalies, total = [], 0
    return {
        "anomalies": [anomaly_to_payload(item) for item in anomalies],
        "totalCount": total,
        "hasNextPage": offset + limit < total,
        "hasPreviousPage": offset > 0,
    }


async def logs_by_ip(store: AnomalyStore, ip: str) -> list[dict[str, Any]]:
    try:
        logs = await store.list_logs_by_ip(ip, limit=LOGS_BY_IP_LIMIT)
    except Exception as exc:  # noqa: BLE001
        logger.error("Не вдалося отримати події для ip", ip=ip, error=str(exc))
        logs = []
    return [log_to_payload(log) for log in logs]


async def anomalies_by_ip(store: AnomalyStore, ip: str) -> list[dict[str, Any]]:
    try:
        anomalies = await store.list_anomalies_by_ip(ip, limit=ANOMALIES_BY_IP_LIMIT)
    except Exception as exc:  # noqa: BLE001
        logger.error("Не вдалося отримати аномалії для ip", ip=ip, error=str(exc))
        anomalies = []
    return [anomaly_to_payload(item) for item in anomalies]


def _distinct_reasons(anomalies: list[Anomaly], limit: int) -> list[str]:
    seen: list[str] = []
    for item in anomalies:
        if item.reason not in seen:
            seen.append(item.reason)
        if len(seen) >= limit:
            break
    return seen


def round_risk(average: float | None) -> int:
    """Округлює середню впевненість до цілого (половина вгору), не більше 100."""

    if average is None:
        return 0
    return min(100, int(math.floor(average + 0.5)))


def risk_score(anomalies: list[Anomaly]) -> int:
    """Середня впевненість (без оцінки = 50), округлена, не більше 100."""

    if not anomalies:
        return 0
    scores = [item.confidence_score if item.confidence_score is not None else DEFAULT_CONFIDENCE for item in anomalies]
    return round_risk(sum(scores) / len(scores))


async def ai_summary(store: AnomalyStore, last_analysis_time: datetime, now: datetime | None = None) -> dict[str, Any]:
    """Зведення AI/HYBRID аномалій за останню годину.

    Кількість і середня впевненість рахуються по всьому вікну; рядки
    читаються лише для найсвіжіших причин.
    """

    since = (now or utcnow()) - SUMMARY_WINDOW
    try:
        total, average = await store.confidence_stats_since(since, AI_SOURCES, DEFAULT_CONFIDENCE)
        anomalies = await store.list_anomalies_since(since, limit=REASONS_SCAN_LIMIT, sources=AI_SOURCES)
    except Exception as exc:  # noqa: BLE001
        logger.error("Не вдалося побудувати AI-зведення", error=str(exc))
        total, average, anomalies = 0, None, []
    return {
        "lastAnalysisTime": isoformat(last_analysis_time),
        "overallRiskScore": round_risk(average),
        "topThreats": _distinct_reasons(anomalies, TOP_THREATS),
        "attackPatternsDetected": _distinct_reasons(anomalies, TOP_PATTERNS),
        "totalAiAnomalies": total,
    }


__all__ = ["anomalies_page", "logs_by_ip", "anomalies_by_ip", "ai_summary", "risk_score", "round_risk"]
