"""Лічильники Prometheus."""
from __future__ import annotations

from prometheus_client import Counter

REQUESTS_TOTAL = Counter("threatwatcher_requests_total", "Кількість HTTP запитів", ["endpoint"])
LOGS_INGESTED_TOTAL = Counter("threatwatcher_logs_ingested_total", "Кількість збережених подій")
ANOMALIES_CREATED_TOTAL = Counter(
    "threatwatcher_anomalies_created_total", "Кількість створених аномалій", ["detection_source"]
)
ANOMALIES_UPGRADED_TOTAL = Counter(
    "threatwatcher_anomalies_upgraded_total", "Кількість аномалій, оновлених до HYBRID"
)
ANALYSIS_CYCLES_TOTAL = Counter("threatwatcher_analysis_cycles_total", "Цикли AI-аналізу", ["outcome"])


def track_request(endpoint: str) -> None:
    REQUESTS_TOTAL.labels(endpoint=endpoint).inc()


__all__ = [
    "REQUESTS_TOTAL",
    "LOGS_INGESTED_TOTAL",
    "ANOMALIES_CREATED_TOTAL",
    "ANOMALIES_UPGRADED_TOTAL",
    "ANALYSIS_CYCLES_TOTAL",
    "track_request",
]
