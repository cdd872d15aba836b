"""Health-check ендпоінти."""
from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from fastapi import APIRouter, Request

from threatwatcher.analyzer.serialize import isoformat

router = APIRouter()


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/status")
async def status(request: Request) -> dict[str, Any]:
    """Повертає зведення про стан основних компонентів."""

    state = request.app.state
    components = {
        "database": await _check_storage(getattr(state, "storage", None)),
        "scheduler": _scheduler_state(getattr(state, "scheduler", None)),
        "classifier": _classifier_state(getattr(state, "analyzer", None)),
        "fanout": _fanout_state(getattr(state, "broadcaster", None)),
    }
    overall = _overall_status(components.values())
    return {"status": overall, "components": components}


async def _check_storage(storage: Any) -> dict[str, Any]:
    if storage is None:
        return {"status": "error", "detail": "Сховище не ініціалізовано"}
    backend = type(storage).__name__
    try:
        await storage.ping()
    except Exception as exc:  # noqa: BLE001
        return {"status": "error", "backend": backend, "detail": str(exc)}
    return {"status": "ok", "backend": backend}


def _scheduler_state(scheduler: Any) -> dict[str, Any]:
    if scheduler is None:
        return {"status": "error", "detail": "Планувальник не ініціалізовано"}
    state = scheduler.state
    last_result = state.last_result
    return {
        "status": "ok" if scheduler.is_started else "disabled",
        "running": state.running,
        "lastAnalysisTime": isoformat(state.last_analysis_time),
        "lastOutcome": state.last_outcome.value if state.last_outcome else None,
        "processedLogs": len(state.processed_ids),
        "threatSummary": last_result.threat_summary if last_result else None,
    }


def _classifier_state(analyzer: Any) -> dict[str, Any]:
    if analyzer is None:
        return {"status": "error", "detail": "Класифікатор не ініціалізовано"}
    if not analyzer.enabled:
        return {"status": "degraded", "detail": "AI вимкнено, використовується заглушка"}
    return {"status": "ok", "backend": type(analyzer.classifier).__name__}


def _fanout_state(broadcaster: Any) -> dict[str, Any]:
    if broadcaster is None:
        return {"status": "error", "detail": "Канал подій не ініціалізовано"}
    return {"status": "ok", "channel": broadcaster.channel, "subscribers": broadcaster.subscriber_count}


def _overall_status(components: Iterable[dict[str, Any]]) -> str:
    status = "ok"
    for component in components:
        current = component.get("status", "unknown")
        if current == "disabled":
            continue
        if current == "error":
            return "error"
        if current not in {"ok", "disabled"}:
            status = "degraded"
    return status


__all__ = ["router"]
