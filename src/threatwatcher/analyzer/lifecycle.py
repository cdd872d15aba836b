"""Зміна статусу аномалії за правилами життєвого циклу."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from threatwatcher.db.models import AnomalyStatus, utcnow
from threatwatcher.logging import logger
from threatwatcher.storage.base import AnomalyStore


@dataclass
class StatusUpdateResult:
    success: bool
    message: str


async def update_anomaly_status(
    store: AnomalyStore,
    anomaly_id: int,
    status: str,
    resolution_notes: str | None = None,
    resolved_by: str | None = None,
) -> StatusUpdateResult:
    """OPEN -> INVESTIGATING/FALSE_POSITIVE/RESOLVED, INVESTIGATING -> FALSE_POSITIVE/RESOLVED."""

    try:
        target = AnomalyStatus(str(status).strip().upper())
    except ValueError:
        return StatusUpdateResult(False, f"Unknown status: {status}")

    try:
        anomaly = await store.get_anomaly(anomaly_id)
    except Exception as exc:  # noqa: BLE001
        logger.error("Не вдалося прочитати аномалію", anomaly_id=anomaly_id, error=str(exc))
        return StatusUpdateResult(False, "Failed to update anomaly status")
    if anomaly is None:
        return StatusUpdateResult(False, f"Anomaly {anomaly_id} not found")

    current = AnomalyStatus(anomaly.status or AnomalyStatus.OPEN)
    if not current.can_transition_to(target):
        return StatusUpdateResult(False, f"Cannot change status from {current.value} to {target.value}")

    changes: dict[str, Any] = {"status": target}
    if resolution_notes is not None:
        changes["resolution_notes"] = resolution_notes
    if resolved_by is not None:
        changes["resolved_by"] = resolved_by
    if target.is_terminal:
        changes["resolved_at"] = utcnow()

    try:
        await store.update_anomaly(anomaly_id, **changes)
    except Exception as exc:  # noqa: BLE001
        logger.error("Не вдалося оновити статус аномалії", anomaly_id=anomaly_id, error=str(exc))
        return StatusUpdateResult(False, "Failed to update anomaly status")

    logger.info("Статус аномалії змінено", anomaly_id=anomaly_id, status=target.value)
    return StatusUpdateResult(True, f"Anomaly {anomaly_id} marked as {target.value}")


__all__ = ["update_anomaly_status", "StatusUpdateResult"]
