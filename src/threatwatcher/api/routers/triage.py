"""Зміна статусу аномалій аналітиком."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from threatwatcher.analyzer.lifecycle import update_anomaly_status
from threatwatcher.api.deps import get_storage_from_app
from threatwatcher.api.routers.ingest import OperationResponse
from threatwatcher.metrics import track_request
from threatwatcher.storage.base import AnomalyStore

router = APIRouter()


class StatusUpdatePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str = Field(..., description="OPEN, INVESTIGATING, FALSE_POSITIVE або RESOLVED")
    resolution_notes: str | None = Field(default=None, alias="resolutionNotes")
    resolved_by: str | None = Field(default=None, alias="resolvedBy")


@router.patch("/anomalies/{anomaly_id}/status", response_model=OperationResponse)
async def update_status(
    anomaly_id: int,
    payload: StatusUpdatePayload,
    storage: AnomalyStore = Depends(get_storage_from_app),
) -> OperationResponse:
    track_request("update_status")
    result = await update_anomaly_status(
        storage,
        anomaly_id,
        payload.status,
        resolution_notes=payload.resolution_notes,
        resolved_by=payload.resolved_by,
    )
    return OperationResponse(success=result.success, message=result.message)


__all__ = ["router"]
