"""Ендпоінт прийому подій."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from threatwatcher.api.deps import get_pipeline
from threatwatcher.metrics import track_request
from threatwatcher.workers.ingestor import IngestionPipeline

router = APIRouter()


class IngestPayload(BaseModel):
    """Обовʼязковість полів перевіряє конвеєр, щоб відповідь мала форму success/message."""

    model_config = ConfigDict(populate_by_name=True)

    source: str | None = Field(default=None, description="Система-джерело")
    event: str | None = Field(default=None, description="Назва події")
    event_type: str | None = Field(default=None, alias="eventType", description="Тип події, напр. FAILED_LOGIN")
    ip: str | None = Field(default=None, description="IP-адреса")
    user: str | None = Field(default=None, description="Користувач")


class OperationResponse(BaseModel):
    success: bool
    message: str


@router.post("/ingest", response_model=OperationResponse)
async def ingest_log(
    payload: IngestPayload,
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> OperationResponse:
    track_request("ingest")
    result = await pipeline.ingest(
        source=payload.source,
        event=payload.event,
        ip=payload.ip,
        user=payload.user,
        event_type=payload.event_type,
    )
    return OperationResponse(success=result.success, message=result.message)


__all__ = ["router", "IngestPayload", "OperationResponse"]
