"""AI-зведення та ручний запуск аналізу."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from threatwatcher.analyzer.queries import ai_summary
from threatwatcher.api.deps import get_scheduler, get_storage_from_app
from threatwatcher.api.routers.ingest import OperationResponse
from threatwatcher.metrics import track_request
from threatwatcher.storage.base import AnomalyStore
from threatwatcher.workers.scheduler import AnalysisScheduler, CycleOutcome

router = APIRouter(prefix="/ai")

_TRIGGER_MESSAGES: dict[CycleOutcome, str] = {
    CycleOutcome.COMPLETED: "AI analysis completed",
    CycleOutcome.EMPTY: "AI analysis completed: no new logs to analyze",
    CycleOutcome.SKIPPED_RUNNING: "AI analysis already in progress, request skipped",
    CycleOutcome.FAILED: "AI analysis failed, see server logs",
}


@router.get("/summary")
async def analysis_summary(
    storage: AnomalyStore = Depends(get_storage_from_app),
    scheduler: AnalysisScheduler = Depends(get_scheduler),
) -> dict[str, Any]:
    track_request("ai_summary")
    return await ai_summary(storage, scheduler.last_analysis_time)


@router.post("/trigger", response_model=OperationResponse)
async def trigger_analysis(scheduler: AnalysisScheduler = Depends(get_scheduler)) -> OperationResponse:
    track_request("ai_trigger")
    outcome = await scheduler.trigger()
    return OperationResponse(
        success=outcome is not CycleOutcome.FAILED,
        message=_TRIGGER_MESSAGES.get(outcome, outcome.value),
    )


__all__ = ["router"]
