"""Залежності FastAPI, що дістають компоненти зі стану застосунку."""
from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request

from threatwatcher.storage.base import AnomalyStore
from threatwatcher.workers.ingestor import IngestionPipeline
from threatwatcher.workers.scheduler import AnalysisScheduler


def _from_state(request: Request, name: str) -> Any:
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(status_code=503, detail=f"Компонент {name} не ініціалізовано")
    return value


async def get_storage_from_app(request: Request) -> AnomalyStore:
    return _from_state(request, "storage")


async def get_pipeline(request: Request) -> IngestionPipeline:
    return _from_state(request, "pipeline")


async def get_scheduler(request: Request) -> AnalysisScheduler:
    return _from_state(request, "scheduler")


__all__ = ["get_storage_from_app", "get_pipeline", "get_scheduler"]
