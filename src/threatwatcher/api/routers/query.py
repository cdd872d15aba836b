"""Ендпоінти запитів."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from threatwatcher.analyzer import queries
from threatwatcher.api.deps import get_storage_from_app
from threatwatcher.metrics import track_request
from threatwatcher.storage.base import AnomalyStore

router = APIRouter()


@router.get("/anomalies")
async def list_anomalies(
    limit: int = Query(default=15, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    storage: AnomalyStore = Depends(get_storage_from_app),
) -> dict[str, Any]:
    track_request("anomalies")
    return await queries.anomalies_page(storage, limit=limit, offset=offset)


@router.get("/anomalies/ip/{ip}")
async def list_anomalies_by_ip(
    ip: str,
    storage: AnomalyStore = Depends(get_storage_from_app),
) -> list[dict[str, Any]]:
    track_request("anomalies_by_ip")
    return await queries.anomalies_by_ip(storage, ip)


@router.get("/logs/ip/{ip}")
async def list_logs_by_ip(
    ip: str,
    storage: AnomalyStore = Depends(get_storage_from_app),
) -> list[dict[str, Any]]:
    track_request("logs_by_ip")
    return await queries.logs_by_ip(storage, ip)


__all__ = ["router"]
