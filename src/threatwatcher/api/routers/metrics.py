"""Ендпоінт Prometheus."""
from __future__ import annotations

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from threatwatcher.metrics import track_request

router = APIRouter()


@router.get("/metrics")
async def metrics() -> Response:
    track_request("metrics")
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)


__all__ = ["router"]
