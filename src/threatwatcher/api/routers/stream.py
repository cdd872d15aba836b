"""WebSocket-підписка на нові аномалії."""
from __future__ import annotations

import asyncio

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from threatwatcher.analyzer.fanout import AnomalyBroadcaster, Subscription
from threatwatcher.logging import logger

router = APIRouter()


async def _forward(websocket: WebSocket, subscription: Subscription) -> None:
    async for payload in subscription:
        await websocket.send_json(payload)


async def _wait_disconnect(websocket: WebSocket) -> None:
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


@router.websocket("/ws/anomalies")
async def anomaly_stream(websocket: WebSocket) -> None:
    broadcaster: AnomalyBroadcaster = websocket.app.state.broadcaster
    # Підписуємося до accept, щоб клієнт не пропустив події одразу після зʼєднання.
    async with broadcaster.subscribe() as subscription:
        await websocket.accept()
        logger.info("Підписник приєднався", subscribers=broadcaster.subscriber_count)
        sender = asyncio.create_task(_forward(websocket, subscription))
        receiver = asyncio.create_task(_wait_disconnect(websocket))
        done, pending = await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.warning("Підписку закрито з помилкою", error=str(task.exception()))
    logger.info("Підписник відʼєднався", subscribers=broadcaster.subscriber_count)


__all__ = ["router"]
