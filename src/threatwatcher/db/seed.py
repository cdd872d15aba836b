"""Простий скрипт наповнення прикладами подій."""
from __future__ import annotations

import asyncio

from threatwatcher.workers.ingestor import IngestionPipeline

SAMPLE_EVENTS: list[dict[str, str]] = [
    *(
        {"source": "sshd", "event": "Failed password for admin", "event_type": "FAILED_LOGIN", "ip": "203.0.113.10", "user": "admin"}
        for _ in range(6)
    ),
    {"source": "sudo", "event": "user ran sudo su", "event_type": "SUDO_COMMAND", "ip": "10.0.0.12", "user": "deploy"},
    {"source": "nginx", "event": "GET /admin", "event_type": "HTTP_REQUEST", "ip": "198.51.100.7", "user": "-"},
]


async def seed(pipeline: IngestionPipeline) -> int:
    """Проганяє приклади через конвеєр і повертає кількість створених аномалій."""

    created = 0
    for sample in SAMPLE_EVENTS:
        result = await pipeline.ingest(**sample)
        created += len(result.anomalies)
    return created


async def _seed_database() -> None:
    from threatwatcher.analyzer.fanout import AnomalyBroadcaster
    from threatwatcher.db.session import init_models
    from threatwatcher.storage.sql import SqlAnomalyStore

    await init_models()
    store = SqlAnomalyStore()
    try:
        await seed(IngestionPipeline(store, AnomalyBroadcaster()))
    finally:
        await store.close()


def main() -> None:
    asyncio.run(_seed_database())


if __name__ == "__main__":
    main()
