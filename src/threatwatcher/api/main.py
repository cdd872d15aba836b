"""FastAPI застосунок."""
from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from threatwatcher.analyzer.classifier import build_analyzer
from threatwatcher.analyzer.fanout import AnomalyBroadcaster
from threatwatcher.api.routers import analysis, health, ingest, metrics, query, stream, triage
from threatwatcher.config import get_settings
from threatwatcher.logging import configure_logging, logger
from threatwatcher.storage import get_storage
from threatwatcher.workers.ingestor import IngestionPipeline
from threatwatcher.workers.scheduler import AnalysisScheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Збирає компоненти ядра один раз на процес і зупиняє їх при виході."""

    settings = get_settings()
    configure_logging(settings.log_level)
    storage = get_storage()
    if settings.storage_backend == "sql":
        from threatwatcher.db.session import init_models

        await init_models()

    broadcaster = AnomalyBroadcaster(queue_size=settings.fanout_queue_size)
    analyzer = build_analyzer(settings)
    scheduler = AnalysisScheduler.from_settings(settings, storage, analyzer, broadcaster)

    app.state.settings = settings
    app.state.storage = storage
    app.state.broadcaster = broadcaster
    app.state.analyzer = analyzer
    app.state.scheduler = scheduler
    app.state.pipeline = IngestionPipeline(storage, broadcaster)

    if analyzer.enabled:
        scheduler.start()
    else:
        logger.warning("Планувальник не запущено: AI-аналіз вимкнено, доступний лише ручний запуск")
    try:
        yield
    finally:
        await scheduler.stop()
        await analyzer.aclose()
        await storage.close()


configure_logging()
app = FastAPI(title="ThreatWatcher API", version="0.1.0", lifespan=lifespan)

app.include_router(health.router)
app.include_router(metrics.router)
app.include_router(ingest.router)
app.include_router(query.router)
app.include_router(triage.router)
app.include_router(analysis.router)
app.include_router(stream.router)


def run() -> None:
    """Точка входу threatwatcher-api."""

    import uvicorn

    uvicorn.run("threatwatcher.api.main:app", host="0.0.0.0", port=4000)


__all__ = ["app", "run"]
