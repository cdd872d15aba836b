"""Тести планувальника AI-аналізу."""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Any

import pytest

from threatwatcher.analyzer.classifier import AiAnalyzer
from threatwatcher.analyzer.fanout import AnomalyBroadcaster
from threatwatcher.db.models import Anomaly, DetectionSource, LogEntry, Severity, utcnow
from threatwatcher.storage.memory import MemoryAnomalyStore
from threatwatcher.workers.ingestor import IngestionPipeline
from threatwatcher.workers.scheduler import AnalysisScheduler, CycleOutcome


class FakeClock:
    def __init__(self) -> None:
        self.now = utcnow()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def _candidate(ip: str, **overrides: Any) -> dict[str, Any]:
    candidate = {
        "ip": ip,
        "severity": "CRITICAL",
        "reason": "Credential stuffing campaign",
        "aiExplanation": "Many accounts from one host",
        "recommendedAction": "Block the host",
        "confidenceScore": 91,
    }
    candidate.update(overrides)
    return candidate


def _response(*candidates: dict[str, Any]) -> dict[str, Any]:
    return {"newAnomalies": list(candidates), "overallRiskScore": 60, "threatSummary": "Active attack"}


def _scheduler(
    store: MemoryAnomalyStore,
    classifier: Any,
    broadcaster: AnomalyBroadcaster,
    clock: FakeClock | None = None,
    **kwargs: Any,
) -> AnalysisScheduler:
    return AnalysisScheduler(store, AiAnalyzer(classifier), broadcaster, clock=clock or FakeClock(), **kwargs)


async def _add_log(store: MemoryAnomalyStore, ip: str = "10.0.0.1", event_type: str = "LOGIN") -> LogEntry:
    return await store.create_log(
        LogEntry(source="auth", event="login", event_type=event_type, ip=ip, user="alice", timestamp=utcnow())
    )


@pytest.mark.asyncio()
async def test_empty_batch_skips_classifier(memory_store, broadcaster, recording_classifier_factory) -> None:
    classifier = recording_classifier_factory(_response())
    scheduler = _scheduler(memory_store, classifier, broadcaster)

    outcome = await scheduler.trigger()

    assert outcome is CycleOutcome.EMPTY
    assert classifier.calls == []
    assert scheduler.state.last_analysis_time is None


@pytest.mark.asyncio()
async def test_overlapping_cycles_are_skipped(memory_store, broadcaster, recording_classifier_factory) -> None:
    release = asyncio.Event()
    classifier = recording_classifier_factory(_response(), delay=release)
    scheduler = _scheduler(memory_store, classifier, broadcaster)
    await _add_log(memory_store)

    first = asyncio.create_task(scheduler.trigger())
    await asyncio.wait_for(classifier.started.wait(), timeout=1)

    assert scheduler.is_running is True
    assert await scheduler.run_scheduled() is CycleOutcome.SKIPPED_RUNNING
    assert await scheduler.trigger() is CycleOutcome.SKIPPED_RUNNING

    release.set()
    assert await first is CycleOutcome.COMPLETED
    assert len(classifier.calls) == 1
    assert scheduler.is_running is False


@pytest.mark.asyncio()
async def test_cooldown_skips_timer_but_not_manual_trigger(
    memory_store, broadcaster, recording_classifier_factory
) -> None:
    clock = FakeClock()
    classifier = recording_classifier_factory(_response())
    scheduler = _scheduler(memory_store, classifier, broadcaster, clock=clock, cooldown_seconds=120)

    await _add_log(memory_store)
    assert await scheduler.run_scheduled() is CycleOutcome.COMPLETED
    assert scheduler.state.last_analysis_time == clock.now

    await _add_log(memory_store)
    clock.advance(60)
    assert await scheduler.run_scheduled() is CycleOutcome.SKIPPED_COOLDOWN
    assert len(classifier.calls) == 1

    assert await scheduler.trigger() is CycleOutcome.COMPLETED
    assert len(classifier.calls) == 2

    await _add_log(memory_store)
    clock.advance(121)
    assert await scheduler.run_scheduled() is CycleOutcome.COMPLETED
    assert len(classifier.calls) == 3


@pytest.mark.asyncio()
async def test_processed_logs_are_not_reanalyzed(memory_store, broadcaster, recording_classifier_factory) -> None:
    classifier = recording_classifier_factory(_response())
    scheduler = _scheduler(memory_store, classifier, broadcaster)
    first = await _add_log(memory_store)

    assert await scheduler.trigger() is CycleOutcome.COMPLETED
    assert await scheduler.trigger() is CycleOutcome.EMPTY

    second = await _add_log(memory_store, ip="10.0.0.2")
    assert await scheduler.trigger() is CycleOutcome.COMPLETED

    assert [log.id for log in classifier.calls[0][0]] == [first.id]
    assert [log.id for log in classifier.calls[1][0]] == [second.id]
    assert scheduler.state.processed_ids == {second.id}


@pytest.mark.asyncio()
async def test_batch_size_limits_fetch(memory_store, broadcaster, recording_classifier_factory) -> None:
    classifier = recording_classifier_factory(_response())
    scheduler = _scheduler(memory_store, classifier, broadcaster, batch_size=2)
    for index in range(3):
        await _add_log(memory_store, ip=f"10.0.0.{index}")

    await scheduler.trigger()

    assert [log.ip for log in classifier.calls[0][0]] == ["10.0.0.2", "10.0.0.1"]


@pytest.mark.asyncio()
async def test_rule_anomaly_is_upgraded_to_hybrid(memory_store, recording_classifier_factory) -> None:
    broadcaster = AnomalyBroadcaster()
    pipeline = IngestionPipeline(memory_store, broadcaster)
    ingested = await pipeline.ingest(source="auth", event="login", ip="10.0.0.1", user="alice", event_type="LOGIN")
    rule_anomaly = ingested.anomalies[0]

    classifier = recording_classifier_factory(_response(_candidate("10.0.0.1")))
    scheduler = _scheduler(memory_store, classifier, broadcaster)

    async with broadcaster.subscribe() as subscription:
        assert await scheduler.trigger() is CycleOutcome.COMPLETED
        assert subscription.queue.empty()

    upgraded = await memory_store.get_anomaly(rule_anomaly.id)
    assert await memory_store.count_anomalies() == 1
    assert upgraded.detection_source is DetectionSource.HYBRID
    assert upgraded.severity is Severity.LOW
    assert upgraded.reason == "No specific anomalies detected"
    assert upgraded.ai_explanation == "Many accounts from one host"
    assert upgraded.recommended_action == "Block the host"
    assert upgraded.confidence_score == 91.0


@pytest.mark.asyncio()
async def test_hybrid_upgrade_keeps_rule_values_for_missing_ai_fields(
    memory_store, broadcaster, recording_classifier_factory
) -> None:
    pipeline = IngestionPipeline(memory_store, broadcaster)
    ingested = await pipeline.ingest(source="auth", event="login", ip="10.0.0.1", user="alice", event_type="LOGIN")
    rule_anomaly = ingested.anomalies[0]

    bare = {"ip": "10.0.0.1", "severity": "HIGH", "reason": "Suspicious login"}
    classifier = recording_classifier_factory(_response(bare))
    scheduler = _scheduler(memory_store, classifier, broadcaster)

    assert await scheduler.trigger() is CycleOutcome.COMPLETED

    upgraded = await memory_store.get_anomaly(rule_anomaly.id)
    assert upgraded.detection_source is DetectionSource.HYBRID
    assert upgraded.confidence_score == 80.0
    assert upgraded.ai_explanation is None
    assert upgraded.recommended_action is None


@pytest.mark.asyncio()
async def test_existing_ai_anomaly_is_left_alone(memory_store, broadcaster, recording_classifier_factory) -> None:
    clock = FakeClock()
    log = await _add_log(memory_store)
    existing = await memory_store.create_anomaly(
        Anomaly(
            ip="10.0.0.1",
            severity=Severity.HIGH,
            reason="Earlier AI finding",
            timestamp=clock.now,
            detection_source=DetectionSource.AI,
            confidence_score=40.0,
            log_entry_id=log.id,
        )
    )
    classifier = recording_classifier_factory(_response(_candidate("10.0.0.1")))
    scheduler = _scheduler(memory_store, classifier, broadcaster, clock=clock)

    await scheduler.trigger()

    assert await memory_store.count_anomalies() == 1
    assert existing.confidence_score == 40.0
    assert existing.reason == "Earlier AI finding"


@pytest.mark.asyncio()
async def test_new_ai_anomaly_is_linked_and_published(
    memory_store, broadcaster, recording_classifier_factory
) -> None:
    clock = FakeClock()
    log = await _add_log(memory_store, ip="10.0.0.7")
    classifier = recording_classifier_factory(_response(_candidate("10.0.0.7", severity="medium")))
    scheduler = _scheduler(memory_store, classifier, broadcaster, clock=clock)

    async with broadcaster.subscribe() as subscription:
        await scheduler.trigger()
        payload = await asyncio.wait_for(subscription.get(), timeout=1)

    anomalies = await memory_store.list_anomalies()
    assert len(anomalies) == 1
    created = anomalies[0]
    assert created.detection_source is DetectionSource.AI
    assert created.severity is Severity.MEDIUM
    assert created.log_entry_id == log.id
    assert created.timestamp == clock.now
    assert payload["detectionSource"] == "AI"
    assert payload["logEntry"]["id"] == str(log.id)


@pytest.mark.asyncio()
async def test_unmatched_ip_leaves_link_empty(memory_store, broadcaster, recording_classifier_factory) -> None:
    await _add_log(memory_store, ip="10.0.0.1")
    classifier = recording_classifier_factory(_response(_candidate("203.0.113.5")))
    scheduler = _scheduler(memory_store, classifier, broadcaster)

    await scheduler.trigger()

    created = (await memory_store.list_anomalies())[0]
    assert created.ip == "203.0.113.5"
    assert created.log_entry_id is None


@pytest.mark.asyncio()
async def test_link_fallback_uses_first_log(memory_store, broadcaster, recording_classifier_factory) -> None:
    await _add_log(memory_store, ip="10.0.0.1")
    newest = await _add_log(memory_store, ip="10.0.0.2")
    classifier = recording_classifier_factory(_response(_candidate("203.0.113.5")))
    scheduler = _scheduler(memory_store, classifier, broadcaster, link_fallback_to_first_log=True)

    await scheduler.trigger()

    created = (await memory_store.list_anomalies())[0]
    assert created.log_entry_id == newest.id


@pytest.mark.asyncio()
async def test_failed_cycle_resets_running_flag(memory_store, broadcaster) -> None:
    class ExplodingAnalyzer:
        async def analyze(self, logs, anomalies):
            raise RuntimeError("boom")

    scheduler = AnalysisScheduler(memory_store, ExplodingAnalyzer(), broadcaster)
    await _add_log(memory_store)

    assert await scheduler.trigger() is CycleOutcome.FAILED
    assert scheduler.is_running is False
    assert scheduler.state.last_outcome is CycleOutcome.FAILED
    assert scheduler.state.last_analysis_time is not None

    await _add_log(memory_store)
    assert await scheduler.trigger() is CycleOutcome.FAILED


@pytest.mark.asyncio()
async def test_candidate_error_does_not_abort_cycle(memory_store, broadcaster, recording_classifier_factory) -> None:
    class PickyStore(MemoryAnomalyStore):
        async def create_anomaly(self, anomaly):
            if anomaly.ip == "10.0.0.66":
                raise RuntimeError("rejected")
            return await super().create_anomaly(anomaly)

    store = PickyStore()
    await _add_log(store, ip="10.0.0.1")
    classifier = recording_classifier_factory(_response(_candidate("10.0.0.66"), _candidate("10.0.0.77")))
    scheduler = _scheduler(store, classifier, broadcaster)

    assert await scheduler.trigger() is CycleOutcome.COMPLETED
    assert [item.ip for item in await store.list_anomalies()] == ["10.0.0.77"]


@pytest.mark.asyncio()
async def test_last_analysis_time_falls_back_to_start(memory_store, broadcaster, recording_classifier_factory) -> None:
    clock = FakeClock()
    scheduler = _scheduler(memory_store, recording_classifier_factory(_response()), broadcaster, clock=clock)

    assert scheduler.last_analysis_time == clock.now


@pytest.mark.asyncio()
async def test_timer_runs_cycles_until_stopped(memory_store, broadcaster, recording_classifier_factory) -> None:
    classifier = recording_classifier_factory(_response())
    scheduler = AnalysisScheduler(
        memory_store, AiAnalyzer(classifier), broadcaster, interval_minutes=0.001, cooldown_seconds=0
    )
    await _add_log(memory_store)

    scheduler.start()
    assert scheduler.is_started is True
    await asyncio.wait_for(classifier.started.wait(), timeout=2)
    await scheduler.stop()

    assert scheduler.is_started is False
    assert len(classifier.calls) == 1
