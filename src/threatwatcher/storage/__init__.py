"""Фабрика сховищ подій та аномалій."""
from __future__ import annotations

from threatwatcher.config import get_settings
from threatwatcher.storage.base import AnomalyStore
from threatwatcher.storage.memory import MemoryAnomalyStore


def get_storage() -> AnomalyStore:
    """Повертає сховище залежно від конфігурації."""

    settings = get_settings()
    if settings.storage_backend == "memory":
        return MemoryAnomalyStore()
    from threatwatcher.storage.sql import SqlAnomalyStore

    return SqlAnomalyStore()


__all__ = ["get_storage", "AnomalyStore", "MemoryAnomalyStore"]
