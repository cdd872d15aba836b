"""ORM-моделі для журналу подій та аномалій."""
from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import Enum, Float, ForeignKey, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# Правила мають фіксовану впевненість 0.8 за шкалою 0..1; зберігаємо у відсотках.
RULE_CONFIDENCE = 80.0
DEFAULT_REASON = "No specific anomalies detected"


def utcnow() -> datetime:
    """Поточний час у UTC без tzinfo (так само, як зберігає БД)."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


def clamp_confidence(value: float | None) -> float | None:
    """Обмежує оцінку впевненості діапазоном 0..100."""

    if value is None:
        return None
    return max(0.0, min(100.0, float(value)))


class Severity(str, enum.Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @classmethod
    def parse(cls, value: "str | Severity") -> "Severity":
        """Приймає рівень у будь-якому регістрі."""

        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError as exc:
            raise ValueError(f"Невідомий рівень критичності: {value!r}") from exc


class DetectionSource(str, enum.Enum):
    RULE = "RULE"
    AI = "AI"
    HYBRID = "HYBRID"


class AnomalyStatus(str, enum.Enum):
    OPEN = "OPEN"
    INVESTIGATING = "INVESTIGATING"
    FALSE_POSITIVE = "FALSE_POSITIVE"
    RESOLVED = "RESOLVED"

    @property
    def is_terminal(self) -> bool:
        return self in (AnomalyStatus.FALSE_POSITIVE, AnomalyStatus.RESOLVED)

    def can_transition_to(self, target: "AnomalyStatus") -> bool:
        """Перевіряє, чи дозволений перехід життєвого циклу."""

        return target in _STATUS_TRANSITIONS[self]


_STATUS_TRANSITIONS: dict[AnomalyStatus, frozenset[AnomalyStatus]] = {
    AnomalyStatus.OPEN: frozenset(
        {AnomalyStatus.INVESTIGATING, AnomalyStatus.FALSE_POSITIVE, AnomalyStatus.RESOLVED}
    ),
    AnomalyStatus.INVESTIGATING: frozenset({AnomalyStatus.FALSE_POSITIVE, AnomalyStatus.RESOLVED}),
    AnomalyStatus.FALSE_POSITIVE: frozenset(),
    AnomalyStatus.RESOLVED: frozenset(),
}


class Base(DeclarativeBase):
    """Базовий клас моделей."""


class LogEntry(Base):
    """Одна спостережена подія. Після запису не змінюється."""

    __tablename__ = "log_entries"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    source: Mapped[str] = mapped_column(String(255), nullable=False)
    event: Mapped[str] = mapped_column(Text, nullable=False)
    event_type: Mapped[str | None] = mapped_column(String(128), index=True)
    ip: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    user: Mapped[str] = mapped_column(String(255), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(nullable=False, index=True, default=utcnow)

    __table_args__ = (
        Index("ix_log_entries_ip_type_ts", "ip", "event_type", "timestamp"),
    )


class Anomaly(Base):
    """Підозріла подія, виявлена правилами чи AI."""

    __tablename__ = "anomalies"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    ip: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    severity: Mapped[Severity] = mapped_column(Enum(Severity, native_enum=False, length=16), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(nullable=False, index=True, default=utcnow)
    detection_source: Mapped[DetectionSource] = mapped_column(
        Enum(DetectionSource, native_enum=False, length=16), nullable=False, default=DetectionSource.RULE
    )
    ai_explanation: Mapped[str | None] = mapped_column(Text)
    recommended_action: Mapped[str | None] = mapped_column(Text)
    confidence_score: Mapped[float | None] = mapped_column(Float)
    log_entry_id: Mapped[int | None] = mapped_column(
        ForeignKey("log_entries.id", ondelete="SET NULL"), nullable=True, index=True
    )
    status: Mapped[AnomalyStatus] = mapped_column(
        Enum(AnomalyStatus, native_enum=False, length=32), nullable=False, default=AnomalyStatus.OPEN
    )
    resolution_notes: Mapped[str | None] = mapped_column(Text)
    resolved_by: Mapped[str | None] = mapped_column(String(255))
    resolved_at: Mapped[datetime | None] = mapped_column()

    log_entry: Mapped[LogEntry | None] = relationship(lazy="selectin")

    __table_args__ = (
        Index("ix_anomalies_ip_log_ts", "ip", "log_entry_id", "timestamp"),
    )


__all__ = [
    "Base",
    "LogEntry",
    "Anomaly",
    "Severity",
    "DetectionSource",
    "AnomalyStatus",
    "RULE_CONFIDENCE",
    "DEFAULT_REASON",
    "utcnow",
    "clamp_confidence",
]
