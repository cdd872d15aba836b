"""Конфігурація сервісу через pydantic-settings."""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PLACEHOLDER_API_KEY = "your_gemini_api_key_here"


class Settings(BaseSettings):
    """Загальні налаштування для всіх компонентів."""

    database_url: str = Field(..., alias="DATABASE_URL")
    storage_backend: Literal["sql", "memory"] = Field("sql", alias="STORAGE_BACKEND")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    ai_analysis_enabled: bool = Field(False, alias="AI_ANALYSIS_ENABLED")
    gemini_api_key: str | None = Field(None, alias="GEMINI_API_KEY")
    gemini_model: str = Field("gemini-2.5-flash-lite", alias="GEMINI_MODEL")
    ai_request_timeout: float = Field(30.0, alias="AI_REQUEST_TIMEOUT")

    ai_analysis_interval_minutes: int = Field(5, alias="AI_ANALYSIS_INTERVAL_MINUTES")
    ai_batch_size: int = Field(50, alias="AI_BATCH_SIZE")
    ai_cooldown_seconds: int = Field(120, alias="AI_COOLDOWN_SECONDS")
    ai_link_fallback_to_first_log: bool = Field(False, alias="AI_LINK_FALLBACK_TO_FIRST_LOG")

    fanout_queue_size: int = Field(1000, alias="FANOUT_QUEUE_SIZE")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    @field_validator("ai_analysis_interval_minutes", "ai_batch_size", "fanout_queue_size", mode="before")
    @classmethod
    def _positive_or_default(cls, value: object, info: ValidationInfo) -> object:
        defaults = {"ai_analysis_interval_minutes": 5, "ai_batch_size": 50, "fanout_queue_size": 1000}
        return cls._parse_positive(value, defaults[info.field_name])

    @field_validator("ai_cooldown_seconds", mode="before")
    @classmethod
    def _non_negative_cooldown(cls, value: object) -> object:
        return cls._parse_positive(value, 120, allow_zero=True)

    @staticmethod
    def _parse_positive(raw: object, default: int, allow_zero: bool = False) -> int:
        """Перетворює значення на додатне ціле, інакше повертає дефолт."""

        if raw is None or raw == "":
            return default
        try:
            value = int(raw)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return default
        if value < 0 or (value == 0 and not allow_zero):
            return default
        return value

    @property
    def ai_configured(self) -> bool:
        """Чи можна звертатися до зовнішнього класифікатора."""

        key = (self.gemini_api_key or "").strip()
        return self.ai_analysis_enabled and bool(key) and key != PLACEHOLDER_API_KEY


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Повертає кешований екземпляр налаштувань."""

    return Settings()


__all__ = ["Settings", "get_settings", "PLACEHOLDER_API_KEY"]
