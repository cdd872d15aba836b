"""Адаптер зовнішнього LLM-класифікатора з детермінованою заглушкою."""
from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from typing import Any, List, Sequence

from google import genai
from pydantic import BaseModel, ConfigDict, Field, field_validator

from threatwatcher.analyzer.prompt import MOCK_AI_RESPONSE, build_prompt
from threatwatcher.config import Settings
from threatwatcher.db.models import Anomaly, LogEntry, Severity, clamp_confidence
from threatwatcher.logging import logger

_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
DEFAULT_THREAT_SUMMARY = "No specific threats detected"
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash-lite"


class AiAnomalyCandidate(BaseModel):
    """Кандидат в аномалію, запропонований моделлю."""

    model_config = ConfigDict(populate_by_name=True)

    ip: str
    severity: Severity
    reason: str
    ai_explanation: str | None = Field(default=None, alias="aiExplanation")
    recommended_action: str | None = Field(default=None, alias="recommendedAction")
    confidence_score: float | None = Field(default=None, alias="confidenceScore")

    @field_validator("ip", "reason", mode="before")
    @classmethod
    def _require_text(cls, value: Any) -> str:
        text = str(value).strip() if value is not None else ""
        if not text:
            raise ValueError("поле не може бути порожнім")
        return text

    @field_validator("severity", mode="before")
    @classmethod
    def _canonical_severity(cls, value: Any) -> Severity:
        if value is None or not str(value).strip():
            raise ValueError("поле не може бути порожнім")
        return Severity.parse(value)

    @field_validator("confidence_score", mode="after")
    @classmethod
    def _clamp(cls, value: float | None) -> float | None:
        return clamp_confidence(value)


class AiAnalysisResult(BaseModel):
    """Структурована відповідь класифікатора."""

    model_config = ConfigDict(populate_by_name=True)

    new_anomalies: List[AiAnomalyCandidate] = Field(alias="newAnomalies")
    overall_risk_score: int = Field(default=0, alias="overallRiskScore")
    threat_summary: str = Field(default=DEFAULT_THREAT_SUMMARY, alias="threatSummary")
    attack_patterns_detected: List[str] = Field(default_factory=list, alias="attackPatternsDetected")

    @field_validator("overall_risk_score", mode="before")
    @classmethod
    def _clamp_risk(cls, value: Any) -> int:
        if value is None or value == "":
            return 0
        return int(round(max(0.0, min(100.0, float(value)))))

    @field_validator("threat_summary", mode="before")
    @classmethod
    def _summary_default(cls, value: Any) -> str:
        return str(value) if value else DEFAULT_THREAT_SUMMARY

    @field_validator("attack_patterns_detected", mode="before")
    @classmethod
    def _patterns_default(cls, value: Any) -> Any:
        return value or []


def parse_ai_response(text: str) -> AiAnalysisResult:
    """Розбирає текст відповіді; кидає ValueError або ValidationError."""

    cleaned = _FENCE_RE.sub("", text).strip()
    data = json.loads(cleaned)
    if not isinstance(data, dict):
        raise ValueError("Відповідь моделі має бути JSON-обʼєктом")
    return AiAnalysisResult.model_validate(data)


MOCK_RESULT = AiAnalysisResult.model_validate(MOCK_AI_RESPONSE)


class ThreatClassifier(ABC):
    """Класифікатор пакета подій."""

    @abstractmethod
    async def classify(self, logs: Sequence[LogEntry], anomalies: Sequence[Anomaly]) -> AiAnalysisResult:
        """Повертає знахідки для пакета."""

    async def aclose(self) -> None:
        """Звільняє мережеві ресурси."""


class MockClassifier(ThreatClassifier):
    """Повертає однакову відповідь без мережі."""

    async def classify(self, logs: Sequence[LogEntry], anomalies: Sequence[Anomaly]) -> AiAnalysisResult:
        return MOCK_RESULT.model_copy(deep=True)


class GeminiClassifier(ThreatClassifier):
    """Виклик Gemini через асинхронний клієнт google-genai."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_GEMINI_MODEL,
        timeout: float = 30.0,
        client: genai.Client | None = None,
    ) -> None:
        self.model = model
        self._client = client or genai.Client(api_key=api_key, http_options={"timeout": int(timeout * 1000)})

    async def classify(self, logs: Sequence[LogEntry], anomalies: Sequence[Anomaly]) -> AiAnalysisResult:
        prompt = build_prompt(logs, anomalies)
        logger.info("Надсилаємо запит до Gemini", model=self.model, logs=len(logs))
        response = await self._client.aio.models.generate_content(
            model=self.model,
            contents=prompt,
            config={"response_mime_type": "application/json"},
        )
        if not response.text:
            raise ValueError("Gemini повернув порожню відповідь")
        return parse_ai_response(response.text)

    async def aclose(self) -> None:
        await self._client.aio.aclose()


class AiAnalyzer:
    """Обирає справжній класифікатор або заглушку і ніколи не кидає винятків."""

    def __init__(self, classifier: ThreatClassifier | None = None, fallback: ThreatClassifier | None = None) -> None:
        self.classifier = classifier
        self.fallback = fallback or MockClassifier()

    @property
    def enabled(self) -> bool:
        return self.classifier is not None

    async def analyze(self, logs: Sequence[LogEntry], anomalies: Sequence[Anomaly]) -> AiAnalysisResult:
        if self.classifier is None:
            logger.info("AI-аналіз вимкнено, повертаємо заглушку")
            return await self.fallback.classify(logs, anomalies)
        try:
            result = await self.classifier.classify(logs, anomalies)
        except Exception as exc:  # noqa: BLE001
            logger.error("Помилка AI-аналізу, використовуємо заглушку", error=str(exc))
            return await self.fallback.classify(logs, anomalies)
        logger.info("AI-аналіз завершено", new_anomalies=len(result.new_anomalies))
        return result

    async def aclose(self) -> None:
        if self.classifier is not None:
            await self.classifier.aclose()


def build_analyzer(settings: Settings) -> AiAnalyzer:
    """Створює адаптер згідно з налаштуваннями."""

    if not settings.ai_configured:
        logger.warning("GEMINI_API_KEY не задано або AI_ANALYSIS_ENABLED=false, AI-аналіз вимкнено")
        return AiAnalyzer()
    classifier = GeminiClassifier(
        api_key=settings.gemini_api_key or "",
        model=settings.gemini_model,
        timeout=settings.ai_request_timeout,
    )
    logger.info("AI-аналіз увімкнено", model=settings.gemini_model)
    return AiAnalyzer(classifier)


__all__ = [
    "AiAnomalyCandidate",
    "AiAnalysisResult",
    "AiAnalyzer",
    "ThreatClassifier",
    "MockClassifier",
    "GeminiClassifier",
    "DEFAULT_GEMINI_MODEL",
    "MOCK_RESULT",
    "build_analyzer",
    "parse_ai_response",
]
