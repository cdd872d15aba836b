"""Модулі аналізатора."""

from .classifier import AiAnalysisResult, AiAnalyzer, build_analyzer
from .fanout import AnomalyBroadcaster
from .rules_engine import Finding, LogRecord, RuleEngine

__all__ = ["RuleEngine", "LogRecord", "Finding", "AiAnalyzer", "AiAnalysisResult", "build_analyzer", "AnomalyBroadcaster"]
