"""Налаштування структурованого логування через loguru."""
from __future__ import annotations

import json
import sys
from typing import Any, Dict

from loguru import logger


class JsonFormatter:
    """JSON-форматер для loguru, що додає extra-поля та трейсбек."""

    def __call__(self, message: "loguru.Message") -> str:  # type: ignore[name-defined]
        record = message.record
        payload: Dict[str, Any] = {
            "time": record["time"].strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record["level"].name,
            "message": record["message"],
            "module": record["module"],
            "function": record["function"],
            "line": record["line"],
        }
        if record.get("extra"):
            payload.update(record["extra"])
        if record.get("exception") is not None:
            exc_type, exc_value, _ = record["exception"]
            payload["exception"] = f"{getattr(exc_type, '__name__', exc_type)}: {exc_value}"
        return json.dumps(payload, ensure_ascii=False, default=str).replace("{", "{{").replace("}", "}}") + "\n"


def configure_logging(level: str = "INFO") -> None:
    """Ініціалізує логер із JSON-форматом."""

    logger.remove()
    logger.add(sys.stdout, level=level.upper(), serialize=False, format=JsonFormatter())


__all__ = ["configure_logging", "logger"]
