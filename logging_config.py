"""
Logging configuration.

Usage:
    from logging_config import configure_logging

    configure_logging(level="INFO", json_output=True)

    logger = logging.getLogger(__name__)
    logger.info("Order dispatched", extra={"fields": {"order_id": "123"}})
"""
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_CONFIGURED = False


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with structured ``fields`` merged in."""

    def format(self, record: logging.LogRecord) -> str:
        result: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        fields = getattr(record, "fields", None)
        if isinstance(fields, dict):
            result.update(fields)
        if record.exc_info:
            result["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else "Unknown",
                "message": str(record.exc_info[1]) if record.exc_info[1] else "",
                "traceback": self.formatException(record.exc_info),
            }
        return json.dumps(result, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter with structured field support."""

    def format(self, record: logging.LogRecord) -> str:
        parts = [
            datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S"),
            f"[{record.levelname}]",
            f"[{record.name}]",
            record.getMessage(),
        ]
        fields = getattr(record, "fields", None)
        if isinstance(fields, dict) and fields:
            parts.append(" ".join(f"{k}={v}" for k, v in fields.items()))
        text = " ".join(parts)
        if record.exc_info:
            text = f"{text}\n{self.formatException(record.exc_info)}"
        return text


def configure_logging(level: Optional[str] = None, json_output: Optional[bool] = None) -> None:
    """Install a single stream handler on the root logger.

    Safe to call more than once; later calls only adjust the level.
    """
    global _CONFIGURED
    from config import settings

    level_name = (level or settings.LOG_LEVEL).upper()
    if json_output is None:
        json_output = settings.LOG_FORMAT.lower() == "json"

    root = logging.getLogger()
    root.setLevel(level_name)
    if _CONFIGURED:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if json_output else TextFormatter())
    root.addHandler(handler)

    # aiohttp access logs are noisy at INFO
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    _CONFIGURED = True
