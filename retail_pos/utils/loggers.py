# utils/loggers.py
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

__all__ = ["get_logger", "get_event_logger", "log_event"]

_EVENT_LOGGER_NAME = "retail_pos.events"


def get_logger(name="retail_pos"):
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.setLevel(logging.INFO)
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        logger.addHandler(ch)
    return logger


class _JsonLineFormatter(logging.Formatter):
    """
    Minimal JSON-lines formatter:
      {"ts":"2026-10-19T12:00:01.123Z","level":"INFO","name":"retail_pos.events","msg":"...","extra":{...}}
    """
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload = {
            "ts": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if hasattr(record, "extra_payload") and isinstance(record.extra_payload, dict):
            payload["extra"] = record.extra_payload
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def get_event_logger(file_path: Optional[str | Path] = None, level: int = logging.INFO) -> logging.Logger:
    """
    Return the checkout event logger (JSON lines).

    Writes to `file_path` when given, otherwise to stderr. Reuses the same
    logger (no duplicate handlers) across calls.
    """
    logger = logging.getLogger(_EVENT_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    if logger.handlers:
        return logger

    if file_path is not None:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(str(path), mode="a", encoding="utf-8", delay=True)
    else:
        handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(_JsonLineFormatter())
    logger.addHandler(handler)
    return logger


def log_event(
    logger: logging.Logger,
    op: str,
    phase: str,
    message: str,
    extra: Dict[str, object] | None = None,
    level: int = logging.INFO,
    exc_info: bool = False,
) -> None:
    """
    Log a structured event line.

    Args:
        logger: Any logger; get_event_logger() renders the payload as JSON.
        op: Operation name, e.g. "checkout".
        phase: Phase within the operation, e.g. "validate_cart", "payment", "commit".
        message: Human-readable short message.
        extra: Optional additional key/values (ids, amounts, flags).
        level: Logging level (default INFO).
    """
    extra_payload = {"op": op, "phase": phase}
    if extra:
        for k, v in extra.items():
            if k not in extra_payload:
                extra_payload[k] = v

    logger.log(level, message, extra={"extra_payload": extra_payload}, exc_info=exc_info)
