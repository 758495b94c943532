"""
utils/loggers.py

get_logger(name)  -> plain stream logger used by repositories and controllers.
log_event(...)    -> one JSON line per phase of a long-running operation
                     (balance recalculation progress and the like).
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Dict

from ..config import LOG_LEVEL

__all__ = ["get_logger", "get_event_logger", "log_event"]

_EVENT_LOGGER_NAME = "inventory_ledger.events"


def get_logger(name="inventory_ledger"):
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.setLevel(LOG_LEVEL)
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        logger.addHandler(ch)
    return logger


class _JsonLineFormatter(logging.Formatter):
    """
    {"ts":"2025-09-16T12:00:01.123Z","level":"INFO","name":"...","msg":"...","extra":{...}}
    """
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if hasattr(record, "extra_payload") and isinstance(record.extra_payload, dict):
            payload["extra"] = record.extra_payload
        return json.dumps(payload, ensure_ascii=False, default=str)


def get_event_logger() -> logging.Logger:
    logger = logging.getLogger(_EVENT_LOGGER_NAME)
    if not logger.handlers:
        logger.setLevel(LOG_LEVEL)
        logger.propagate = False
        sh = logging.StreamHandler()
        sh.setFormatter(_JsonLineFormatter())
        logger.addHandler(sh)
    return logger


def log_event(
    logger: logging.Logger,
    op: str,
    phase: str,
    message: str,
    extra: Dict[str, object] | None = None,
    level: int = logging.INFO,
) -> None:
    """
    Log a structured event line.

    Args:
        logger: Usually get_event_logger().
        op: Operation name, e.g. "recalculate".
        phase: Phase within the operation, e.g. "start", "chunk", "done".
        message: Short human-readable message.
        extra: Additional key/values (company id, counts, durations).
    """
    extra_payload = {"op": op, "phase": phase}
    if extra:
        for k, v in extra.items():
            if k not in extra_payload:
                extra_payload[k] = v
    logger.log(level, message, extra={"extra_payload": extra_payload})
