# ==============================
# Logging Bootstrap
# ==============================
"""
Logging bootstrap.

Goals:
- Centralize logger configuration using Settings.logging.
- Provide structured context fields (run_id, parent_run_id, step_number, tool, event).
- Keep it simple: stdlib logging + JSON-lines formatter.

Engine modules log under "agentloop.*":
  agentloop.engine   run/step lifecycle
  agentloop.tools    tool dispatch (arguments redacted)
  agentloop.events   failing callback listeners
"""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from typing import IO, Any, Dict, List, Optional

from agentloop.config.schema import Settings

CONTEXT_FIELDS = ("run_id", "parent_run_id", "tags", "step_number", "tool", "event", "payload")


@dataclass(frozen=True)
class LogContext:
    run_id: Optional[str] = None
    parent_run_id: Optional[str] = None
    tags: Optional[List[str]] = None


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for k in CONTEXT_FIELDS:
            value = getattr(record, k, None)
            if value is not None:
                payload[k] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def bootstrap_logger(settings: Settings, *, stream: Optional[IO[str]] = None) -> logging.Logger:
    """
    Configure root logger based on settings.
    Returns a named logger ("agentloop").
    """
    level = getattr(logging, settings.logging.level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)

    # clear existing handlers to avoid duplicates in reload
    root.handlers = []

    if settings.logging.console:
        handler: logging.Handler = logging.StreamHandler(stream or sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(JsonLineFormatter())
    else:
        handler = logging.NullHandler()
    root.addHandler(handler)

    return logging.getLogger("agentloop")


class ContextAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges call-site `extra` over the bound context."""

    def process(self, msg: Any, kwargs: Any) -> Any:
        kwargs["extra"] = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        return msg, kwargs


def with_context(logger: logging.Logger, ctx: Any) -> logging.LoggerAdapter:
    """Adapter stamping run identity on every record. Accepts a RunContext or LogContext."""
    return ContextAdapter(
        logger,
        {
            "run_id": getattr(ctx, "run_id", None),
            "parent_run_id": getattr(ctx, "parent_run_id", None),
            "tags": list(getattr(ctx, "tags", None) or []) or None,
        },
    )
