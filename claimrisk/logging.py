"""
Structured Logging — JSON Output for Production

Configures Python logging to emit structured JSON logs.
Each log entry includes timestamp, level, logger name, the process
component ("api" or "worker") and pid, and any whitelisted context
fields passed via ``extra``.

The API and every worker process log to the same sink; component and
pid are what tell one worker's job lines from another's.

Usage:
    from claimrisk.logging import get_logger
    logger = get_logger("worker")
    logger.info("Job done", extra={"job_id": job.id, "score": 7.4})
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Optional


LOG_LEVEL = os.getenv("CLAIMRISK_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("CLAIMRISK_LOG_FORMAT", "json")  # "json" or "text"

# Context fields copied from the record into the JSON line
_EXTRA_KEYS = (
    "job_id", "claim_id", "tier", "mode", "score", "category",
    "archetype", "confidence", "attempts", "input_type", "error",
    "error_code", "error_type", "duration_ms", "latency_ms",
    "status_code", "method", "path", "url", "model", "status", "errors",
    "poll_interval", "max_attempts",
)


class ProcessContextFilter(logging.Filter):
    """Stamps every record with the component name and process id."""

    def __init__(self, component: str):
        super().__init__()
        self.component = component
        self.pid = os.getpid()

    def filter(self, record: logging.LogRecord) -> bool:
        record.component = self.component
        record.pid = self.pid
        return True


class JSONFormatter(logging.Formatter):
    """Formats log records as JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        component = getattr(record, "component", None)
        if component is not None:
            entry["component"] = component
            entry["pid"] = getattr(record, "pid", None)

        for key in _EXTRA_KEYS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val

        if record.exc_info and record.exc_info[0]:
            entry.setdefault("error_type", record.exc_info[0].__name__)
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable format for development. Appends the job id when present."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        job_id = getattr(record, "job_id", None)
        if job_id:
            line = f"{line} [job {job_id}]"
        return line


def setup_logging(component: str = "api", level: Optional[str] = None):
    """Configure the claimrisk logger tree. Call once at process start."""
    root = logging.getLogger("claimrisk")
    root.setLevel(getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO))

    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if LOG_FORMAT == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(TextFormatter())
    handler.addFilter(ProcessContextFilter(component))

    root.addHandler(handler)

    # Suppress noisy third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("google_genai").setLevel(logging.WARNING)

    return root


def get_logger(name: str) -> logging.Logger:
    """Get a named logger under the claimrisk namespace."""
    return logging.getLogger(f"claimrisk.{name}")
