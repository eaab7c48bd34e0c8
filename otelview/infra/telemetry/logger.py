"""
Structured Logger
==================

Structured JSON logging with automatic message-context injection.
While a broker message is being processed, its topic, partition and
offset are attached to every log line emitted by the pipeline.

Design:
  - JSON-structured output for machine parsing
  - Human-readable fallback for development
  - Automatic context injection (topic, partition, offset)
  - Lazy formatting: disabled levels cost one isEnabledFor() check
  - Async-compatible (context lives in ContextVars)
"""

from __future__ import annotations

import json
import logging
import os
import sys
import traceback
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# ── Context Variables ──────────────────────────────────────────────

_topic: ContextVar[str | None] = ContextVar("topic", default=None)
_partition: ContextVar[int | None] = ContextVar("partition", default=None)
_offset: ContextVar[int | None] = ContextVar("offset", default=None)

@contextmanager
def message_context(
    *,
    topic: str | None = None,
    partition: int | None = None,
    offset: int | None = None,
) -> Iterator[None]:
    """Bind broker message coordinates to log lines emitted inside the block."""
    tokens = (_topic.set(topic), _partition.set(partition), _offset.set(offset))
    try:
        yield
    finally:
        _offset.reset(tokens[2])
        _partition.reset(tokens[1])
        _topic.reset(tokens[0])

def current_message_context() -> dict[str, Any]:
    fields = {
        "topic": _topic.get(None),
        "partition": _partition.get(None),
        "offset": _offset.get(None),
    }
    return {k: v for k, v in fields.items() if v is not None}

# ── Structured Formatter ──────────────────────────────────────────

_RESERVED = frozenset({
    "name", "msg", "args", "created", "relativeCreated",
    "exc_info", "exc_text", "stack_info", "lineno", "funcName",
    "pathname", "filename", "module", "levelno", "levelname",
    "thread", "threadName", "process", "processName", "msecs",
    "taskName", "message",
})

_JSON_SAFE = (str, int, float, bool, type(None))

class StructuredFormatter(logging.Formatter):
    """JSON-structured log formatter with automatic context injection."""

    def __init__(self, *, json_output: bool = True, include_traceback: bool = True):
        super().__init__()
        self._json = json_output
        self._include_tb = include_traceback
        self._pid = os.getpid()

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
            "pid": self._pid,
        }

        ctx = current_message_context()
        if ctx:
            entry["context"] = ctx

        extras: dict[str, Any] = {}
        for key, val in record.__dict__.items():
            if key.startswith("_") or key in _RESERVED:
                continue
            extras[key] = val if isinstance(val, _JSON_SAFE) else str(val)
        if extras:
            entry["data"] = extras

        if record.exc_info and self._include_tb:
            entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info)
                if record.exc_info[2]
                else None,
            }

        if self._json:
            return json.dumps(entry, default=str, ensure_ascii=False)

        # Human-readable fallback
        where = "-"
        if ctx:
            where = f"{ctx.get('topic', '?')}[{ctx.get('partition', '?')}]@{ctx.get('offset', '?')}"
        line = (
            f"{entry['timestamp']} | {entry['level']:8s} | "
            f"{where} | {entry['logger']}:{entry['line']} | "
            f"{entry['message']}"
        )
        if extras:
            line += " " + " ".join(f"{k}={v}" for k, v in extras.items())
        if "exception" in entry and entry["exception"]["traceback"]:
            line += "\n" + "".join(entry["exception"]["traceback"]).rstrip()
        return line

# ── Structured Logger ─────────────────────────────────────────────

class StructuredLogger:
    """
    Wrapper around stdlib logger providing structured logging helpers.

    Usage:
        log = StructuredLogger("otelview.ingest.driver")
        log.info("consumer_started", topics=["otlp.traces", "otlp.logs"])
        log.warning("frame_fallback", reason="bad chunk")
    """

    __slots__ = ("_logger", "_name")

    def __init__(self, name: str):
        self._name = name
        self._logger = logging.getLogger(name)

    @property
    def name(self) -> str:
        return self._name

    def _log(self, level: int, event: str, **kwargs: Any) -> None:
        if not self._logger.isEnabledFor(level):
            return
        self._logger.log(level, event, extra=kwargs, stacklevel=3)

    def debug(self, event: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, event, **kwargs)

    def info(self, event: str, **kwargs: Any) -> None:
        self._log(logging.INFO, event, **kwargs)

    def warning(self, event: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, event, **kwargs)

    def error(self, event: str, exc: BaseException | None = None, **kwargs: Any) -> None:
        if exc:
            self._logger.error(event, extra=kwargs, exc_info=exc, stacklevel=2)
        else:
            self._log(logging.ERROR, event, **kwargs)

# ── Setup ──────────────────────────────────────────────────────────

_initialized = False

def setup_logging(
    *,
    level: str = "INFO",
    json_output: bool | None = None,
    environment: str | None = None,
) -> None:
    """
    Initialize the logging system. Call once at application startup.

    Args:
        level: Root log level
        json_output: Force JSON output. Auto-detects if None (JSON outside development)
        environment: Deployment environment name used for auto-detection
    """
    global _initialized
    if _initialized:
        return
    _initialized = True

    if json_output is None:
        env = environment or os.getenv("ENVIRONMENT", "development")
        json_output = env != "development"

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(StructuredFormatter(json_output=json_output))
    console.setLevel(logging.DEBUG)
    root.addHandler(console)

    # Reduce noise from third-party libraries
    for noisy in ("aiokafka", "kafka", "asyncio", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(name)
