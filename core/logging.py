# ============================================================================
# STRUCTURED LOGGING
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Core - Structured logging with run/branch/block context
# PURPOSE: Consistent, queryable logging across scheduler, workers, branches
# CREATED: 16 OCT 2026
# EXPORTS: ComponentType, LogContext, log_context, get_current_context,
#          ContextFilter, StructuredFormatter, HumanFormatter, ContextLogger,
#          get_logger, configure_logging, log_event
# ============================================================================
"""
Structured Logging

Every record emitted while a block runs can be traced back to its run,
branch and block without threading ids through call signatures:

    with log_context(run_id="run-1", branch_id="branch-fast"):
        with log_context(block_id="lexer", worker_id="block_0"):
            logger.info("Block started")

Contexts nest per thread. Worker threads start with an empty stack, so
the scheduler opens a fresh context inside each submitted block.

ContextFilter (installed by configure_logging) stamps the active context
onto each record as `record.context`, so plain `logging.getLogger()`
loggers get the same fields as ContextLogger ones.

Output:
    JSON (LOG_FORMAT=json)  one object per line for log aggregation
    human (default)         "<time> <LEVEL> <logger> [run=.., block=..]: msg"
"""

import json
import logging
import os
import sys
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, IO, Iterator, List, Optional, Union


class ComponentType(str, Enum):
    """Subsystems that emit logs."""
    SCHEDULER = "scheduler"
    WORKER = "worker"
    RECOVERY = "recovery"
    CHECKPOINT = "checkpoint"
    RESOURCES = "resources"
    BRANCHES = "branches"


# ============================================================================
# CONTEXT
# ============================================================================

@dataclass(frozen=True)
class LogContext:
    """Identifiers attached to every record logged inside a log_context()."""
    run_id: Optional[str] = None
    branch_id: Optional[str] = None
    block_id: Optional[str] = None
    checkpoint_id: Optional[str] = None
    worker_id: Optional[str] = None
    component: Optional[str] = None
    operation: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def child(self, **overrides: Any) -> "LogContext":
        """
        Derive a nested context.

        Raises:
            TypeError on unknown field names
        """
        extra = {**self.extra, **(overrides.pop("extra", None) or {})}
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise TypeError(f"Unknown log context fields: {unknown}")
        return replace(self, extra=extra, **overrides)

    def to_dict(self) -> Dict[str, Any]:
        """Set fields only, with extra merged in."""
        data = {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "extra" and getattr(self, f.name) is not None
        }
        data.update(self.extra)
        return data


_EMPTY_CONTEXT = LogContext()
_local = threading.local()


def _stack() -> List[LogContext]:
    stack = getattr(_local, "stack", None)
    if stack is None:
        stack = _local.stack = []
    return stack


def get_current_context() -> LogContext:
    """Innermost context of the calling thread."""
    stack = _stack()
    return stack[-1] if stack else _EMPTY_CONTEXT


@contextmanager
def log_context(**overrides: Any) -> Iterator[LogContext]:
    """
    Push a nested context for the duration of the block.

    Fields not given are inherited from the enclosing context; `extra` is
    merged key by key.
    """
    context = get_current_context().child(**overrides)
    stack = _stack()
    stack.append(context)
    try:
        yield context
    finally:
        stack.pop()


def _record_context(record: logging.LogRecord) -> Dict[str, Any]:
    stamped = getattr(record, "context", None)
    if stamped is not None:
        return stamped
    return get_current_context().to_dict()


def _record_data(record: logging.LogRecord) -> Dict[str, Any]:
    return getattr(record, "extra", None) or {}


class ContextFilter(logging.Filter):
    """Stamps the emitting thread's context onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "context"):
            record.context = get_current_context().to_dict()
        return True


# ============================================================================
# FORMATTERS
# ============================================================================

class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def __init__(self, include_source: bool = True):
        super().__init__()
        self.include_source = include_source

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = _record_context(record)
        if context:
            payload["context"] = context

        data = _record_data(record)
        if data:
            payload["data"] = data

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        if self.include_source:
            payload["source"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
                "thread": record.threadName,
            }

        return json.dumps(payload, default=str)


class HumanFormatter(logging.Formatter):
    """Single-line console output with the run/branch/block prefix."""

    CONTEXT_LABELS = (("run_id", "run"), ("branch_id", "branch"), ("block_id", "block"))

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        context = _record_context(record)
        labels = [
            f"{label}={context[key]}"
            for key, label in self.CONTEXT_LABELS
            if context.get(key)
        ]
        prefix = f" [{', '.join(labels)}]" if labels else ""

        line = f"{timestamp} {record.levelname:<8} {record.name}{prefix}: {record.getMessage()}"
        data = _record_data(record)
        if data:
            line += f" {data}"
        if record.exc_info:
            line += f"\n{self.formatException(record.exc_info)}"
        return line


# ============================================================================
# LOGGERS
# ============================================================================

class ContextLogger(logging.LoggerAdapter):
    """
    Adapter that files call-site `extra` under record.extra and tags the
    owning component. Context ids are added by the formatters.
    """

    def process(self, msg, kwargs):
        data = dict(kwargs.get("extra") or {})
        component = self.extra.get("component")
        if component is not None:
            data.setdefault("component", getattr(component, "value", component))
        kwargs["extra"] = {"extra": data}
        return msg, kwargs


def get_logger(name: str, component: Optional[ComponentType] = None) -> ContextLogger:
    """Context-aware logger for a module ("orchestrator.scheduler")."""
    return ContextLogger(logging.getLogger(name), {"component": component})


def configure_logging(
    level: Union[str, int] = "INFO",
    json_output: bool = False,
    stream: Optional[IO[str]] = None,
) -> logging.Handler:
    """
    Install a single root handler.

    LOG_LEVEL overrides a string level; LOG_FORMAT=json forces JSON output.

    Returns:
        The installed handler
    """
    if isinstance(level, str):
        level = getattr(logging, os.getenv("LOG_LEVEL", level).upper(), logging.INFO)

    json_output = json_output or os.getenv("LOG_FORMAT", "").lower() == "json"

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StructuredFormatter() if json_output else HumanFormatter())
    handler.addFilter(ContextFilter())

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)
    return handler


# ============================================================================
# EVENTS
# ============================================================================

EVENT_LOGGER_NAME = "orchestrator.events"
_EVENT_CONTEXT_KEYS = ("run_id", "branch_id", "block_id")


def log_event(
    name: str,
    data: Optional[Dict[str, Any]] = None,
    logger: Optional[logging.Logger] = None,
) -> None:
    """
    Log a named milestone ("run_started", "layer_completed", "branch_selected").

    The event record carries the run/branch/block ids of the active context
    so a run can be replayed from the event stream alone.
    """
    context = get_current_context().to_dict()
    event: Dict[str, Any] = {"event": name}
    event.update({key: context[key] for key in _EVENT_CONTEXT_KEYS if key in context})
    if data:
        event["data"] = data

    (logger or logging.getLogger(EVENT_LOGGER_NAME)).info(
        f"EVENT: {name}", extra={"extra": event}
    )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ComponentType",
    "LogContext",
    "log_context",
    "get_current_context",
    "ContextFilter",
    "StructuredFormatter",
    "HumanFormatter",
    "ContextLogger",
    "get_logger",
    "configure_logging",
    "log_event",
    "EVENT_LOGGER_NAME",
]
