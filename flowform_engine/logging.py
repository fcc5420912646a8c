"""Central logging and metrics configuration for the Flowform engine."""
from __future__ import annotations

import functools
import json
import sys
import time
from contextvars import ContextVar
from typing import Any, Dict

from loguru import logger
from prometheus_client import Counter, Histogram, start_http_server

from . import config

# Context variable for trace id so lower layers can attach it
trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)

_handler_id: int | None = None
_metrics_started = False


class JsonSink:
    """Loguru sink that outputs each record as a JSON line."""

    def __call__(self, message):  # type: ignore[override]
        record = message.record
        log_obj: Dict[str, Any] = {
            "timestamp": record["time"].isoformat(),
            "level": record["level"].name,
            "message": record["message"],
            **record["extra"],
        }
        trace_id = trace_id_var.get()
        if trace_id:
            log_obj["traceId"] = trace_id
        sys.stdout.write(json.dumps(log_obj, default=str) + "\n")


def configure_logging() -> None:
    """Apply JSON logging configuration. Safe to call multiple times."""

    global _handler_id, _metrics_started

    if _handler_id is not None:
        return  # Already configured
    logger.remove()
    _handler_id = logger.add(JsonSink(), level=config.LOG_LEVEL)

    if config.ENABLE_METRICS and not _metrics_started:
        start_http_server(config.METRICS_PORT)
        _metrics_started = True


# Prometheus metrics
NAVIGATION_CALLS_TOTAL = Counter(
    "flowform_navigation_calls_total", "Total next-block resolutions", ["outcome"]
)
NAVIGATION_ERRORS_TOTAL = Counter(
    "flowform_navigation_errors_total", "Total next-block resolution errors"
)
NAVIGATION_DURATION = Histogram(
    "flowform_navigation_duration_seconds", "Next-block resolution duration"
)
ORPHAN_ALERTS_TOTAL = Counter(
    "flowform_orphan_alerts_total", "Graph edits that required orphan confirmation"
)
SNAPSHOT_CONFLICTS_TOTAL = Counter(
    "flowform_snapshot_conflicts_total", "Stale snapshot conflicts on check-then-apply"
)


def timed(name: str):
    """Log the wall time of the wrapped call at DEBUG level."""

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                return fn(*args, **kwargs)
            finally:
                duration = (time.perf_counter() - start) * 1000
                logger.debug("perf| {} | {:.2f} ms", name, duration)
        return wrapper
    return decorator
