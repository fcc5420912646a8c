"""Environment configuration for the Flowform engine."""
from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Prometheus exporter
ENABLE_METRICS = _env_flag("ENABLE_METRICS", "false")
METRICS_PORT = int(os.getenv("METRICS_PORT", "8001"))

# Optimistic-concurrency retry policy for check-then-apply edits
CONFLICT_MAX_RETRIES = int(os.getenv("CONFLICT_MAX_RETRIES", "3"))
CONFLICT_RETRY_MAX_WAIT = float(os.getenv("CONFLICT_RETRY_MAX_WAIT", "1.0"))

# Rule summaries truncate long comparands to this many characters
SUMMARY_VALUE_MAX_CHARS = int(os.getenv("SUMMARY_VALUE_MAX_CHARS", "20"))
