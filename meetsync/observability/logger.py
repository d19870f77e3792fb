"""
Structured logging for meetsync.

Every helper writes one compact JSON object per line through the module
logger, so both local mutations and push-driven changes can be traced per
meeting. Sentry is optional and only initialized when OBS_ENABLED=true and a
DSN is configured.
"""

import os
import time
import json
import logging
from contextlib import contextmanager
from typing import Dict, Any, Iterator, Optional
from datetime import datetime, timezone

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

from meetsync.core.config import AppConfig

logger = logging.getLogger(__name__)

SENSITIVE_WORDS = ("password", "secret", "key", "token", "auth", "credential")
MAX_TITLE_LENGTH = 100


class TimingContext:
    """Measures the wall time of one operation (a request, a merge)."""

    def __init__(self, operation_name: str):
        self.operation_name = operation_name
        self._started: Optional[float] = None
        self.duration_ms: Optional[float] = None

    def __enter__(self) -> "TimingContext":
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._started is not None:
            self.duration_ms = (time.perf_counter() - self._started) * 1000
            if exc_type is not None:
                logger.debug(f"{self.operation_name} failed after {self.duration_ms:.1f}ms")

    def get_duration_ms(self) -> Optional[float]:
        return self.duration_ms


@contextmanager
def timing(operation_name: str) -> Iterator[TimingContext]:
    with TimingContext(operation_name) as context:
        yield context


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _emit(level: int, entry: Dict[str, Any]) -> None:
    logger.log(level, json.dumps(entry, separators=(',', ':'), default=str))


def log_event(
    action: str,
    source: str,
    meeting_id: Optional[int] = None,
    title: Optional[str] = None,
    duration_ms: Optional[float] = None,
    **kwargs
) -> None:
    """
    Log a change to the local meeting collection.

    Args:
        action: What happened (e.g. 'created', 'responded', 'scheduled', 'deleted', 'voided')
        source: 'local' for the caller's own requests, 'push' for delivered events
        meeting_id: Meeting the change applies to, if any
        title: Meeting title; redacted or truncated before logging
        duration_ms: Request duration in milliseconds, if timed
        **kwargs: Extra fields appended to the entry
    """
    entry: Dict[str, Any] = {
        "timestamp": _timestamp(),
        "action": action,
        "source": source,
    }
    if meeting_id is not None:
        entry["meeting_id"] = meeting_id
    if title is not None:
        entry["title"] = _sanitize_title(title)
    if duration_ms is not None:
        entry["duration_ms"] = round(duration_ms, 2)
    entry.update(kwargs)

    _emit(logging.INFO, entry)


def _sanitize_title(title: str) -> str:
    """Titles mentioning credentials are redacted; long ones are cut to 100 chars."""
    lowered = title.lower()
    if any(word in lowered for word in SENSITIVE_WORDS):
        return "[REDACTED]"
    if len(title) > MAX_TITLE_LENGTH:
        return title[:MAX_TITLE_LENGTH - 3] + "..."
    return title


def init_sentry(config: Optional[AppConfig] = None) -> bool:
    """
    Initialize Sentry error reporting.

    Args:
        config: Source of the DSN and environment name; falls back to
            SENTRY_DSN / ENVIRONMENT when omitted

    Returns:
        True if Sentry was initialized, False otherwise
    """
    if os.getenv("OBS_ENABLED", "false").lower() != "true":
        return False

    dsn = config.sentry_dsn if config is not None else os.getenv("SENTRY_DSN")
    if not dsn:
        logger.info("Sentry DSN not provided, skipping Sentry initialization")
        return False

    environment = config.environment if config is not None else os.getenv("ENVIRONMENT", "development")
    try:
        sentry_sdk.init(
            dsn=dsn,
            integrations=[LoggingIntegration(level=logging.INFO, event_level=logging.ERROR)],
            traces_sample_rate=0.1,
            environment=environment,
        )
    except Exception as e:
        logger.error(f"Failed to initialize Sentry: {e}")
        return False

    logger.info(f"Sentry initialized for environment {environment}")
    return True


def log_error(error: Exception, context: Optional[Dict[str, Any]] = None) -> None:
    """Log an exception with its type and any context fields."""
    entry = {
        "timestamp": _timestamp(),
        "level": "ERROR",
        "error": str(error),
        "error_type": type(error).__name__,
        **(context or {}),
    }
    _emit(logging.ERROR, entry)


def log_warning(message: str, context: Optional[Dict[str, Any]] = None) -> None:
    _emit(logging.WARNING, {"timestamp": _timestamp(), "level": "WARNING", "message": message, **(context or {})})


def log_info(message: str, context: Optional[Dict[str, Any]] = None) -> None:
    _emit(logging.INFO, {"timestamp": _timestamp(), "level": "INFO", "message": message, **(context or {})})
