"""
Logging configuration for the quota webhook using loguru.
Provides structured logging with per-review context.
"""

import sys
from pathlib import Path
from typing import Any, Optional

from loguru import logger

REVIEW_LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[uid]}</cyan> | "
    "<level>{message}</level>"
)


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None, json_logs: bool = False) -> None:
    """
    Configure webhook logging.

    Every record carries the review uid ("-" outside a review). With
    ``json_logs`` records are serialized to JSON, bound context included.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file receiving the same records, rotated daily
        json_logs: Emit one JSON object per line instead of coloured text
    """
    logger.remove()
    logger.configure(extra={"uid": "-"})

    logger.add(
        sys.stderr,
        level=level,
        format=REVIEW_LOG_FORMAT,
        colorize=not json_logs,
        serialize=json_logs,
    )

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level=level,
            format=REVIEW_LOG_FORMAT,
            serialize=json_logs,
            rotation="00:00",
            retention="7 days",
        )


class LogContext:
    """Context manager for adding temporary context to logs."""

    def __init__(self, **context: Any):
        self.context = context
        self._manager: Any = None

    def __enter__(self) -> "LogContext":
        self._manager = logger.contextualize(**self.context)
        self._manager.__enter__()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._manager is not None:
            self._manager.__exit__(exc_type, exc_val, exc_tb)
            self._manager = None


def log_review(uid: str, namespace: str, group: Optional[str], **metadata: Any) -> LogContext:
    """
    Create log context for one admission review.

    Args:
        uid: AdmissionReview request uid
        namespace: Namespace of the candidate pod
        group: Quota group (grouping label value), if any
        **metadata: Additional metadata to log

    Returns:
        LogContext that can be used with 'with' statement
    """
    return LogContext(uid=uid, namespace=namespace, group=group or "-", **metadata)


__all__ = [
    "logger",
    "setup_logging",
    "LogContext",
    "log_review",
]
