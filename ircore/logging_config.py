r"""
Logging configuration module for the ircore client.

Provides a configurable logging setup using the colorlog library together
with structured error logging and aggregation.
"""

import atexit
import logging
import os
import sys
import threading
import time
from collections import defaultdict
from typing import Any

import colorlog


class ErrorAggregator:
    """Aggregates error occurrences per category.

    Tracks error frequencies and provides summary reports so long-running
    sessions can surface recurring faults (flaky peers, dead servers).
    """

    def __init__(self, max_per_type: int = 1000):
        self.errors: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self.lock = threading.Lock()
        self.start_time = time.time()
        self.max_per_type = max_per_type

    def record_error(
        self, error_type: str, message: str, context: dict[str, Any] | None = None
    ) -> None:
        """Record an error occurrence with context."""
        with self.lock:
            self.errors[error_type].append(
                {
                    "timestamp": time.time(),
                    "message": message,
                    "context": context or {},
                }
            )
            if len(self.errors[error_type]) > self.max_per_type:
                self.errors[error_type] = self.errors[error_type][-self.max_per_type :]

    def get_error_summary(self) -> dict[str, Any]:
        """Get a summary of error patterns."""
        with self.lock:
            summary = {}
            current_time = time.time()
            runtime_hours = (current_time - self.start_time) / 3600

            for error_type, occurrences in self.errors.items():
                recent_count = len(
                    [e for e in occurrences if current_time - e["timestamp"] < 3600]
                )
                total_count = len(occurrences)
                summary[error_type] = {
                    "total_count": total_count,
                    "recent_count": recent_count,
                    "rate_per_hour": total_count / max(runtime_hours, 1),
                    "last_occurrence": occurrences[-1] if occurrences else None,
                }
            return summary

    def clear(self) -> None:
        with self.lock:
            self.errors.clear()

    def log_summary_report(self) -> None:
        """Log a summary report of error patterns."""
        summary = self.get_error_summary()
        if not summary:
            logging.info("No errors recorded in current session")
            return

        logging.warning("ERROR SUMMARY REPORT")
        for error_type, stats in summary.items():
            logging.warning(
                f"  {error_type}: {stats['total_count']} total, "
                f"{stats['recent_count']} in last hour, "
                f"{stats['rate_per_hour']:.1f}/hour"
            )
            if stats["last_occurrence"]:
                logging.warning(f"    Last: {stats['last_occurrence']['message']}")


# Global error aggregator instance
error_aggregator = ErrorAggregator()


def log_structured_error(
    error_type: str,
    message: str,
    exception: BaseException | None = None,
    context: dict[str, Any] | None = None,
    level: int = logging.ERROR,
) -> None:
    """Log an error with structured context and record it for aggregation.

    Args:
        error_type: Category of the error (e.g. 'network', 'transfer', 'command')
        message: Descriptive error message
        exception: The exception that occurred (optional)
        context: Additional context data for debugging
        level: Logging level (default: ERROR)
    """
    structured_message = f"[{error_type.upper()}] {message}"

    if exception:
        structured_message += f" | Exception: {type(exception).__name__}: {exception}"

    if context:
        context_str = " | ".join(f"{k}={v}" for k, v in context.items())
        structured_message += f" | Context: {context_str}"

    logging.getLogger("ircore").log(level, structured_message)
    error_aggregator.record_error(error_type, message, context)


class LoggerConfigurator:
    """Handles logging configuration using colorlog.

    Supports environment variable configuration for log levels.
    """

    def __init__(self, config=None):
        """Initialize the configurator.

        Args:
            config: Optional mapping; ``debug`` forces DEBUG level.
        """
        self.config = config or {}

    def configure(self) -> None:
        """Configure the root logger with colored output.

        Uses environment variables:
        - DEBUG: Set to 'true', '1', or 'yes' for DEBUG level, otherwise INFO
        """
        debug_env = os.environ.get("DEBUG", "").lower()
        debug = self.config.get("debug") or debug_env in ("true", "1", "yes")
        log_level = logging.DEBUG if debug else logging.INFO

        formatter = colorlog.ColoredFormatter(
            "%(asctime)s %(log_color)s%(levelname)-8s%(reset)s %(message_log_color)s%(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            log_colors={
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "magenta",
            },
            secondary_log_colors={
                "message": {
                    "ERROR": "red",
                    "CRITICAL": "magenta",
                }
            },
            reset=True,
        )

        # stdout carries the chat transcript, logs go to stderr
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)

        logging.basicConfig(level=log_level, handlers=[handler], force=True)
        logging.getLogger().setLevel(log_level)
        logging.getLogger("asyncio").setLevel(logging.WARNING)

        atexit.register(self._log_final_error_summary)

    def _log_final_error_summary(self) -> None:
        """Log final error summary on application exit."""
        logging.info("Final error summary before shutdown:")
        error_aggregator.log_summary_report()
