"""
Structured logging system for matchNG.

Provides centralized logging with console and file outputs, log levels,
and metrics tracking for storage health and offline queue replay.
"""

import copy
import json
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks metrics for storage and replay monitoring.
    """

    def __init__(
        self,
        name: str = "matchng",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: logs/)
            enable_file: Write logs to file
            enable_console: Output logs to console
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers.clear()  # Remove existing handlers

        self.metrics = {
            "writes": 0,
            "reads": 0,
            "corrupt_reads": 0,
            "version_mismatches": 0,
            "quota_failures": 0,
            "drafts_purged": 0,
            "replays_attempted": 0,
            "replays_succeeded": 0,
            "replays_failed": 0,
            "dead_lettered": 0,
            "errors_by_type": {},
        }

        if enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"matchng_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

    def debug(self, message: str, **kwargs):
        """Log debug message with optional context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        """Log info message with optional context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with optional context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with optional context."""
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs):
        """Log critical message with optional context."""
        self._log(logging.CRITICAL, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        """Internal logging method with context."""
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def record_write(self):
        self.metrics["writes"] += 1

    def record_read(self):
        self.metrics["reads"] += 1

    def record_corrupt_read(self, error_type: str):
        """Record an envelope that could not be decoded."""
        self.metrics["corrupt_reads"] += 1
        self._record_error(error_type)

    def record_version_mismatch(self):
        self.metrics["version_mismatches"] += 1

    def record_quota_failure(self, purged: int):
        """Record a capacity failure and how many draft keys were purged."""
        self.metrics["quota_failures"] += 1
        self.metrics["drafts_purged"] += purged

    def record_replay_attempt(self):
        self.metrics["replays_attempted"] += 1

    def record_replay_success(self):
        self.metrics["replays_succeeded"] += 1

    def record_replay_failure(self, error_type: str):
        """Record a failed replay of a queued action."""
        self.metrics["replays_failed"] += 1
        self._record_error(error_type)

    def record_dead_letter(self):
        self.metrics["dead_lettered"] += 1

    def _record_error(self, error_type: str):
        errors = self.metrics["errors_by_type"]
        errors[error_type] = errors.get(error_type, 0) + 1

    def get_metrics(self) -> dict:
        """Return current metrics."""
        metrics_copy = copy.deepcopy(self.metrics)
        attempts = metrics_copy["replays_attempted"]
        if attempts > 0:
            metrics_copy["replay_success_rate"] = round(
                metrics_copy["replays_succeeded"] / attempts, 3
            )
        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        self.info("=== Storage Session Metrics ===")
        self.info(f"Writes: {metrics['writes']}  Reads: {metrics['reads']}")
        self.info(
            f"Corrupt reads: {metrics['corrupt_reads']}  "
            f"Version mismatches: {metrics['version_mismatches']}"
        )
        self.info(
            f"Quota failures: {metrics['quota_failures']} "
            f"({metrics['drafts_purged']} drafts purged)"
        )

        attempts = metrics["replays_attempted"]
        if attempts:
            rate = metrics.get("replay_success_rate", 0) * 100
            self.info(
                f"Replays: {metrics['replays_succeeded']}/{attempts} ({rate:.1f}% success), "
                f"{metrics['dead_lettered']} dead-lettered"
            )

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "matchng",
    level: Optional[str] = None,
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Args:
        name: Logger name
        level: Log level; defaults to LOG_LEVEL env var or INFO
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        level = level or os.getenv("LOG_LEVEL", "INFO")
        kwargs.setdefault("enable_file", os.getenv("MATCHNG_LOG_FILE", "1") != "0")
        if "log_dir" not in kwargs and os.getenv("MATCHNG_LOG_DIR"):
            kwargs["log_dir"] = Path(os.environ["MATCHNG_LOG_DIR"])
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
