"""
Logging and in-process metrics for resumeparser.

One StructuredLogger per process (see get_logger). Messages go to stdout and,
when a log directory is configured, to a daily file; keyword context is
appended as JSON. Counters cover validation, uploads, API calls and searches.
"""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

CONSOLE_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s'
FILE_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _level(name: str) -> int:
    return getattr(logging, name.upper())


def _empty_metrics() -> Dict[str, Any]:
    return {
        "api_calls": 0,
        "files_validated": 0,
        "files_rejected": 0,
        "uploads_attempted": 0,
        "uploads_successful": 0,
        "uploads_failed": 0,
        "searches_run": 0,
        "errors_by_type": {},
    }


class StructuredLogger:
    """Wraps a stdlib logger with context serialisation and counters."""

    def __init__(
        self,
        name: str = "resumeparser",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """
        Args:
            name: Name of the underlying logging.Logger
            level: Threshold for the logger and console output
            log_dir: Where daily log files go (logs/ when file output is on)
            enable_file: Write a resumeparser_YYYYMMDD.log file
            enable_console: Echo to stdout
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(_level(level))
        self.logger.handlers.clear()
        self.logger.propagate = False
        self.metrics = _empty_metrics()

        if enable_console:
            console = logging.StreamHandler(sys.stdout)
            console.setLevel(_level(level))
            console.setFormatter(logging.Formatter(fmt=CONSOLE_FORMAT, datefmt=DATE_FORMAT))
            self.logger.addHandler(console)

        if enable_file:
            self._add_file_handler(log_dir or Path("logs"))

    def _add_file_handler(self, log_dir: Path):
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"resumeparser_{datetime.now().strftime('%Y%m%d')}.log"
        handler = logging.FileHandler(log_file, encoding='utf-8')
        handler.setLevel(logging.DEBUG)  # files keep everything
        handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT))
        self.logger.addHandler(handler)

    def configure(self, level: Optional[str] = None, log_dir: Optional[Path] = None):
        """Apply settings read after the logger was created.

        Modules bind the global logger at import time, before the CLI has
        loaded its settings.
        """
        if level:
            self.logger.setLevel(_level(level))
            for handler in self.logger.handlers:
                if not isinstance(handler, logging.FileHandler):
                    handler.setLevel(_level(level))
        has_file = any(isinstance(h, logging.FileHandler) for h in self.logger.handlers)
        if log_dir is not None and not has_file:
            self._add_file_handler(log_dir)

    def debug(self, message: str, **context):
        self._log(logging.DEBUG, message, context)

    def info(self, message: str, **context):
        self._log(logging.INFO, message, context)

    def warning(self, message: str, **context):
        self._log(logging.WARNING, message, context)

    def error(self, message: str, **context):
        self._log(logging.ERROR, message, context)

    def _log(self, level: int, message: str, context: dict):
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metrics

    def record_api_call(self):
        self.metrics["api_calls"] += 1

    def record_validation(self, accepted: int, rejected: int):
        self.metrics["files_validated"] += accepted + rejected
        self.metrics["files_rejected"] += rejected

    def record_upload_attempt(self, file_count: int):
        self.metrics["uploads_attempted"] += file_count

    def record_upload_success(self, file_count: int):
        self.metrics["uploads_successful"] += file_count

    def record_upload_failure(self, file_count: int, error_type: str):
        """Count every file of a failed batch and the error that failed it."""
        self.metrics["uploads_failed"] += file_count
        self.record_error(error_type)

    def record_error(self, error_type: str):
        errors = self.metrics["errors_by_type"]
        errors[error_type] = errors.get(error_type, 0) + 1

    def record_search(self):
        self.metrics["searches_run"] += 1

    def get_metrics(self) -> dict:
        """Snapshot of the counters plus upload_success_rate (0.0 before any upload)."""
        snapshot = dict(self.metrics)
        snapshot["errors_by_type"] = dict(self.metrics["errors_by_type"])
        attempted = snapshot["uploads_attempted"]
        snapshot["upload_success_rate"] = (
            round(snapshot["uploads_successful"] / attempted, 3) if attempted else 0.0
        )
        return snapshot

    def log_metrics_summary(self):
        m = self.get_metrics()
        self.info("=== Session Metrics ===")
        self.info(f"API calls: {m['api_calls']}")
        self.info(f"Files validated: {m['files_validated']} ({m['files_rejected']} rejected)")
        self.info(
            f"Uploads: {m['uploads_successful']}/{m['uploads_attempted']} "
            f"({m['upload_success_rate'] * 100:.1f}% success, {m['uploads_failed']} failed)"
        )
        self.info(f"Searches: {m['searches_run']}")
        for error_type, count in m["errors_by_type"].items():
            self.info(f"Error {error_type}: {count}")


_global_logger: Optional[StructuredLogger] = None


def get_logger(name: str = "resumeparser", level: str = "INFO", **kwargs) -> StructuredLogger:
    """
    Return the process-wide logger, creating it on first use.

    Only the first call's arguments matter. File output stays off unless a
    log_dir is passed.
    """
    global _global_logger

    if _global_logger is None:
        kwargs.setdefault("enable_file", kwargs.get("log_dir") is not None)
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Forget the global logger (tests)."""
    global _global_logger
    _global_logger = None
