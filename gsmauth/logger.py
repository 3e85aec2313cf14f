"""Structured logging for the auth service."""

import json
import os
import sys
import time
from typing import Any, List, Optional, TextIO


LEVELS = {"DEBUG": 10, "INFO": 20, "WARN": 30, "ERROR": 40}


class Logger:
    """JSON-structured logger for observability.

    Writes one JSON object per line to stream (stdout by default), dropping
    records below the configured level.
    """

    def __init__(self, component: str = "auth", stream: Optional[TextIO] = None, level: str = "DEBUG"):
        self.component = component
        self.stream = stream
        self.level = LEVELS[level]

    def _log(self, level: str, message: str, **kwargs):
        """Internal logging method."""
        if LEVELS[level] < self.level:
            return
        log_entry = {
            "timestamp": time.time(),
            "level": level,
            "component": self.component,
            "message": message,
            **kwargs
        }
        print(json.dumps(log_entry, default=str), file=self.stream or sys.stdout, flush=True)

    def info(self, message: str, **kwargs):
        """Log info level message."""
        self._log("INFO", message, **kwargs)

    def warn(self, message: str, **kwargs):
        """Log warning level message."""
        self._log("WARN", message, **kwargs)

    def error(self, message: str, **kwargs):
        """Log error level message."""
        self._log("ERROR", message, **kwargs)

    def debug(self, message: str, **kwargs):
        """Log debug level message."""
        self._log("DEBUG", message, **kwargs)


class Loggers:
    """The informational and error sinks, plus any files opened for them."""

    def __init__(self, info: Logger, error: Logger, files: Optional[List[TextIO]] = None):
        self.info = info
        self.error = error
        self.files = files or []

    def close(self):
        """Close files opened by setup_loggers."""
        for f in self.files:
            f.close()
        self.files = []


def setup_loggers(env: str = "production", log_dir: str = "logs", component: str = "auth") -> Loggers:
    """Open the info and error sinks.

    In the "test" environment both sinks discard their output. Otherwise
    records are appended to <log_dir>/Info.log and <log_dir>/Error.log.

    Raises:
        OSError: if the log directory or files cannot be opened
    """
    if env == "test":
        info_file = open(os.devnull, 'w')
        error_file = open(os.devnull, 'w')
    else:
        os.makedirs(log_dir, exist_ok=True)
        info_file = open(os.path.join(log_dir, "Info.log"), 'a')
        try:
            error_file = open(os.path.join(log_dir, "Error.log"), 'a')
        except OSError:
            info_file.close()
            raise

    return Loggers(
        info=Logger(component, stream=info_file, level="INFO"),
        error=Logger(component, stream=error_file, level="ERROR"),
        files=[info_file, error_file]
    )
