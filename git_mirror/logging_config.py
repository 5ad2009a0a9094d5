"""
Logging Configuration — Diagnostic logging setup.

Diagnostics go to stderr; stdout belongs to the progress reporter so that
external parsers only ever see START/END/DONE lines there.

- JSON output for log shippers
- Human-readable output for terminals
- Level from -v count or LOG_LEVEL

## Environment Variables

- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (overrides -v)
- LOG_FORMAT: json, text (default: text)

## Usage

    from git_mirror.logging_config import setup_logging

    setup_logging(verbosity=2)  # Call once at startup
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict

VERBOSITY_LEVELS = ("WARNING", "INFO", "DEBUG")


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Output format:
    {"ts": "...", "level": "...", "logger": "...", "message": "...", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Job context attached via extra={...}
        if hasattr(record, "job_index"):
            log_entry["job_index"] = record.job_index
        if hasattr(record, "origin"):
            log_entry["origin"] = record.origin
        if hasattr(record, "stage"):
            log_entry["stage"] = record.stage

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


class HumanFormatter(logging.Formatter):
    """
    Human-readable log formatter.

    Output format:
    12:34:56 INFO    [scheduler      ] Message
    """

    COLORS = {
        "DEBUG": "\033[36m",    # Cyan
        "INFO": "\033[32m",     # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",    # Red
        "CRITICAL": "\033[35m", # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        time_str = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        level = record.levelname
        if sys.stderr.isatty():
            color = self.COLORS.get(level, "")
            level = f"{color}{level:7}{self.RESET}"
        else:
            level = f"{level:7}"

        module = record.name.split(".")[-1][:15]
        msg = record.getMessage()
        if record.exc_info:
            msg = f"{msg}\n{self.formatException(record.exc_info)}"

        return f"{time_str} {level} [{module:15}] {msg}"


def level_for_verbosity(verbosity: int) -> str:
    """Map a -v count to a level name (0 = WARNING, 1 = INFO, 2+ = DEBUG)."""
    index = max(0, min(verbosity, len(VERBOSITY_LEVELS) - 1))
    return VERBOSITY_LEVELS[index]


def setup_logging(
    verbosity: int = 0,
    level: str | None = None,
    format_type: str | None = None,
) -> None:
    """
    Configure logging for the application.

    Args:
        verbosity: Number of -v flags given on the command line.
        level: Explicit level name. Defaults to LOG_LEVEL env var, then
               to the level implied by verbosity.
        format_type: Output format (json, text).
                     Defaults to LOG_FORMAT env var or text.
    """
    log_level = (
        level or os.environ.get("LOG_LEVEL") or level_for_verbosity(verbosity)
    ).upper()
    log_format = (format_type or os.environ.get("LOG_FORMAT", "text")).lower()

    numeric_level = getattr(logging, log_level, logging.WARNING)

    formatter: logging.Formatter
    if log_format == "json":
        formatter = JSONFormatter()
    else:
        formatter = HumanFormatter()

    root = logging.getLogger()
    root.setLevel(numeric_level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.setLevel(numeric_level)
    root.addHandler(handler)

    # Per-request lines from the HTTP stack are noise even at DEBUG
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        f"Logging configured: level={log_level}, format={log_format}"
    )
