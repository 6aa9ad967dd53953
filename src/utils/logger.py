"""Logging infrastructure for the recipe generation service.

Provides centralized logging with configurable format (text/JSON) and level.
Configured via environment variables:
- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
- LOG_TYPE: text, json (default: text)

Pipeline code logs through request_logger(request_id) so every line of one
pipeline run (ingest, normalize, generate, repair, response) carries the same
request id. LOG_TYPE=json is meant for the serverless deployments, whose log
sinks index one JSON object per line; text is for local uvicorn runs.

Nothing here redacts: callers never pass the Gemini API key or raw model
output above DEBUG.
"""

import json
import logging
import os
import sys
from typing import Any


class JSONFormatter(logging.Formatter):
    """Formatter that outputs structured JSON."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: Log record to format.

        Returns:
            JSON string with timestamp, level, logger name, message, and optional traceback.
        """
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "request_id"):
            log_data["request_id"] = record.request_id

        return json.dumps(log_data, ensure_ascii=False)


class RichTextFormatter(logging.Formatter):
    """Formatter that outputs colored text with emoji icons."""

    # ANSI color codes
    COLORS = {
        "DEBUG": "\033[36m",      # Cyan
        "INFO": "\033[32m",       # Green
        "WARNING": "\033[33m",    # Yellow
        "ERROR": "\033[31m",      # Red
        "RESET": "\033[0m",       # Reset
    }

    ICONS = {
        "DEBUG": "🔍",
        "INFO": "ℹ️",
        "WARNING": "⚠️",
        "ERROR": "❌",
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as colored text.

        Args:
            record: Log record to format.

        Returns:
            Formatted string with color codes, emoji icon and optional [request_id] tag.
        """
        level = record.levelname
        color = self.COLORS.get(level, self.COLORS["RESET"])
        icon = self.ICONS.get(level, "")
        reset = self.COLORS["RESET"]

        timestamp = self.formatTime(record, "%Y-%m-%d %H:%M:%S")
        request_tag = f"[{record.request_id}] " if hasattr(record, "request_id") else ""

        message = (
            f"{color}{icon} {timestamp} {level:<8} {record.name:<20} "
            f"{request_tag}{record.getMessage()}{reset}"
        )

        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"

        return message


def get_logger(name: str) -> logging.Logger:
    """Create and configure logger instance.

    Args:
        name: Logger name, typically module name.

    Returns:
        Configured logger instance.
    """
    logger_instance = logging.getLogger(name)

    # Return existing logger if already configured
    if logger_instance.handlers:
        return logger_instance

    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_type = os.getenv("LOG_TYPE", "text").lower()

    log_level = getattr(logging, log_level_str, logging.INFO)
    logger_instance.setLevel(log_level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)

    if log_type == "json":
        formatter = JSONFormatter()
    else:
        formatter = RichTextFormatter()

    handler.setFormatter(formatter)
    logger_instance.addHandler(handler)

    return logger_instance


def request_logger(request_id: str) -> logging.LoggerAdapter:
    """Logger adapter that stamps request_id on every record of one pipeline run."""
    return logging.LoggerAdapter(logger, {"request_id": request_id})


# Shared by every pipeline stage; request_logger wraps it per request
logger = get_logger("recipe_service")

# google.genai logs each HTTP call at INFO; python_multipart logs every part boundary
logging.getLogger("google.genai").setLevel(logging.WARNING)
logging.getLogger("python_multipart").setLevel(logging.WARNING)
