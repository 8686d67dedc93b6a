"""
Structured logging for ChapterIP.

Provides JSON-formatted logging for log aggregation and a colored console
format for development.

Features:
- JSON output format for easy parsing
- Operation context (parent IP id, chapter id, request id)
- Redaction of secrets and shortening of wallet addresses
- Configurable level and format via LOG_LEVEL / LOG_FORMAT
"""

import json
import logging
import os
import re
import sys
import threading
from datetime import datetime, timezone
from typing import Any

# ============================================================
# Sensitive Data Redaction
# ============================================================

SENSITIVE_PATTERNS = [
    # API keys, secrets, and signing keys in key=value form
    (
        re.compile(
            r"(api[_-]?key|apikey|token|secret|password|private[_-]?key)([\"']?\s*[:=]\s*[\"']?)([^\s\"',}{]+)",
            re.IGNORECASE,
        ),
        r"\1\2[REDACTED]",
    ),
    # Bearer tokens
    (re.compile(r"(Bearer\s+)([^\s]+)", re.IGNORECASE), r"\1[REDACTED]"),
    # Private keys (PEM format)
    (
        re.compile(r"-----BEGIN[^-]+PRIVATE KEY-----.*?-----END[^-]+PRIVATE KEY-----", re.DOTALL),
        "[REDACTED_PRIVATE_KEY]",
    ),
    # Wallet and IP asset addresses (show first/last 4 chars)
    (re.compile(r"\b(0x)([a-fA-F0-9]{4})([a-fA-F0-9]{32})([a-fA-F0-9]{4})\b"), r"\1\2...\4"),
]

# Fields that are always redacted
REDACTED_FIELDS = {
    "password",
    "secret",
    "api_key",
    "apikey",
    "token",
    "private_key",
    "secret_key",
    "ledger_secret",
    "authorization",
    "x_api_key",
    "x_chapterip_signature",
}

# LogRecord attributes that are not user-supplied extras
_RESERVED_ATTRS = frozenset(
    (
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "message",
        "taskName",
    )
)


def redact_string(text: str) -> str:
    """Redact sensitive patterns from a string."""
    if not isinstance(text, str):
        return text

    result = text
    for pattern, replacement in SENSITIVE_PATTERNS:
        result = pattern.sub(replacement, result)
    return result


def redact_sensitive_data(data: Any, depth: int = 0, max_depth: int = 10) -> Any:
    """
    Recursively redact sensitive data.

    Args:
        data: dict, list, string, or scalar
        depth: Current recursion depth
        max_depth: Maximum recursion depth

    Returns:
        Data with sensitive information redacted
    """
    if depth > max_depth:
        return "[MAX_DEPTH_EXCEEDED]"

    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            if str(key).lower().replace("-", "_") in REDACTED_FIELDS:
                result[key] = "[REDACTED]"
            else:
                result[key] = redact_sensitive_data(value, depth + 1, max_depth)
        return result

    if isinstance(data, (list, tuple)):
        return [redact_sensitive_data(item, depth + 1, max_depth) for item in data]

    if isinstance(data, str):
        return redact_string(data)

    return data


# Thread-local storage for operation context
_log_context = threading.local()


def set_log_context(**kwargs) -> None:
    """Set context values for the current thread."""
    if not hasattr(_log_context, "data"):
        _log_context.data = {}
    _log_context.data.update(kwargs)


def clear_log_context() -> None:
    _log_context.data = {}


def get_log_context() -> dict[str, Any]:
    return getattr(_log_context, "data", {})


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS}


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter.

    Output format:
    {
        "timestamp": "2024-01-15T10:30:00+00:00",
        "level": "INFO",
        "logger": "derivative_registration",
        "message": "Derivative registered",
        "context": {"parent_ip_id": "0x1a2b...9f8e"},
        ...
    }
    """

    def __init__(self, include_stack_info: bool = True, redact_sensitive: bool = True):
        super().__init__()
        self.include_stack_info = include_stack_info
        self.redact_sensitive = redact_sensitive

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if self.redact_sensitive:
            message = redact_string(message)

        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": message,
        }

        if record.levelno >= logging.WARNING:
            log_entry["location"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info and self.include_stack_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        context = get_log_context()
        if context:
            log_entry["context"] = redact_sensitive_data(context) if self.redact_sensitive else context

        for key, value in _extra_fields(record).items():
            log_entry[key] = redact_sensitive_data(value) if self.redact_sensitive else value

        return json.dumps(log_entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable colored formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        reset = self.RESET

        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
        msg = f"{color}{timestamp} {record.levelname[0]} [{record.name}]{reset} {redact_string(record.getMessage())}"

        context = get_log_context()
        if context:
            ctx_str = " ".join(f"{k}={redact_sensitive_data(v)}" for k, v in context.items())
            msg += f" {color}({ctx_str}){reset}"

        extras = [f"{k}={v}" for k, v in _extra_fields(record).items()]
        if extras:
            msg += f" [{', '.join(extras)}]"

        if record.exc_info:
            msg += "\n" + self.formatException(record.exc_info)

        return msg


def configure_logging(
    level: str = "INFO",
    json_output: bool | None = None,
    log_file: str | None = None,
) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Use JSON format (LOG_FORMAT=json if None)
        log_file: Optional file path for JSON log output
    """
    if json_output is None:
        json_output = os.getenv("LOG_FORMAT", "").lower() == "json"

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(JSONFormatter() if json_output else ConsoleFormatter())
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JSONFormatter())  # Always JSON for files
        root_logger.addHandler(file_handler)

    # Reduce noise from third-party libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("werkzeug").setLevel(logging.WARNING)
    logging.getLogger("sentence_transformers").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LoggingContext:
    """
    Context manager that tags log lines emitted on this thread.

    Usage:
        with LoggingContext(parent_ip_id=request.parent_ip_id):
            logger.info("Registering derivative")
    """

    def __init__(self, **kwargs):
        self.context = kwargs
        self.previous_context = {}

    def __enter__(self):
        self.previous_context = get_log_context().copy()
        set_log_context(**self.context)
        return self

    def __exit__(self, _exc_type, _exc_val, _exc_tb):
        clear_log_context()
        if self.previous_context:
            set_log_context(**self.previous_context)
        return False
