"""Secure structured logging for the mailbox janitor.

Features:
    - Masking of webhook secrets and HMAC signatures
    - JSON structured logging format (one object per line)
    - Plain text format for interactive use
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from datetime import datetime, timezone

# Patterns to mask in logs
SENSITIVE_PATTERNS = [
    (re.compile(r'secret["\']?\s*[:=]\s*["\']?[^\s"\',]+', re.I), "secret=***MASKED***"),
    (re.compile(r'signature["\']?\s*[:=]\s*["\']?[0-9a-f]{16,}', re.I), "signature=***MASKED***"),
    (re.compile(r"\b[0-9a-f]{64}\b", re.I), "***HMAC***"),
]


def _mask(message: str, secrets: Iterable[str]) -> str:
    for secret in secrets:
        message = message.replace(secret, "***MASKED***")
    for pattern, replacement in SENSITIVE_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


class SecureFormatter(logging.Formatter):
    """Formatter that masks sensitive data."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        secrets: Iterable[str] = (),
    ) -> None:
        """Initialize the secure formatter.

        Args:
            fmt: Format string for log messages.
            datefmt: Date format string.
            secrets: Literal values (e.g. the webhook secret) to mask.
        """
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.secrets = tuple(s for s in secrets if s)

    def format(self, record: logging.LogRecord) -> str:
        return _mask(super().format(record), self.secrets)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self, secrets: Iterable[str] = ()) -> None:
        super().__init__()
        self.secrets = tuple(s for s in secrets if s)

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON with sensitive data masked.

        Args:
            record: The log record to format.

        Returns:
            JSON-formatted log message with sensitive data masked.
        """
        log_data: dict[str, str | None] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "thread": record.threadName,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return _mask(json.dumps(log_data), self.secrets)


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    mask_sensitive: bool = True,
    secrets: Iterable[str] = (),
) -> None:
    """Configure logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_format: Use JSON format for structured logging.
        mask_sensitive: Mask sensitive data in text logs.
        secrets: Literal secret values to mask wherever they appear.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)

    if json_format:
        formatter: logging.Formatter = JSONFormatter(secrets=secrets)
    elif mask_sensitive:
        formatter = SecureFormatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            secrets=secrets,
        )
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)
