"""Structured logging setup for matlas."""

import logging
import os
import re
import sys
from typing import Optional, Union

_SECRET_PATTERNS = [
    re.compile(r"(mongodb(?:\+srv)?://[^:/@\s]+:)([^@\s]+)(@)"),
    re.compile(r"(\"?password\"?\s*[:=]\s*\"?)([^\"\s,}]+)"),
]


def setup_logging(level: Union[int, str, None] = None, format_string: Optional[str] = None) -> logging.Logger:
    """
    Set up structured logging for matlas.

    Args:
        level: Logging level; falls back to MATLAS_LOG_LEVEL, then WARNING
        format_string: Custom format string (optional)

    Returns:
        Configured logger instance
    """
    if level is None:
        level = os.environ.get("MATLAS_LOG_LEVEL", "WARNING")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING

    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=level,
        format=format_string,
        stream=sys.stderr,
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    logger = logging.getLogger("matlas")
    logger.setLevel(level)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a specific module."""
    return logging.getLogger(f"matlas.{name}")


def mask_secrets(text: str) -> str:
    """Mask passwords in connection strings and key/value text."""
    if not text:
        return text
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(lambda m: m.group(1) + "****" + (m.group(3) if m.lastindex and m.lastindex >= 3 else ""), text)
    return text
