"""Centralized logging utilities."""

import logging
import os
import sys
from typing import Optional
from pathlib import Path

DEFAULT_FORMAT = '[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s'


def _level_from_env(default: int = logging.INFO) -> int:
    """Resolve the log level from LOG_LEVEL (name or number)."""
    raw = os.getenv("LOG_LEVEL")
    if not raw:
        return default
    if raw.isdigit():
        return int(raw)
    level = logging.getLevelName(raw.upper())
    return level if isinstance(level, int) else default


def setup_logger(
    name: str,
    level: Optional[int] = None,
    log_file: Optional[Path] = None,
    format_string: Optional[str] = None
) -> logging.Logger:
    """
    Set up a logger with console and optional file output.

    Args:
        name: Logger name
        level: Logging level (defaults to LOG_LEVEL env or INFO)
        log_file: Optional file to write logs to
        format_string: Custom format string

    Returns:
        Configured logger instance
    """
    if level is None:
        level = _level_from_env()

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    logger.handlers.clear()

    formatter = logging.Formatter(format_string or DEFAULT_FORMAT, datefmt='%H:%M:%S')

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get or create a logger with the given name.

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        return setup_logger(name)
    return logger


def set_level(level: int) -> None:
    """Change the level of every logger configured through ``setup_logger``."""
    for logger in list(logging.Logger.manager.loggerDict.values()):
        if not isinstance(logger, logging.Logger) or logger.propagate:
            continue
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setLevel(level)


class AssemblyLogger(logging.LoggerAdapter):
    """Prefixes every message with the assembly it belongs to."""

    def process(self, msg, kwargs):
        return f"[{self.extra['assembly_id']}] {msg}", kwargs


def assembly_logger(name: str, assembly_id: str) -> AssemblyLogger:
    """Logger for one assembly: ``[<assembly_id>] message``."""
    return AssemblyLogger(get_logger(name), {"assembly_id": assembly_id})
