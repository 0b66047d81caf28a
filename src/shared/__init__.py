"""Shared utilities package."""

from shared.logging import setup_logger, get_logger, set_level, assembly_logger
from shared.retry import RetryStrategy, backoff_delay
from shared.metrics import MetricsCollector

__all__ = [
    "setup_logger",
    "get_logger",
    "set_level",
    "assembly_logger",
    "RetryStrategy",
    "backoff_delay",
    "MetricsCollector",
]
