"""Shared utilities package."""

from chordispeak.shared.logging import setup_logger, get_logger
from chordispeak.shared.retry import RetryStrategy
from chordispeak.shared.metrics import MetricsCollector
from chordispeak.shared.types import PathLike, ProgressCallback

__all__ = [
    "setup_logger",
    "get_logger",
    "RetryStrategy",
    "MetricsCollector",
    "PathLike",
    "ProgressCallback",
]
