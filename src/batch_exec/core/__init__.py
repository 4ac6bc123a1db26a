"""Core components: configuration and cancellation."""

from .cancellation import CancellationToken, ensure_token
from .config import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_BUFFER_SIZE,
    DEFAULT_PROGRESS_INTERVAL,
    DEFAULT_WORKERS,
    PoolConfig,
    ProgressCallbackFunc,
)

__all__ = [
    "CancellationToken",
    "ensure_token",
    "PoolConfig",
    "ProgressCallbackFunc",
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_BUFFER_SIZE",
    "DEFAULT_PROGRESS_INTERVAL",
    "DEFAULT_WORKERS",
]
