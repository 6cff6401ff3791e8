"""Shared utilities for podcast_generator.

This module provides:
- Provider error classification for retry decisions
- Timeout enforcement for stage executions
"""

from .retryable_errors import classify_failure, get_retry_after, is_retryable_error
from .timeout import StageTimeoutError, with_timeout

__all__ = [
    "StageTimeoutError",
    "classify_failure",
    "get_retry_after",
    "is_retryable_error",
    "with_timeout",
]
