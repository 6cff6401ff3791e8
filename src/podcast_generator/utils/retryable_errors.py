"""Error classification utilities for retry logic.

This module maps provider exceptions onto the scheduler's failure kinds so the
retry policy can decide between re-attempting a stage and giving up.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from ..exceptions import (
    ProviderAuthError,
    ProviderConfigError,
    ProviderRateLimitError,
    SummarizationError,
)
from ..models import NON_RETRYABLE_FAILURES, FailureKind

logger = logging.getLogger(__name__)

_RETRY_AFTER_PATTERN = re.compile(r"retry[- _]after[^0-9]*([0-9]+(?:\.[0-9]+)?)", re.IGNORECASE)


def is_rate_limit_error(error: Exception) -> bool:
    """Check if an error signals provider rate limiting (429, quota)."""
    if isinstance(error, ProviderRateLimitError):
        return True
    if getattr(error, "status_code", None) == 429:
        return True
    error_str = str(error).lower()
    return (
        "429" in str(error)
        or "rate limit" in error_str
        or "rate_limit" in error_str
        or "too many requests" in error_str
        or "resource exhausted" in error_str
    )


def is_retryable_error(error: Exception) -> bool:
    """Determine if an error is retryable.

    Retryable errors are transient failures that may succeed on retry:
    - Rate limits (429)
    - Server errors (5xx)
    - Connection and timeout errors

    Non-retryable errors are permanent failures:
    - Authentication errors (401, 403) and configuration errors
    - Client errors (4xx except 429)

    Args:
        error: Exception to classify

    Returns:
        True if error is retryable, False otherwise
    """
    if isinstance(error, (ProviderAuthError, ProviderConfigError)):
        return False
    if isinstance(error, SummarizationError):
        return error.kind not in NON_RETRYABLE_FAILURES
    if is_rate_limit_error(error):
        return True

    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int):
        if status_code >= 500:
            return True
        if 400 <= status_code < 500:
            return False

    error_str = str(error).lower()
    error_type_name = type(error).__name__.lower()

    if (
        any(code in str(error) for code in ("500", "502", "503", "504"))
        or "server error" in error_str
        or "bad gateway" in error_str
        or "service unavailable" in error_str
        or "gateway timeout" in error_str
    ):
        return True

    connection_error_indicators = [
        "connection",
        "network",
        "socket",
        "dns",
        "timeout",
        "timed out",
        "broken pipe",
    ]
    if any(indicator in error_str for indicator in connection_error_indicators):
        return True

    retryable_type_patterns = ["connectionerror", "timeouterror", "timeout", "connecterror"]
    if any(pattern in error_type_name for pattern in retryable_type_patterns):
        return True

    if is_non_retryable_http_error(error):
        return False

    # Unknown errors are assumed transient; the retry bound still applies
    logger.debug("Unknown error type %s, assuming retryable: %s", type(error).__name__, error)
    return True


def is_non_retryable_http_error(error: Exception) -> bool:
    """Check if error is a non-retryable HTTP error (4xx except 429).

    Args:
        error: Exception to check

    Returns:
        True if error is a non-retryable HTTP error, False otherwise
    """
    error_str = str(error).lower()

    if (
        "401" in str(error)
        or "403" in str(error)
        or "unauthorized" in error_str
        or "forbidden" in error_str
        or "authentication" in error_str
    ):
        return True

    if "400" in str(error) or "bad request" in error_str or "invalid" in error_str:
        return True

    if "404" in str(error) or "not found" in error_str:
        return True

    if "413" in str(error) or "payload too large" in error_str:
        return True

    if "422" in str(error) or "unprocessable entity" in error_str:
        return True

    return False


def get_retry_after(error: Exception) -> Optional[float]:
    """Extract a provider-specified retry delay in seconds, if present."""
    retry_after = getattr(error, "retry_after", None)
    if retry_after is not None:
        try:
            return max(0.0, float(retry_after))
        except (TypeError, ValueError):
            return None

    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None)
    if headers is not None:
        header_value = headers.get("retry-after") or headers.get("Retry-After")
        if header_value:
            try:
                return max(0.0, float(header_value))
            except (TypeError, ValueError):
                logger.debug("Ignoring non-numeric Retry-After header: %s", header_value)

    match = _RETRY_AFTER_PATTERN.search(str(error))
    if match:
        return float(match.group(1))
    return None


def classify_failure(error: Exception) -> FailureKind:
    """Map a provider exception onto the scheduler's failure kinds.

    Args:
        error: Exception raised by a provider

    Returns:
        FailureKind used by the retry policy
    """
    if isinstance(error, SummarizationError):
        return error.kind
    if isinstance(error, (ProviderAuthError, ProviderConfigError)):
        return FailureKind.PROVIDER_CONFIG
    if is_rate_limit_error(error):
        return FailureKind.RATE_LIMITED
    if is_retryable_error(error):
        return FailureKind.TRANSIENT
    # 4xx rejections of the request itself
    return FailureKind.INPUT_VALIDATION


def get_retry_reason(error: Exception) -> str:
    """Get a short human-readable reason for a retry (e.g. "429", "timeout")."""
    error_str = str(error).lower()

    if is_rate_limit_error(error):
        return "429"
    for code in ("500", "502", "503", "504"):
        if code in str(error):
            return code
    if "timeout" in error_str or "timed out" in error_str:
        return "timeout"
    if "connection" in error_str:
        return "connection_error"
    return type(error).__name__
