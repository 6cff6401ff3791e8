"""Custom exceptions for podcast_generator.

Provider exceptions are raised by the external collaborators (scraper, language
model, speech synthesizer, blob storage). Stage executors translate them into
``StageFailure`` values, so none of these cross the stage boundary into the
scheduler.

Exception Hierarchy:
    ProviderError (base)
    ├── ProviderConfigError - Configuration issues
    ├── ProviderAuthError - Authentication failures
    ├── ProviderRuntimeError - Runtime operation failures
    │   └── ProviderRateLimitError - Provider asked us to slow down
    └── SummarizationError - Summarization rejected with a typed failure kind
    QueueError (base)
    ├── QueueItemNotFoundError - Unknown queue item id
    └── InvalidTransitionError - Status change that violates the state machine
"""

from typing import Optional

from .models import FailureKind


class ProviderError(Exception):
    """Base exception for all provider-related errors.

    Attributes:
        provider: Name of the provider (e.g., "OpenAI/Summarization")
        message: Human-readable error message
        suggestion: Optional suggestion for resolving the error
    """

    def __init__(
        self,
        message: str,
        provider: str = "Unknown",
        suggestion: Optional[str] = None,
    ) -> None:
        self.provider = provider
        self.message = message
        self.suggestion = suggestion
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the full error message with provider and suggestion."""
        parts = [f"[{self.provider}] {self.message}"]
        if self.suggestion:
            parts.append(f"Suggestion: {self.suggestion}")
        return " ".join(parts)


class ProviderConfigError(ProviderError):
    """Raised when provider configuration is invalid or missing.

    Example:
        >>> raise ProviderConfigError(
        ...     message="API key not provided",
        ...     provider="OpenAI",
        ...     config_key="openai_api_key",
        ...     suggestion="Set OPENAI_API_KEY environment variable"
        ... )
    """

    def __init__(
        self,
        message: str,
        provider: str = "Unknown",
        config_key: Optional[str] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        self.config_key = config_key
        if config_key and config_key not in message:
            message = f"{message} (config key: {config_key})"
        super().__init__(message=message, provider=provider, suggestion=suggestion)


class ProviderAuthError(ProviderError):
    """Raised when authentication with a provider fails."""


class ProviderRuntimeError(ProviderError):
    """Raised when a provider operation fails at runtime.

    Common causes:
    - Network errors
    - Provider 5xx responses
    - Empty or malformed responses
    """


class ProviderRateLimitError(ProviderRuntimeError):
    """Raised when a provider rejects a call because of rate limiting.

    Attributes:
        retry_after: Delay in seconds requested by the provider, if any
    """

    def __init__(
        self,
        message: str,
        provider: str = "Unknown",
        retry_after: Optional[float] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        self.retry_after = retry_after
        super().__init__(message=message, provider=provider, suggestion=suggestion)


class SummarizationError(ProviderError):
    """Raised when summarization is rejected for a known reason.

    Attributes:
        kind: Failure kind reported to the scheduler (e.g. quality gate)
    """

    def __init__(
        self,
        message: str,
        kind: FailureKind,
        provider: str = "Summarizer",
        suggestion: Optional[str] = None,
    ) -> None:
        self.kind = kind
        super().__init__(message=message, provider=provider, suggestion=suggestion)


class QueueError(Exception):
    """Base exception for job store and scheduler errors."""


class QueueItemNotFoundError(QueueError):
    """Raised when a queue item id is not present in the job store."""

    def __init__(self, item_id: str) -> None:
        self.item_id = item_id
        super().__init__(f"Queue item not found: {item_id}")


class InvalidTransitionError(QueueError):
    """Raised when a write would move a queue item backwards or out of a terminal state."""

    def __init__(self, item_id: str, current: str, requested: str) -> None:
        self.item_id = item_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Queue item {item_id}: invalid status transition {current} -> {requested}"
        )
