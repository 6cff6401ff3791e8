"""StageExecutor protocol and stage result types.

A stage executor is a pure transformation: it receives the job's current
payload, calls its external collaborator, and returns either the next payload
with a cost report or a typed failure. Executors never touch the job store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, runtime_checkable, Union

from ..exceptions import ProviderError, SummarizationError
from ..models import FailureKind, GenerationOptions, StageKind
from ..utils.retryable_errors import classify_failure, get_retry_after, get_retry_reason

logger = logging.getLogger(__name__)

Payload = Dict[str, Any]


@dataclass(frozen=True)
class JobMeta:
    """Read-only job context handed to an executor.

    Attributes:
        job_id: Queue item id
        episode_title: Episode title
        source_name: Content source name
        source_url: Article URL, if any
        options: Generation options for the job
        attempt: 1-based attempt number of this stage
    """

    job_id: str
    episode_title: str
    source_name: str
    source_url: Optional[str] = None
    options: GenerationOptions = field(default_factory=GenerationOptions)
    attempt: int = 1


@dataclass(frozen=True)
class CostReport:
    """Actual spend of one stage execution in USD."""

    amount: float = 0.0
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StageSuccess:
    payload: Payload
    cost: CostReport = field(default_factory=CostReport)


@dataclass(frozen=True)
class StageFailure:
    """A domain failure returned instead of raised.

    Attributes:
        kind: Failure kind driving the retry decision
        message: Reason shown to users
        retry_after: Provider-requested delay in seconds (rate limiting)
    """

    kind: FailureKind
    message: str
    retry_after: Optional[float] = None


StageResult = Union[StageSuccess, StageFailure]


@runtime_checkable
class StageExecutor(Protocol):
    """Protocol for pipeline stage executors.

    Implementations exist for every ``StageKind``; the scheduler looks them up
    by their ``stage`` attribute.
    """

    stage: StageKind

    def estimate_cost(self, payload: Payload, job: JobMeta) -> float:
        """Return an upper-bound projection of this stage's cost in USD.

        Called before the stage runs so the cost ledger can authorize it.
        """
        ...

    def execute(self, payload: Payload, job: JobMeta) -> StageResult:
        """Run the stage.

        Args:
            payload: Copy of the job's current payload
            job: Job context

        Returns:
            StageSuccess with the next payload, or StageFailure
        """
        ...


def failure_from_exception(error: ProviderError, stage: StageKind) -> StageFailure:
    """Translate a provider exception into a typed stage failure.

    Only the provider hierarchy is translated. Any other exception is a bug in
    the executor or its collaborator and propagates to the scheduler.
    """
    if isinstance(error, SummarizationError):
        return StageFailure(error.kind, error.message)

    kind = classify_failure(error)
    retry_after = get_retry_after(error) if kind == FailureKind.RATE_LIMITED else None
    log = logger.error if kind == FailureKind.PROVIDER_CONFIG else logger.warning
    log(
        "%s stage provider error (%s, reason=%s): %s",
        stage.value,
        kind.value,
        get_retry_reason(error),
        error,
    )
    return StageFailure(kind, str(error), retry_after=retry_after)
