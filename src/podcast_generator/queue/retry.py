"""Retry policy with exponential backoff for failed stages.

The policy never sleeps. It returns a delay; the scheduler stores it on the
queue item and skips the item until ``updated_at + delay`` has passed, so the
poll loop's own cadence is the retry clock.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..models import NON_RETRYABLE_FAILURES, FailureKind, QueueItem, StageKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryDecision:
    """Outcome of ``RetryPolicy.should_retry``.

    Attributes:
        retry: True to re-attempt the same stage after ``delay`` seconds
        delay: Backoff delay in seconds (0 when giving up)
        reason: Short explanation used in logs and events
    """

    retry: bool
    delay: float = 0.0
    reason: str = ""


class RetryPolicy:
    """Decide whether a failed stage is re-attempted.

    Gives up immediately for non-retryable failure kinds, and once
    ``attempt_count > max_retries`` otherwise. A stage therefore runs at most
    ``max_retries + 1`` times.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 5.0,
        max_delay: float = 300.0,
    ) -> None:
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay

    def backoff_delay(self, attempt_count: int) -> float:
        """Return ``base * 2^(attempt_count-1)`` capped at ``max_delay``."""
        exponent = max(0, attempt_count - 1)
        # Cap the exponent before the power so very large counts cannot overflow
        delay = self.base_delay * (2 ** min(exponent, 32))
        return min(delay, self.max_delay)

    def should_retry(
        self,
        item: QueueItem,
        stage: StageKind,
        attempt_count: int,
        failure_kind: FailureKind,
        retry_after: Optional[float] = None,
    ) -> RetryDecision:
        """Decide between requeueing ``item`` for ``stage`` and giving up.

        Args:
            item: Queue item whose stage failed
            stage: Stage that failed
            attempt_count: Failed attempts of this stage, including this one
            failure_kind: Kind of the failure just observed
            retry_after: Provider-specified delay (honored for rate limiting)

        Returns:
            RetryDecision
        """
        if failure_kind in NON_RETRYABLE_FAILURES:
            return RetryDecision(False, reason=f"{failure_kind.value} is not retryable")

        if attempt_count > self.max_retries:
            return RetryDecision(
                False,
                reason=f"{stage.value} failed {attempt_count} times "
                f"(max retries {self.max_retries})",
            )

        delay = self.backoff_delay(attempt_count)
        if failure_kind == FailureKind.RATE_LIMITED and retry_after is not None:
            # The provider's requested delay wins even over the cap
            delay = max(delay, retry_after)

        logger.debug(
            "Retry %d/%d for %s stage %s in %.1fs (%s)",
            attempt_count,
            self.max_retries,
            item.id,
            stage.value,
            delay,
            failure_kind.value,
        )
        return RetryDecision(
            True,
            delay=delay,
            reason=f"retry {attempt_count}/{self.max_retries} after {failure_kind.value}",
        )
