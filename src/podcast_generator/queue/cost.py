"""Daily and per-job spend accounting.

The ledger authorizes a stage's projected cost before it runs and holds that
amount as a reservation until the stage finishes. Reservations count against
both ceilings, so concurrent stages can never jointly overshoot a limit.
``commit`` converts a reservation into spend exactly once.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# Absorbs float noise when comparing sums of fractional cents against a limit
COST_EPSILON = 1e-9


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CostDecision:
    """Outcome of ``CostLedger.authorize``.

    Attributes:
        permitted: True if the stage may run
        reason: Denial reason (None when permitted)
        reserved: Amount held against both buckets while the stage runs
    """

    permitted: bool
    reason: Optional[str] = None
    reserved: float = 0.0


class CostLedger:
    """Process-wide spend tracker with a daily bucket and a per-job bucket.

    The daily bucket resets at ``reset_hour_utc`` each day. The per-job bucket
    never resets for the lifetime of a queue item.

    Attempts are identified by an ``attempt_key`` chosen by the caller (the
    scheduler uses ``"<stage>:<attempt number>"``); at most one reservation and
    one commit exist per (job, attempt_key).
    """

    def __init__(
        self,
        daily_limit: float,
        per_job_limit: float,
        clock: Optional[Clock] = None,
        reset_hour_utc: int = 0,
    ) -> None:
        self._lock = threading.RLock()
        self._clock = clock or utc_now
        self._reset_hour = reset_hour_utc
        self.daily_limit = daily_limit
        self.per_job_limit = per_job_limit
        self._day = self._current_day()
        self._daily_committed = 0.0
        self._daily_overrun = 0.0
        self._job_committed: Dict[str, float] = {}
        self._reservations: Dict[Tuple[str, str], float] = {}
        self._committed_keys: Dict[Tuple[str, str], float] = {}

    def _current_day(self) -> date:
        now = self._clock().astimezone(timezone.utc)
        return (now - timedelta(hours=self._reset_hour)).date()

    def _roll_day(self) -> None:
        day = self._current_day()
        if day != self._day:
            logger.info(
                "Daily cost bucket reset (previous day %s spent $%.4f)",
                self._day.isoformat(),
                self._daily_committed,
            )
            self._day = day
            self._daily_committed = 0.0
            self._daily_overrun = 0.0

    def _reserved_total(self) -> float:
        return sum(self._reservations.values())

    def _job_reserved(self, job_id: str) -> float:
        return sum(amount for (jid, _), amount in self._reservations.items() if jid == job_id)

    @property
    def daily_total(self) -> float:
        """Spend committed in the current daily bucket."""
        with self._lock:
            self._roll_day()
            return self._daily_committed

    @property
    def daily_overrun(self) -> float:
        """Provider spend reported today beyond the reservations, never charged."""
        with self._lock:
            self._roll_day()
            return self._daily_overrun

    @property
    def daily_exposure(self) -> float:
        """Committed spend plus outstanding reservations for today."""
        with self._lock:
            self._roll_day()
            return self._daily_committed + self._reserved_total()

    def job_total(self, job_id: str) -> float:
        """Spend committed for ``job_id``."""
        with self._lock:
            return self._job_committed.get(job_id, 0.0)

    def authorize(self, job_id: str, projected_cost: float, attempt_key: str) -> CostDecision:
        """Permit or deny a stage whose cost is projected at ``projected_cost``.

        On permit the projected amount is reserved until ``commit`` or
        ``release`` is called with the same key.

        Args:
            job_id: Queue item id
            projected_cost: Upper-bound estimate of the stage cost in USD
            attempt_key: Identifier of this stage attempt

        Returns:
            CostDecision with ``permitted`` and, on denial, a reason
        """
        projected_cost = max(0.0, projected_cost)
        with self._lock:
            self._roll_day()
            key = (job_id, attempt_key)
            if key in self._committed_keys:
                return CostDecision(False, f"attempt {attempt_key} already committed")
            # Re-authorizing an open reservation replaces it
            self._reservations.pop(key, None)

            daily_after = self._daily_committed + self._reserved_total() + projected_cost
            if daily_after > self.daily_limit + COST_EPSILON:
                return CostDecision(
                    False,
                    f"daily limit ${self.daily_limit:.2f} would be exceeded "
                    f"(today ${self._daily_committed:.4f}, projected ${projected_cost:.4f})",
                )

            job_after = (
                self._job_committed.get(job_id, 0.0) + self._job_reserved(job_id) + projected_cost
            )
            if job_after > self.per_job_limit + COST_EPSILON:
                return CostDecision(
                    False,
                    f"per-job limit ${self.per_job_limit:.4f} would be exceeded "
                    f"(job ${self._job_committed.get(job_id, 0.0):.4f}, "
                    f"projected ${projected_cost:.4f})",
                )

            self._reservations[key] = projected_cost
            return CostDecision(True, reserved=projected_cost)

    def commit(self, job_id: str, attempt_key: str, actual_cost: float) -> float:
        """Charge ``actual_cost`` for an authorized attempt.

        Idempotent per attempt: a second commit for the same key charges nothing.
        The charge is capped at the reserved amount so a provider that reports
        more than the projection cannot push either bucket past its ceiling. The
        uncharged remainder is added to ``daily_overrun``.

        Returns:
            The amount charged by this call (0.0 for a duplicate commit)
        """
        key = (job_id, attempt_key)
        with self._lock:
            self._roll_day()
            if key in self._committed_keys:
                logger.debug("Ignoring duplicate cost commit for %s/%s", job_id, attempt_key)
                return 0.0
            reserved = self._reservations.pop(key, None)
            if reserved is None:
                logger.warning(
                    "Cost commit for %s/%s without authorization; charging nothing",
                    job_id,
                    attempt_key,
                )
                return 0.0

            charged = max(0.0, actual_cost)
            if charged > reserved:
                logger.warning(
                    "Actual cost $%.6f for %s/%s exceeded projection $%.6f; capped",
                    charged,
                    job_id,
                    attempt_key,
                    reserved,
                )
                self._daily_overrun += charged - reserved
                charged = reserved

            self._daily_committed += charged
            self._job_committed[job_id] = self._job_committed.get(job_id, 0.0) + charged
            self._committed_keys[key] = charged
            return charged

    def release(self, job_id: str, attempt_key: str) -> None:
        """Drop a reservation without charging (stage failed or was skipped)."""
        with self._lock:
            self._reservations.pop((job_id, attempt_key), None)

    def forget(self, job_id: str) -> None:
        """Drop all per-job state once ``job_id`` can no longer run.

        The daily bucket keeps what the job spent.
        """
        with self._lock:
            self._job_committed.pop(job_id, None)
            for key in [key for key in self._committed_keys if key[0] == job_id]:
                del self._committed_keys[key]
            for key in [key for key in self._reservations if key[0] == job_id]:
                del self._reservations[key]

    def update_limits(
        self, daily_limit: Optional[float] = None, per_job_limit: Optional[float] = None
    ) -> None:
        """Change the ceilings; spend already committed is kept."""
        with self._lock:
            if daily_limit is not None:
                self.daily_limit = daily_limit
            if per_job_limit is not None:
                self.per_job_limit = per_job_limit
