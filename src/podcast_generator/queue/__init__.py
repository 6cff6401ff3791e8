"""Scheduling core: job store, cost ledger, retry policy, stats and the processor."""

from .cost import CostDecision, CostLedger, utc_now
from .events import EventLog
from .processor import QueueProcessor
from .retry import RetryDecision, RetryPolicy
from .stats import compute_stats
from .store import JobStore

__all__ = [
    "CostDecision",
    "CostLedger",
    "EventLog",
    "JobStore",
    "QueueProcessor",
    "RetryDecision",
    "RetryPolicy",
    "compute_stats",
    "utc_now",
]
