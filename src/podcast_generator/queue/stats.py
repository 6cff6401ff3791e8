"""Derived queue statistics."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable

from ..models import GenerationStats, QueueItem, QueueStatus

# Finished jobs older than this do not count toward success rate or averages
STATS_WINDOW = timedelta(hours=24)


def compute_stats(
    items: Iterable[QueueItem],
    currently_processing: int,
    total_cost_today: float,
    now: datetime,
    status: str = "idle",
) -> GenerationStats:
    """Aggregate a job store snapshot into ``GenerationStats``.

    Args:
        items: Snapshot of all queue items
        currently_processing: Stage executions in flight
        total_cost_today: Committed spend in the current daily bucket
        now: Current time, used for the rolling window
        status: Processor state ("idle", "processing" or "paused")

    Returns:
        GenerationStats with ``success_rate`` in 0-1 and
        ``average_processing_time`` in seconds
    """
    window_start = now - STATS_WINDOW
    in_queue = 0
    completed = 0
    failed = 0
    durations = []

    for item in items:
        if not item.is_terminal:
            in_queue += 1
            continue
        finished_at = item.completed_at or item.updated_at
        if finished_at < window_start:
            continue
        if item.status == QueueStatus.COMPLETED:
            completed += 1
            if item.started_at is not None:
                durations.append((finished_at - item.started_at).total_seconds())
        else:
            failed += 1

    finished = completed + failed
    success_rate = completed / finished if finished else 0.0
    average = sum(durations) / len(durations) if durations else 0.0

    return GenerationStats(
        currently_processing=currently_processing,
        total_in_queue=in_queue,
        success_rate=round(success_rate, 4),
        average_processing_time=round(average, 3),
        total_cost_today=total_cost_today,
        status=status,
        total_processed_today=finished,
        completed_count=completed,
        failed_count=failed,
    )
