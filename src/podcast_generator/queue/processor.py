"""Episode generation scheduler.

``QueueProcessor`` polls the job store on a fixed interval, admits pending and
retry-ready items up to the concurrency limit, authorizes each stage with the
cost ledger and runs it on a worker thread. Completed stage futures are
collected on later ticks; every job store write happens on the scheduling side
under one lock, after the stage's future has resolved.

Example:
    >>> from podcast_generator import Config, QueueProcessor
    >>> from podcast_generator.stages import create_stage_executors
    >>> cfg = Config(max_concurrent_jobs=2)
    >>> processor = QueueProcessor(cfg, create_stage_executors(cfg))
    >>> processor.enqueue("Daily Tech", "TLDR Tech", source_url="https://example.com/a")
    >>> processor.start()
"""

from __future__ import annotations

import copy
import logging
import threading
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional

from pydantic import ValidationError

from ..config import UPDATABLE_FIELDS, Config
from ..config_constants import (
    DEFAULT_LOG_QUERY_LIMIT,
    MAX_CONCURRENT_JOBS,
    STATUS_PROGRESS,
)
from ..exceptions import QueueItemNotFoundError
from ..models import (
    ControlResult,
    FailureKind,
    GenerationOptions,
    GenerationStats,
    LogEvent,
    QueueItem,
    QueueStatus,
    StageKind,
    next_status,
    stage_for_status,
    status_for_stage,
)
from ..stages.base import JobMeta, StageExecutor, StageFailure, StageResult, StageSuccess
from ..utils.timeout import StageTimeoutError, with_timeout
from .cost import COST_EPSILON, Clock, CostLedger, utc_now
from .events import VALID_EVENT_LEVELS, EventListener, EventLog
from .retry import RetryPolicy
from .stats import compute_stats
from .store import JobStore

logger = logging.getLogger(__name__)

STAGE_ORDER: List[StageKind] = list(StageKind)

# Recent durations kept per stage for time estimates
DURATION_HISTORY_SIZE = 50

# In-flight progress never claims more than this share of a stage's range
MAX_STAGE_FRACTION = 0.9

# Live restarts of these fields would require resizing the poll loop
RESTART_FIELDS = ("max_concurrent_jobs", "polling_interval")

_LOG_METHODS = {"info": logger.info, "warning": logger.warning, "error": logger.error}


@dataclass
class _Dispatch:
    """One stage execution in flight."""

    item_id: str
    stage: StageKind
    attempt_key: str
    started_at: datetime
    future: Future


class QueueProcessor:
    """Scheduler driving queue items through scrape, summarize, audio and upload.

    One instance owns the job store, the cost ledger and the event log; the
    layer exposing control operations constructs exactly one and passes it by
    reference.

    Args:
        cfg: Configuration object
        executors: One stage executor per ``StageKind``
        clock: Returns the current UTC time; injectable for tests
        store: Job store (a new one is created if omitted)
        ledger: Cost ledger (created from ``cfg`` if omitted)
        event_log: Event log (created from ``cfg`` if omitted)
        listener: Called with ``(event_type, data)`` for lifecycle events
    """

    def __init__(
        self,
        cfg: Config,
        executors: Mapping[StageKind, StageExecutor],
        clock: Optional[Clock] = None,
        store: Optional[JobStore] = None,
        ledger: Optional[CostLedger] = None,
        event_log: Optional[EventLog] = None,
        listener: Optional[EventListener] = None,
    ) -> None:
        missing = [stage.value for stage in StageKind if stage not in executors]
        if missing:
            raise ValueError(f"Missing stage executors: {', '.join(missing)}")

        self.cfg = cfg
        self._executors: Dict[StageKind, StageExecutor] = dict(executors)
        self._clock = clock or utc_now
        self.store = store or JobStore(clock=self._clock)
        self.ledger = ledger or CostLedger(
            cfg.daily_limit,
            cfg.per_job_limit,
            clock=self._clock,
            reset_hour_utc=cfg.cost_reset_hour_utc,
        )
        self.retry_policy = RetryPolicy(cfg.max_retries, cfg.retry_base_delay, cfg.retry_max_delay)
        self.events = event_log or EventLog(
            cfg.event_log_size, jsonl_path=cfg.events_jsonl_path, clock=self._clock
        )
        self._listener = listener

        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._pool: Optional[ThreadPoolExecutor] = None
        self._running = False
        self._paused = False
        self._budget_paused = False
        self._in_flight: Dict[str, _Dispatch] = {}
        self._durations: Dict[StageKind, Deque[float]] = {
            stage: deque(maxlen=DURATION_HISTORY_SIZE) for stage in StageKind
        }
        self._max_concurrent = cfg.max_concurrent_jobs
        self._polling_interval = cfg.polling_interval

        if cfg.auto_start:
            self.start()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def max_concurrent_jobs(self) -> int:
        """Concurrency limit currently enforced."""
        return self._max_concurrent

    @property
    def polling_interval(self) -> float:
        """Tick interval currently used by the poll loop."""
        return self._polling_interval

    @property
    def in_flight_count(self) -> int:
        with self._lock:
            return len(self._in_flight)

    def start(self) -> ControlResult:
        """Begin polling. Idempotent while running."""
        with self._lock:
            if self._running:
                return ControlResult(True, "Queue processor is already running")
            self._max_concurrent = self.cfg.max_concurrent_jobs
            self._polling_interval = self.cfg.polling_interval
            self._ensure_pool()
            self._stop_event.clear()
            self._running = True
            self._thread = threading.Thread(
                target=self._poll_loop, name="queue-processor", daemon=True
            )
            self._thread.start()
        self._emit(
            "started",
            "info",
            f"Queue processor started (max {self._max_concurrent} concurrent jobs, "
            f"polling every {self._polling_interval:g}s)",
        )
        return ControlResult(True, "Queue processor started")

    def stop(self, timeout: Optional[float] = None) -> ControlResult:
        """Stop polling and wait for in-flight stages to finish.

        In-flight stage executions are never interrupted; their results are
        committed before this returns.

        Args:
            timeout: Seconds to wait for in-flight stages (None waits forever)
        """
        with self._lock:
            if not self._running:
                return ControlResult(True, "Queue processor is not running")
            self._running = False
            self._stop_event.set()
            thread = self._thread
            self._thread = None

        if thread is not None and thread is not threading.current_thread():
            thread.join()

        drained = self.drain(timeout)
        if drained:
            with self._lock:
                if self._pool is not None:
                    self._pool.shutdown(wait=False)
                    self._pool = None
            self._emit("stopped", "info", "Queue processor stopped")
            return ControlResult(True, "Queue processor stopped")

        self._emit(
            "stopped",
            "warning",
            f"Queue processor stopped with {self.in_flight_count} stage(s) still running",
        )
        return ControlResult(
            True,
            f"Queue processor stopped; {self.in_flight_count} stage(s) still draining",
        )

    def pause(self) -> ControlResult:
        """Suspend new admissions; in-flight stages keep running."""
        with self._lock:
            if self._paused:
                return ControlResult(True, "Queue processor is already paused")
            self._paused = True
        self._emit("paused", "info", "Queue processor paused")
        return ControlResult(True, "Queue processor paused")

    def resume(self) -> ControlResult:
        """Allow new admissions again."""
        with self._lock:
            if not self._paused:
                return ControlResult(True, "Queue processor is not paused")
            self._paused = False
            self._budget_paused = False
        self._emit("resumed", "info", "Queue processor resumed")
        return ControlResult(True, "Queue processor resumed")

    def process_item(self, item_id: str) -> ControlResult:
        """Move an item ahead of FIFO order for the next admission.

        Backoff windows, cost authorization and retry rules still apply. When
        the poll loop is not running only this item is admitted, and the call
        waits for its stage to finish so nothing is left in flight.
        """
        with self._lock:
            try:
                item = self.store.get(item_id)
            except QueueItemNotFoundError:
                return ControlResult(False, f"Queue item not found: {item_id}")
            if item.is_terminal:
                return ControlResult(False, f"Queue item {item_id} is already {item.status.value}")
            if item_id in self._in_flight:
                return ControlResult(False, f"Queue item {item_id} is already processing")
            self.store.update(item_id, touch=False, priority=True)
            future = None if self._running else self._dispatch_one(item_id)
            current = self.store.get(item_id)

        if current.is_terminal:
            return ControlResult(False, f"Queue item {item_id} failed: {current.last_error}")
        if future is None:
            logger.info("Queued item %s for immediate processing", item_id)
            return ControlResult(True, f"Queued item {item_id} for immediate processing")

        wait([future])
        with self._lock:
            self._collect_completed()
            self._refresh_estimates()
        status = self.store.get(item_id).status.value
        logger.info("Processed item %s on demand; now %s", item_id, status)
        return ControlResult(True, f"Processed item {item_id}; status is now {status}")

    def update_config(self, **changes: Any) -> ControlResult:
        """Change scheduler limits.

        ``daily_limit``, ``per_job_limit`` and ``max_retries`` apply to the
        next admission. ``max_concurrent_jobs`` and ``polling_interval`` apply
        on the next ``start()`` while the poll loop is running, and at once
        otherwise. Unspecified (or None) fields keep their values.
        """
        unknown = sorted(set(changes) - set(UPDATABLE_FIELDS))
        if unknown:
            return ControlResult(False, f"Unknown configuration fields: {', '.join(unknown)}")
        updates = {key: value for key, value in changes.items() if value is not None}
        if not updates:
            return ControlResult(True, "No configuration changes")

        with self._lock:
            try:
                new_cfg = Config.model_validate({**self.cfg.model_dump(), **updates})
            except ValidationError as exc:
                return ControlResult(False, f"Invalid configuration: {exc}")

            self.cfg = new_cfg
            self.ledger.update_limits(
                daily_limit=new_cfg.daily_limit, per_job_limit=new_cfg.per_job_limit
            )
            self.retry_policy.max_retries = new_cfg.max_retries

            live = [key for key in updates if key not in RESTART_FIELDS]
            pending = [key for key in updates if key in RESTART_FIELDS]
            if pending and not self._running:
                self._max_concurrent = new_cfg.max_concurrent_jobs
                self._polling_interval = new_cfg.polling_interval
                live.extend(pending)
                pending = []

        message = "Configuration updated"
        if live:
            message += f": applied {', '.join(live)}"
        if pending:
            message += f"; {', '.join(pending)} take effect after restart"
        self._emit("config_updated", "info", message)
        return ControlResult(True, message)

    def enqueue(
        self,
        episode_title: str,
        source_name: str,
        source_url: Optional[str] = None,
        content: Optional[str] = None,
        options: Optional[GenerationOptions] = None,
        item_id: Optional[str] = None,
    ) -> QueueItem:
        """Add a ``pending`` item to the job store and return it."""
        item = self.store.enqueue(
            episode_title,
            source_name,
            source_url=source_url,
            content=content,
            options=options,
            item_id=item_id,
        )
        self._emit("enqueued", "info", f"Enqueued episode: {episode_title}", item.id)
        return item

    def get_item(self, item_id: str) -> QueueItem:
        return self.store.get(item_id)

    def get_stats(self) -> GenerationStats:
        """Snapshot statistics without waiting for a tick."""
        if self._paused:
            status = "paused"
        elif self._running:
            status = "processing"
        else:
            status = "idle"
        return compute_stats(
            self.store.snapshot(),
            currently_processing=self.store.checked_out_count(),
            total_cost_today=self.ledger.daily_total,
            now=self._clock(),
            status=status,
        )

    get_status = get_stats

    def get_logs(
        self, level: Optional[str] = None, limit: int = DEFAULT_LOG_QUERY_LIMIT
    ) -> List[LogEvent]:
        """Return recent events, newest first.

        Raises:
            ValueError: If ``level`` is not "info", "warning" or "error"
        """
        if level is not None and level not in VALID_EVENT_LEVELS:
            raise ValueError(f"level must be one of {VALID_EVENT_LEVELS}, got: {level}")
        return self.events.get_logs(level=level, limit=limit)

    def tick(self) -> None:
        """Run one scheduling pass.

        Collects finished stages, then admits new work unless paused. The poll
        loop calls this every ``polling_interval`` seconds.
        """
        with self._lock:
            self._collect_completed()
            self._check_daily_budget()
            if not self._paused:
                self._admit()
            self._refresh_estimates()

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for in-flight stages and commit their results without admitting.

        Returns:
            True if nothing is left in flight
        """
        with self._lock:
            futures = [dispatch.future for dispatch in self._in_flight.values()]
        if futures:
            wait(futures, timeout=timeout)
        with self._lock:
            self._collect_completed()
            return not self._in_flight

    def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception as exc:
                # The loop must outlive a failing tick
                logger.error("Error processing queue: %s", exc, exc_info=True)
                self.events.record("error", f"Error processing queue: {exc}", event_type="error")
            self._stop_event.wait(self._polling_interval)

    def _ensure_pool(self) -> ThreadPoolExecutor:
        if self._pool is None:
            # Sized for the largest allowed limit; admission enforces the real one
            self._pool = ThreadPoolExecutor(
                max_workers=MAX_CONCURRENT_JOBS, thread_name_prefix="podcast-stage"
            )
        return self._pool

    def _check_daily_budget(self) -> None:
        spent = self.ledger.daily_total
        limit = self.ledger.daily_limit
        if limit <= 0:
            return
        if spent >= limit and not self._paused:
            self._paused = True
            self._budget_paused = True
            self._emit(
                "paused",
                "warning",
                f"Daily cost limit reached (${spent:.2f} of ${limit:.2f}), pausing processing",
            )
        elif spent < limit and self._budget_paused:
            self._paused = False
            self._budget_paused = False
            self._emit("resumed", "info", "Daily cost budget reset, resuming processing")

    def _admit(self) -> None:
        slots = self._max_concurrent - len(self._in_flight)
        if slots <= 0:
            return
        now = self._clock()
        candidates = [
            item
            for item in self.store.snapshot()
            if not item.is_terminal
            and item.id not in self._in_flight
            and not self.store.is_checked_out(item.id)
            and item.retry_ready_at <= now
        ]
        # Force-dispatched first, then oldest updated_at
        candidates.sort(key=lambda item: (not item.priority, item.updated_at, item.created_at))

        admitted = 0
        for item in candidates:
            if admitted >= slots:
                break
            if self._dispatch(item, now):
                admitted += 1
        if admitted:
            logger.debug("Admitted %d item(s); %d in flight", admitted, len(self._in_flight))

    def _dispatch_one(self, item_id: str) -> Optional[Future]:
        """Admit only ``item_id`` if a slot is free and its backoff has elapsed.

        Returns:
            The stage future, or None if the item was not started
        """
        self._collect_completed()
        self._check_daily_budget()
        if self._paused or len(self._in_flight) >= self._max_concurrent:
            return None
        now = self._clock()
        item = self.store.get(item_id)
        if (
            item.is_terminal
            or item.retry_ready_at > now
            or self.store.is_checked_out(item_id)
            or not self._dispatch(item, now)
        ):
            return None
        return self._in_flight[item_id].future

    def _dispatch(self, item: QueueItem, now: datetime) -> bool:
        """Authorize and start the next stage of ``item``.

        Returns:
            True if a stage execution was started
        """
        stage = stage_for_status(item.status)
        executor = self._executors[stage]
        attempt = item.attempt_count(stage) + 1
        attempt_key = f"{stage.value}:{attempt}"
        job = JobMeta(
            job_id=item.id,
            episode_title=item.episode_title,
            source_name=item.source_name,
            source_url=item.source_url,
            options=copy.deepcopy(item.options),
            attempt=attempt,
        )
        payload = copy.deepcopy(item.payload)

        try:
            projected = executor.estimate_cost(payload, job)
        except Exception as exc:
            logger.error(
                "Cost estimate failed for %s stage %s: %s", item.id, stage.value, exc, exc_info=True
            )
            self._handle_failure(
                item, stage, StageFailure(FailureKind.TRANSIENT, f"Cost estimate failed: {exc}")
            )
            return False

        decision = self.ledger.authorize(item.id, projected, attempt_key)
        if not decision.permitted:
            self._fail(
                item,
                stage,
                StageFailure(FailureKind.COST_LIMIT, f"Cost limit exceeded: {decision.reason}"),
                attempt,
            )
            return False

        if not self.store.checkout(item.id):
            self.ledger.release(item.id, attempt_key)
            return False

        status = status_for_stage(stage)
        changes: Dict[str, Any] = {
            "status": status,
            "progress": STATUS_PROGRESS[status.value],
            "total_attempts": item.total_attempts + 1,
            "backoff_seconds": 0.0,
            "priority": False,
        }
        first_admission = item.started_at is None
        if first_admission:
            changes["started_at"] = now
        self.store.update(item.id, **changes)

        future = self._ensure_pool().submit(self._run_stage, executor, payload, job)
        self._in_flight[item.id] = _Dispatch(item.id, stage, attempt_key, now, future)

        if first_admission:
            self._emit("job_started", "info", f"Processing episode: {item.episode_title}", item.id)
        self._emit(
            "job_progress",
            "info",
            f"{item.episode_title}: {status.value} (attempt {attempt}, "
            f"projected ${projected:.4f})",
            item.id,
            stage=stage.value,
            progress=STATUS_PROGRESS[status.value],
        )
        return True

    def _run_stage(
        self, executor: StageExecutor, payload: Dict[str, Any], job: JobMeta
    ) -> StageResult:
        """Worker-thread wrapper; every outcome becomes a stage result."""
        stage = executor.stage
        try:
            result = with_timeout(
                executor.execute,
                self.cfg.stage_timeout,
                f"{stage.value}:{job.job_id}",
                payload,
                job,
            )
        except StageTimeoutError as exc:
            return StageFailure(FailureKind.TRANSIENT, str(exc))
        except Exception as exc:
            logger.error(
                "Unexpected error in %s stage for %s: %s",
                stage.value,
                job.job_id,
                exc,
                exc_info=True,
            )
            self.events.record(
                "error",
                f"Unexpected {type(exc).__name__} in {stage.value} stage: {exc}",
                queue_item_id=job.job_id,
                event_type="stage_error",
            )
            return StageFailure(FailureKind.TRANSIENT, f"Unexpected error: {exc}")

        if not isinstance(result, (StageSuccess, StageFailure)):
            logger.error(
                "%s stage returned %s instead of a stage result", stage.value, type(result).__name__
            )
            return StageFailure(FailureKind.TRANSIENT, "Stage returned an invalid result")
        return result

    def _collect_completed(self) -> None:
        for item_id, dispatch in list(self._in_flight.items()):
            if not dispatch.future.done():
                continue
            del self._in_flight[item_id]
            try:
                result = dispatch.future.result()
            except Exception as exc:
                logger.error("Stage future for %s failed: %s", item_id, exc, exc_info=True)
                result = StageFailure(FailureKind.TRANSIENT, f"Unexpected error: {exc}")
            try:
                self._complete(dispatch, result)
            finally:
                self.store.release(item_id)

    def _complete(self, dispatch: _Dispatch, result: StageResult) -> None:
        item = self.store.get(dispatch.item_id)
        now = self._clock()
        if isinstance(result, StageFailure):
            self.ledger.release(item.id, dispatch.attempt_key)
            self._handle_failure(item, dispatch.stage, result)
            return

        elapsed = (now - dispatch.started_at).total_seconds()
        self._durations[dispatch.stage].append(max(0.0, elapsed))
        charged = self.ledger.commit(item.id, dispatch.attempt_key, result.cost.amount)
        payload = result.payload
        overrun = result.cost.amount - charged
        if overrun > COST_EPSILON:
            payload = dict(payload)
            payload["cost_overrun"] = payload.get("cost_overrun", 0.0) + overrun
            self._emit(
                "cost_overrun",
                "warning",
                f"{item.episode_title}: {dispatch.stage.value} cost ${overrun:.6f} more than "
                "its projection; the excess was not charged",
                item.id,
                stage=dispatch.stage.value,
                overrun=overrun,
            )
        if dispatch.stage == StageKind.SCRAPE and "truncated_from" in payload:
            self._emit(
                "content_truncated",
                "info",
                f"{item.episode_title}: scraped content truncated from "
                f"{payload['truncated_from']} to {len(payload.get('content') or '')} characters",
                item.id,
            )
        status = next_status(item.status)
        attempts = dict(item.attempts)
        attempts.pop(dispatch.stage.value, None)
        changes: Dict[str, Any] = {
            "status": status,
            "progress": STATUS_PROGRESS[status.value],
            "payload": payload,
            "cost_to_date": item.cost_to_date + charged,
            "attempts": attempts,
            "last_error": None,
        }
        if status == QueueStatus.COMPLETED:
            changes["completed_at"] = now
            changes["estimated_time_remaining"] = 0.0
        updated = self.store.update(item.id, **changes)
        if status == QueueStatus.COMPLETED:
            self.ledger.forget(item.id)

        logger.debug(
            "%s finished %s stage (charged $%.6f, total $%.6f)",
            item.id,
            dispatch.stage.value,
            charged,
            updated.cost_to_date,
        )
        if status == QueueStatus.COMPLETED:
            self._emit(
                "job_completed",
                "info",
                f"Episode completed: {item.episode_title} (cost ${updated.cost_to_date:.4f})",
                item.id,
                cost=updated.cost_to_date,
                audio_url=updated.payload.get("audio_url"),
            )

    def _handle_failure(self, item: QueueItem, stage: StageKind, failure: StageFailure) -> None:
        attempt_count = item.attempt_count(stage) + 1
        decision = self.retry_policy.should_retry(
            item, stage, attempt_count, failure.kind, failure.retry_after
        )
        if not decision.retry:
            self._fail(item, stage, failure, attempt_count)
            return

        attempts = dict(item.attempts)
        attempts[stage.value] = attempt_count
        self.store.update(
            item.id,
            attempts=attempts,
            backoff_seconds=decision.delay,
            last_error=failure.message,
        )
        self._emit(
            "job_retry",
            "warning",
            f"Retry attempt {attempt_count}/{self.retry_policy.max_retries} for "
            f"{item.episode_title} in {decision.delay:g}s: {failure.message}",
            item.id,
            stage=stage.value,
            failure_kind=failure.kind.value,
            delay=decision.delay,
        )

    def _fail(
        self, item: QueueItem, stage: StageKind, failure: StageFailure, attempt_count: int
    ) -> None:
        attempts = dict(item.attempts)
        attempts[stage.value] = attempt_count
        changes: Dict[str, Any] = {
            "status": QueueStatus.FAILED,
            "attempts": attempts,
            "last_error": failure.message,
            "failure_kind": failure.kind,
            "completed_at": self._clock(),
            "estimated_time_remaining": None,
            "priority": False,
        }
        if failure.kind == FailureKind.COST_LIMIT:
            # Denied before running: counts as an attempt of the stage
            changes["total_attempts"] = item.total_attempts + 1
        self.store.update(item.id, **changes)
        self.ledger.forget(item.id)
        self._emit(
            "job_failed",
            "warning",
            f"Episode failed at {stage.value} ({failure.kind.value}): {failure.message}",
            item.id,
            stage=stage.value,
            failure_kind=failure.kind.value,
        )

    def _refresh_estimates(self) -> None:
        """Recompute time remaining and in-flight progress from stage history."""
        averages = {
            stage: sum(history) / len(history)
            for stage, history in self._durations.items()
            if history
        }
        now = self._clock()
        for item in self.store.snapshot():
            if item.is_terminal:
                continue
            current = stage_for_status(item.status)
            remaining = STAGE_ORDER[STAGE_ORDER.index(current) :]
            if not all(stage in averages for stage in remaining):
                continue

            eta = sum(averages[stage] for stage in remaining)
            progress = item.progress
            dispatch = self._in_flight.get(item.id)
            if dispatch is not None:
                elapsed = max(0.0, (now - dispatch.started_at).total_seconds())
                average = averages[current]
                eta -= min(elapsed, average)
                if average > 0:
                    start = STATUS_PROGRESS[item.status.value]
                    end = STATUS_PROGRESS[next_status(item.status).value]
                    fraction = min(MAX_STAGE_FRACTION, elapsed / average)
                    progress = max(progress, int(start + (end - start) * fraction))

            eta = round(max(0.0, eta), 1)
            if progress != item.progress:
                self.store.update(item.id, progress=progress, estimated_time_remaining=eta)
            elif eta != item.estimated_time_remaining:
                self.store.update(item.id, touch=False, estimated_time_remaining=eta)

    def _emit(
        self,
        event_type: str,
        level: str,
        message: str,
        item_id: Optional[str] = None,
        **data: Any,
    ) -> None:
        _LOG_METHODS[level]("%s", message)
        self.events.record(level, message, queue_item_id=item_id, event_type=event_type)
        if self._listener is None:
            return
        payload = {"message": message, "queue_item_id": item_id, **data}
        try:
            self._listener(event_type, payload)
        except Exception as exc:
            logger.warning("Event listener failed for %s: %s", event_type, exc, exc_info=True)
