from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional


class QueueStatus(str, Enum):
    """Lifecycle status of a queue item.

    Non-terminal statuses other than ``PENDING`` name the stage the item is
    running or will run next.
    """

    PENDING = "pending"
    SCRAPING = "scraping"
    SUMMARIZING = "summarizing"
    GENERATING_AUDIO = "generating-audio"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"


class StageKind(str, Enum):
    """Pipeline stage executed for a queue item."""

    SCRAPE = "scrape"
    SUMMARIZE = "summarize"
    GENERATE_AUDIO = "generate-audio"
    UPLOAD = "upload"


class FailureKind(str, Enum):
    """Typed failure reported by a stage or by the cost policy."""

    INPUT_VALIDATION = "input-validation-failure"
    QUALITY_GATE = "quality-gate-failure"
    COST_LIMIT = "cost-limit-exceeded"
    TRANSIENT = "transient-provider-error"
    RATE_LIMITED = "rate-limited"
    PROVIDER_CONFIG = "provider-configuration-failure"


NON_RETRYABLE_FAILURES = frozenset(
    {
        FailureKind.INPUT_VALIDATION,
        FailureKind.QUALITY_GATE,
        FailureKind.COST_LIMIT,
        FailureKind.PROVIDER_CONFIG,
    }
)

TERMINAL_STATUSES = frozenset({QueueStatus.COMPLETED, QueueStatus.FAILED})

# Forward order of the pipeline; FAILED is reachable from any non-terminal status
PIPELINE_ORDER: List[QueueStatus] = [
    QueueStatus.PENDING,
    QueueStatus.SCRAPING,
    QueueStatus.SUMMARIZING,
    QueueStatus.GENERATING_AUDIO,
    QueueStatus.UPLOADING,
    QueueStatus.COMPLETED,
]

_STAGE_BY_STATUS = {
    QueueStatus.PENDING: StageKind.SCRAPE,
    QueueStatus.SCRAPING: StageKind.SCRAPE,
    QueueStatus.SUMMARIZING: StageKind.SUMMARIZE,
    QueueStatus.GENERATING_AUDIO: StageKind.GENERATE_AUDIO,
    QueueStatus.UPLOADING: StageKind.UPLOAD,
}

_STATUS_BY_STAGE = {
    StageKind.SCRAPE: QueueStatus.SCRAPING,
    StageKind.SUMMARIZE: QueueStatus.SUMMARIZING,
    StageKind.GENERATE_AUDIO: QueueStatus.GENERATING_AUDIO,
    StageKind.UPLOAD: QueueStatus.UPLOADING,
}


def stage_for_status(status: QueueStatus) -> StageKind:
    """Return the stage an item in ``status`` runs on its next admission.

    Raises:
        ValueError: If status is terminal
    """
    try:
        return _STAGE_BY_STATUS[status]
    except KeyError:
        raise ValueError(f"No stage runs for terminal status {status.value}") from None


def status_for_stage(stage: StageKind) -> QueueStatus:
    """Return the status an item carries while ``stage`` runs."""
    return _STATUS_BY_STAGE[stage]


def next_status(status: QueueStatus) -> QueueStatus:
    """Return the status that follows ``status`` on success."""
    if status in TERMINAL_STATUSES:
        raise ValueError(f"Terminal status {status.value} has no successor")
    return PIPELINE_ORDER[PIPELINE_ORDER.index(status) + 1]


def can_transition(current: QueueStatus, requested: QueueStatus) -> bool:
    """Check a status write against the forward-only state machine.

    Allowed: staying on the same non-terminal status, advancing exactly one
    stage, or failing from any non-terminal status.
    """
    if current in TERMINAL_STATUSES:
        return False
    if requested == current or requested == QueueStatus.FAILED:
        return True
    return PIPELINE_ORDER.index(requested) == PIPELINE_ORDER.index(current) + 1


@dataclass
class GenerationOptions:
    """Per-job generation settings carried through every stage.

    Attributes:
        target_length: Summary length bucket ("short", "medium", "long")
        summary_style: Summary register ("conversational", "brief", "detailed")
        include_key_points: Extract key points from the summary
        include_takeaways: Extract listener takeaways from the summary
        voice: TTS voice override (None uses the configured voice)
        speed: TTS speed override (None uses the configured speed)
    """

    target_length: str = "medium"
    summary_style: str = "conversational"
    include_key_points: bool = True
    include_takeaways: bool = True
    voice: Optional[str] = None
    speed: Optional[float] = None


@dataclass
class QueueItem:
    """One episode generation job tracked by the scheduler.

    ``payload`` evolves as stages complete: scraped article
    (``content``) -> summary and TTS text -> audio reference -> final
    ``audio_url``. Only the scheduler writes status, progress and cost.

    Attributes:
        id: Unique, immutable identifier
        episode_title: Episode title shown to listeners
        source_name: Name of the content source (e.g. "TLDR Tech")
        source_url: Article URL handed to the scraper, if any
        status: Current lifecycle status
        progress: 0-100, reset to the stage's starting percentage on transition
        estimated_time_remaining: Advisory seconds remaining, recomputed each tick
        attempts: Attempt count per stage kind (failed attempts of the current stage)
        total_attempts: Number of stage executions ever admitted for this job
        cost_to_date: Committed spend in USD
        backoff_seconds: Delay after ``updated_at`` before the item may be re-admitted
        last_error: Last failure message, kept for display
        failure_kind: Kind of the failure that terminated the job
        priority: Force-dispatch flag set by ``process_item``
    """

    id: str
    episode_title: str
    source_name: str
    created_at: datetime
    updated_at: datetime
    source_url: Optional[str] = None
    status: QueueStatus = QueueStatus.PENDING
    progress: int = 0
    estimated_time_remaining: Optional[float] = None
    attempts: Dict[str, int] = field(default_factory=dict)
    total_attempts: int = 0
    cost_to_date: float = 0.0
    payload: Dict[str, Any] = field(default_factory=dict)
    options: GenerationOptions = field(default_factory=GenerationOptions)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    backoff_seconds: float = 0.0
    last_error: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    priority: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def retry_ready_at(self) -> datetime:
        """Earliest time the item may be admitted again."""
        return self.updated_at + timedelta(seconds=self.backoff_seconds)

    def attempt_count(self, stage: StageKind) -> int:
        return self.attempts.get(stage.value, 0)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for display; binary payload values are summarized by size."""
        payload: Dict[str, Any] = {}
        for key, value in self.payload.items():
            if isinstance(value, (bytes, bytearray)):
                payload[key] = f"<{len(value)} bytes>"
            else:
                payload[key] = value
        return {
            "id": self.id,
            "episode_title": self.episode_title,
            "source_name": self.source_name,
            "source_url": self.source_url,
            "status": self.status.value,
            "progress": self.progress,
            "estimated_time_remaining": self.estimated_time_remaining,
            "attempts": dict(self.attempts),
            "total_attempts": self.total_attempts,
            "cost_to_date": round(self.cost_to_date, 6),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "last_error": self.last_error,
            "failure_kind": self.failure_kind.value if self.failure_kind else None,
            "payload": payload,
        }


@dataclass(frozen=True)
class GenerationStats:
    """Read-only aggregate over all queue items, recomputed on demand."""

    currently_processing: int
    total_in_queue: int
    success_rate: float
    average_processing_time: float
    total_cost_today: float
    status: str = "idle"
    total_processed_today: int = 0
    completed_count: int = 0
    failed_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currently_processing": self.currently_processing,
            "total_in_queue": self.total_in_queue,
            "success_rate": self.success_rate,
            "average_processing_time": self.average_processing_time,
            "total_cost_today": round(self.total_cost_today, 6),
            "status": self.status,
            "total_processed_today": self.total_processed_today,
            "completed_count": self.completed_count,
            "failed_count": self.failed_count,
        }


@dataclass(frozen=True)
class LogEvent:
    """A processing event surfaced through ``get_logs``."""

    id: str
    level: str  # "info", "warning" or "error"
    message: str
    timestamp: datetime
    queue_item_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "level": self.level,
            "message": self.message,
            "queue_item_id": self.queue_item_id,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class ControlResult:
    """Outcome of a control operation; control operations never raise."""

    success: bool
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "message": self.message}
