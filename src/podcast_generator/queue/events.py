"""Processing event log.

Keeps the most recent events in memory for ``get_logs`` and optionally streams
every event to a JSONL file for external monitoring.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from collections import deque
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Optional

from ..config_constants import (
    DEFAULT_EVENT_LOG_SIZE,
    DEFAULT_LOG_QUERY_LIMIT,
    MAX_LOG_QUERY_LIMIT,
)
from ..models import LogEvent
from .cost import Clock, utc_now

logger = logging.getLogger(__name__)

VALID_EVENT_LEVELS = ("info", "warning", "error")

EventListener = Callable[[str, Dict[str, Any]], None]


class EventLog:
    """Bounded, thread-safe ring buffer of ``LogEvent`` records."""

    def __init__(
        self,
        max_events: int = DEFAULT_EVENT_LOG_SIZE,
        jsonl_path: Optional[str] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._lock = threading.Lock()
        self._events: Deque[LogEvent] = deque(maxlen=max_events)
        self._clock = clock or utc_now
        self.jsonl_path = Path(jsonl_path) if jsonl_path else None
        if self.jsonl_path is not None:
            self.jsonl_path.parent.mkdir(parents=True, exist_ok=True)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def record(
        self,
        level: str,
        message: str,
        queue_item_id: Optional[str] = None,
        event_type: Optional[str] = None,
    ) -> LogEvent:
        """Append an event and return it.

        Args:
            level: "info", "warning" or "error"
            message: Human-readable message
            queue_item_id: Related queue item, if any
            event_type: Lifecycle event name written to the JSONL stream
        """
        if level not in VALID_EVENT_LEVELS:
            raise ValueError(f"Invalid event level: {level}")
        event = LogEvent(
            id=uuid.uuid4().hex,
            level=level,
            message=message,
            timestamp=self._clock(),
            queue_item_id=queue_item_id,
        )
        with self._lock:
            self._events.append(event)
            if self.jsonl_path is not None:
                self._write_line(event, event_type)
        return event

    def _write_line(self, event: LogEvent, event_type: Optional[str]) -> None:
        line = event.to_dict()
        if event_type:
            line["event_type"] = event_type
        try:
            with open(self.jsonl_path, "a", encoding="utf-8") as fh:  # type: ignore[arg-type]
                fh.write(json.dumps(line, ensure_ascii=False) + "\n")
        except OSError as exc:
            # The in-memory log stays authoritative when the stream is unwritable
            logger.warning("Failed to append event to %s: %s", self.jsonl_path, exc)

    def get_logs(
        self, level: Optional[str] = None, limit: int = DEFAULT_LOG_QUERY_LIMIT
    ) -> List[LogEvent]:
        """Return recent events, newest first.

        Args:
            level: Only return events of this level (all levels if None)
            limit: Maximum number of events, clamped to 1..100
        """
        limit = max(1, min(MAX_LOG_QUERY_LIMIT, int(limit)))
        with self._lock:
            events = list(self._events)
        result = []
        for event in reversed(events):
            if level is not None and event.level != level:
                continue
            result.append(event)
            if len(result) >= limit:
                break
        return result
