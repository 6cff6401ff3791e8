"""In-memory job store for queue items.

The store is the single source of truth shared by the scheduler and the stats
reporter. Reads return deep copies; writes are serialized behind one lock and
checked against the forward-only state machine.
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set

from ..exceptions import InvalidTransitionError, QueueItemNotFoundError
from ..models import GenerationOptions, QueueItem, QueueStatus, can_transition
from .cost import utc_now

logger = logging.getLogger(__name__)


class JobStore:
    """Thread-safe table of queue items.

    Besides item state the store tracks which items are checked out to an
    in-flight stage execution. A checked-out item is never selected for
    admission again until it is released.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._lock = threading.RLock()
        self._clock = clock or utc_now
        self._items: Dict[str, QueueItem] = {}
        self._checked_out: Set[str] = set()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        with self._lock:
            return item_id in self._items

    def enqueue(
        self,
        episode_title: str,
        source_name: str,
        source_url: Optional[str] = None,
        content: Optional[str] = None,
        options: Optional[GenerationOptions] = None,
        item_id: Optional[str] = None,
    ) -> QueueItem:
        """Create a ``pending`` queue item and return a copy of it.

        Args:
            episode_title: Episode title
            source_name: Content source name
            source_url: Article URL for the scrape stage
            content: Pre-fetched article text; the scrape stage then only validates it
            options: Per-job generation options
            item_id: Explicit id (a UUID is generated otherwise)

        Raises:
            ValueError: If the id already exists or neither url nor content is given
        """
        if not source_url and not content:
            raise ValueError("A queue item needs a source_url or content")
        now = self._clock()
        item = QueueItem(
            id=item_id or uuid.uuid4().hex,
            episode_title=episode_title,
            source_name=source_name,
            source_url=source_url,
            created_at=now,
            updated_at=now,
            options=options or GenerationOptions(),
        )
        if content is not None:
            item.payload["content"] = content
        with self._lock:
            if item.id in self._items:
                raise ValueError(f"Queue item already exists: {item.id}")
            self._items[item.id] = item
            logger.debug("Enqueued %s (%s)", item.id, episode_title)
            return copy.deepcopy(item)

    def get(self, item_id: str) -> QueueItem:
        """Return a copy of the item.

        Raises:
            QueueItemNotFoundError: If the id is unknown
        """
        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                raise QueueItemNotFoundError(item_id)
            return copy.deepcopy(item)

    def snapshot(self) -> List[QueueItem]:
        """Return copies of all items in creation order."""
        with self._lock:
            return [copy.deepcopy(item) for item in self._items.values()]

    def update(self, item_id: str, touch: bool = True, **changes: Any) -> QueueItem:
        """Apply field changes to an item.

        ``updated_at`` is bumped unless ``touch`` is False. Advisory fields
        (time estimates, the force-dispatch flag) are written untouched so
        they do not disturb FIFO order or a running backoff window.

        Raises:
            QueueItemNotFoundError: If the id is unknown
            InvalidTransitionError: If the item is terminal or the status change
                is not a forward step
        """
        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                raise QueueItemNotFoundError(item_id)
            requested = changes.get("status", item.status)
            if not can_transition(item.status, requested):
                raise InvalidTransitionError(item_id, item.status.value, requested.value)
            if "progress" in changes:
                changes["progress"] = max(0, min(100, int(changes["progress"])))
            if "cost_to_date" in changes and changes["cost_to_date"] < item.cost_to_date:
                raise ValueError(f"cost_to_date of {item_id} cannot decrease")
            for key, value in changes.items():
                if not hasattr(item, key) or key in ("id", "created_at"):
                    raise AttributeError(f"QueueItem field cannot be updated: {key}")
                setattr(item, key, value)
            if touch:
                item.updated_at = self._clock()
            return copy.deepcopy(item)

    def checkout(self, item_id: str) -> bool:
        """Mark an item as owned by an in-flight stage.

        Returns:
            False if the item is unknown, terminal, or already checked out
        """
        with self._lock:
            item = self._items.get(item_id)
            if item is None or item.is_terminal or item_id in self._checked_out:
                return False
            self._checked_out.add(item_id)
            return True

    def release(self, item_id: str) -> None:
        """Return an item's slot after its stage finished."""
        with self._lock:
            self._checked_out.discard(item_id)

    def is_checked_out(self, item_id: str) -> bool:
        with self._lock:
            return item_id in self._checked_out

    def checked_out_count(self) -> int:
        with self._lock:
            return len(self._checked_out)

    def remove(self, item_id: str) -> QueueItem:
        """Delete an item; used by external cleanup, never by the scheduler.

        Raises:
            QueueItemNotFoundError: If the id is unknown
            ValueError: If the item is currently checked out
        """
        with self._lock:
            if item_id in self._checked_out:
                raise ValueError(f"Queue item {item_id} is in flight and cannot be removed")
            item = self._items.pop(item_id, None)
            if item is None:
                raise QueueItemNotFoundError(item_id)
            return item

    def count_by_status(self) -> Dict[QueueStatus, int]:
        with self._lock:
            counts: Dict[QueueStatus, int] = {status: 0 for status in QueueStatus}
            for item in self._items.values():
                counts[item.status] += 1
            return counts
