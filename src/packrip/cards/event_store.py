"""In-memory rip activity for overlays: last rip times, live feed, listeners."""

from __future__ import annotations

import time
from collections import defaultdict, deque
from threading import Lock
from typing import Callable, Dict, List, Optional

from packrip.utils.logger import get_logger

logger = get_logger(__name__)

Listener = Callable[[Optional[dict]], None]


class RipEventStore:
    """Volatile storage for rip timestamps and recent results."""

    def __init__(self, *, feed_capacity: int = 100) -> None:
        self._lock = Lock()
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)
        self._feed_capacity = feed_capacity
        self._live_feed: deque[dict] = deque(maxlen=feed_capacity)
        self._last_rip_at: Dict[str, int] = {}

    # ------------------------------------------------------------------
    # Listener management
    # ------------------------------------------------------------------
    def add_listener(self, event_type: str, callback: Listener) -> None:
        with self._lock:
            self._listeners[event_type].append(callback)
        logger.debug("[RipEventStore] Added listener for event_type=%s", event_type)

    def emit(self, event_type: str, payload: Optional[dict]) -> None:
        with self._lock:
            listeners = list(self._listeners.get(event_type, []))
        for callback in listeners:
            try:
                callback(payload)
            except Exception as exc:
                logger.error("Listener for %s failed: %s", event_type, exc)

    # ------------------------------------------------------------------
    # Rip events
    # ------------------------------------------------------------------
    def record_rip(self, channel_id: str, at_ms: Optional[int] = None) -> int:
        """Mark that a rip just completed on ``channel_id``; returns the epoch millis."""
        stamp = at_ms if at_ms is not None else int(time.time() * 1000)
        with self._lock:
            self._last_rip_at[channel_id] = stamp
        self.emit("rip_event", {"channelId": channel_id, "at": stamp})
        return stamp

    def last_rip_at(self, channel_id: str) -> int:
        with self._lock:
            return self._last_rip_at.get(channel_id, 0)

    def add_result(self, result: dict) -> None:
        with self._lock:
            self._live_feed.append(result)
        self.emit("card_awarded", result)

    def window_update(self, snapshot: dict) -> None:
        self.emit("window_update", snapshot)

    def get_live_feed(self, channel_id: Optional[str] = None, limit: Optional[int] = None) -> List[dict]:
        with self._lock:
            items = list(self._live_feed)
        if channel_id is not None:
            items = [item for item in items if item.get("channelId") == channel_id]
        if limit is not None:
            return items[-limit:]
        return items

    def clear_all_data(self) -> None:
        with self._lock:
            self._live_feed.clear()
            self._last_rip_at.clear()
        logger.debug("[RipEventStore] clear_all_data called")
