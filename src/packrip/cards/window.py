"""Participation window: who typed !rip before the deadline."""

from __future__ import annotations

import time
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Dict, List, Optional

from packrip.cards.models import EnrollStatus, WindowState
from packrip.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Participant:
    viewer_id: str
    display_name: Optional[str] = None


class ParticipationWindow:
    """Single-writer state machine for one channel's entry window.

    All mutations go through :meth:`open`, :meth:`enroll` and :meth:`close`,
    which are serialised by an internal lock so enrollments may arrive from
    any thread or task. ``close`` snapshots and clears the participant set in
    one step: an enrollment either lands in the snapshot or sees CLOSED.
    """

    def __init__(self, channel_id: str, clock: Callable[[], float] = time.time) -> None:
        self.channel_id = channel_id
        self._clock = clock
        self._lock = Lock()
        self._state = WindowState.CLOSED
        self._participants: Dict[str, Participant] = {}
        self._window_id = 0
        self._opens_at: Optional[float] = None
        self._closes_at: Optional[float] = None

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def open(self, duration_seconds: float) -> int:
        """Open a new window, discarding any participants of a still-open one."""
        if duration_seconds <= 0:
            raise ValueError("duration_seconds must be positive")
        with self._lock:
            discarded = len(self._participants) if self._state == WindowState.OPEN else 0
            now = self._clock()
            self._window_id += 1
            self._state = WindowState.OPEN
            self._participants = {}
            self._opens_at = now
            self._closes_at = now + duration_seconds
            window_id = self._window_id

        if discarded:
            logger.warning(
                "Window %s on %s reopened; discarded %s pending participants",
                window_id - 1, self.channel_id, discarded,
            )
        logger.info("=== RIP WINDOW %s OPENED on %s for %ss ===", window_id, self.channel_id, duration_seconds)
        return window_id

    def enroll(self, viewer_id: str, display_name: Optional[str] = None) -> EnrollStatus:
        if not viewer_id:
            raise ValueError("viewer_id is required")
        with self._lock:
            if not self._accepting():
                return EnrollStatus.CLOSED
            if viewer_id in self._participants:
                return EnrollStatus.DUPLICATE
            self._participants[viewer_id] = Participant(viewer_id, display_name)
        logger.info("Added %s to rip window on %s", display_name or viewer_id, self.channel_id)
        return EnrollStatus.ACCEPTED

    def close(self) -> List[Participant]:
        """Flip to CLOSED and hand back the participants in enrollment order."""
        with self._lock:
            participants = list(self._participants.values())
            was_open = self._state == WindowState.OPEN
            self._state = WindowState.CLOSED
            self._participants = {}
        if was_open:
            logger.info("=== RIP WINDOW %s CLOSED on %s (%s participants) ===",
                        self._window_id, self.channel_id, len(participants))
        return participants

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    def _accepting(self) -> bool:
        return (
            self._state == WindowState.OPEN
            and self._closes_at is not None
            and self._clock() < self._closes_at
        )

    @property
    def state(self) -> WindowState:
        with self._lock:
            return self._state

    @property
    def window_id(self) -> int:
        with self._lock:
            return self._window_id

    @property
    def closes_at(self) -> Optional[float]:
        with self._lock:
            return self._closes_at

    def is_accepting(self) -> bool:
        with self._lock:
            return self._accepting()

    def is_expired(self) -> bool:
        """True once an open window has passed its deadline."""
        with self._lock:
            return (
                self._state == WindowState.OPEN
                and self._closes_at is not None
                and self._clock() >= self._closes_at
            )

    def participants(self) -> List[Participant]:
        with self._lock:
            return list(self._participants.values())

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "channelId": self.channel_id,
                "windowId": self._window_id,
                "state": self._state.value,
                "stateLabel": self._state.name,
                "accepting": self._accepting(),
                "opensAt": self._opens_at,
                "closesAt": self._closes_at,
                "participants": [
                    {"viewerId": p.viewer_id, "displayName": p.display_name}
                    for p in self._participants.values()
                ],
            }
