"""
Window Scheduler - drives the open, collect, close, resolve cycle per channel
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Dict, Iterable, List, Optional

from packrip.broadcast.publisher import ResultBroadcaster
from packrip.cards.awarder import CardAwarder
from packrip.cards.entry import joined_message, window_closed_message, window_opened_message
from packrip.cards.event_store import RipEventStore
from packrip.cards.models import EnrollStatus, ParticipantFailure, ResolutionReport
from packrip.cards.window import ParticipationWindow
from packrip.utils.logger import get_logger

logger = get_logger(__name__)

Announcer = Callable[[str, str], None]


def log_announcement(channel_id: str, text: str) -> None:
    logger.info("[%s] %s", channel_id, text)


class WindowScheduler:
    """Owns one channel's window and resolves it.

    ``open`` and ``resolve`` hold the cycle lock for their whole duration, so
    an ``open`` requested while a resolve is still persisting waits for it to
    finish. Broadcasts are scheduled as background tasks and never awaited.
    """

    def __init__(
        self,
        channel_id: str,
        awarder: CardAwarder,
        *,
        broadcaster: Optional[ResultBroadcaster] = None,
        events: Optional[RipEventStore] = None,
        window_seconds: float = 70,
        period_seconds: float = 360,
        poll_interval: float = 1.0,
        clock: Callable[[], float] = time.time,
        announce: Announcer = log_announcement,
    ) -> None:
        self.channel_id = channel_id
        self.window = ParticipationWindow(channel_id, clock)
        self.awarder = awarder
        self.broadcaster = broadcaster
        self.events = events or RipEventStore()
        self.window_seconds = window_seconds
        self.period_seconds = period_seconds
        self.poll_interval = poll_interval
        self._clock = clock
        self._announce = announce
        self._cycle_lock = asyncio.Lock()
        self.running = False
        self.scheduler_task: Optional[asyncio.Task] = None
        self.last_report: Optional[ResolutionReport] = None

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    async def open(self, duration_seconds: Optional[float] = None) -> int:
        duration = duration_seconds or self.window_seconds
        async with self._cycle_lock:
            window_id = self.window.open(duration)
        self.events.window_update(self.window.snapshot())
        self._announce(self.channel_id, window_opened_message(duration))
        return window_id

    def enroll(self, viewer_id: str, display_name: Optional[str] = None) -> EnrollStatus:
        status = self.window.enroll(viewer_id, display_name)
        if status is EnrollStatus.ACCEPTED:
            self._announce(self.channel_id, joined_message(display_name or viewer_id))
            self.events.window_update(self.window.snapshot())
        return status

    async def resolve(self) -> ResolutionReport:
        async with self._cycle_lock:
            report = await self._resolve_locked()
        self.last_report = report
        self.events.window_update(self.window.snapshot())
        return report

    async def _resolve_locked(self) -> ResolutionReport:
        window_id = self.window.window_id
        participants = self.window.close()
        report = ResolutionReport(channel_id=self.channel_id, window_id=window_id)

        if not participants:
            self._announce(self.channel_id, window_closed_message(0, []))
            return report

        try:
            collection = await asyncio.to_thread(self.awarder.load_collection, self.channel_id)
        except Exception as exc:
            report.config_error = str(exc)
            logger.error("Window %s on %s not resolved, configuration error: %s",
                         window_id, self.channel_id, exc)
            self._announce(self.channel_id, window_closed_message(len(participants), []))
            return report

        for participant in participants:
            try:
                result = self.awarder.draw(
                    self.channel_id, participant.viewer_id, collection, participant.display_name
                )
            except Exception as exc:
                logger.warning("Failed to rip for %s: %s", participant.viewer_id, exc)
                report.failures.append(ParticipantFailure(participant.viewer_id, "draw", str(exc)))
                continue

            try:
                await asyncio.to_thread(
                    self.awarder.ledger.append, self.channel_id, participant.viewer_id, result.item
                )
            except Exception as exc:
                # Dropped, not retried: the viewer simply gets no card this window
                logger.error("Failed to save card for %s: %s", participant.viewer_id, exc)
                report.failures.append(ParticipantFailure(participant.viewer_id, "persist", str(exc)))
                continue

            logger.info("Awarded %s a %s card: %s",
                        participant.display_name or participant.viewer_id,
                        result.rarity.name, result.item.name)
            report.results.append(result)
            self.events.add_result(result.to_dict())
            if self.broadcaster is not None:
                self.broadcaster.publish_later(self.channel_id, result)

        if report.results:
            self.events.record_rip(self.channel_id)
        self._announce(self.channel_id, window_closed_message(len(participants), report.results))
        return report

    # ------------------------------------------------------------------
    # Autonomous mode
    # ------------------------------------------------------------------
    async def start(self) -> None:
        """Open immediately, then every ``period_seconds``; resolve at each deadline."""
        if self.running:
            logger.warning("Scheduler for %s already running", self.channel_id)
            return
        self.running = True
        logger.info("Starting rip scheduler for %s (window %ss, period %ss)",
                    self.channel_id, self.window_seconds, self.period_seconds)
        self.scheduler_task = asyncio.create_task(
            self._scheduler_loop(), name=f"rip-scheduler-{self.channel_id}"
        )

    async def stop(self) -> None:
        self.running = False
        if self.scheduler_task:
            self.scheduler_task.cancel()
            try:
                await self.scheduler_task
            except asyncio.CancelledError:
                pass
            self.scheduler_task = None
        logger.info("Rip scheduler for %s stopped", self.channel_id)

    async def _scheduler_loop(self) -> None:
        next_open = self._clock()
        while self.running:
            try:
                await self._tick(next_open)
                if self._clock() >= next_open:
                    next_open = max(next_open + self.period_seconds, self._clock())
                await asyncio.sleep(self.poll_interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in rip scheduler loop for {self.channel_id}: {e}")
                await asyncio.sleep(self.poll_interval * 5)

    async def _tick(self, next_open: float) -> None:
        if self.window.is_expired():
            await self.resolve()
        if self._clock() >= next_open:
            await self.open()


class SchedulerRegistry:
    """One scheduler per channel, created on first use."""

    def __init__(self, factory: Callable[[str], WindowScheduler]) -> None:
        self._factory = factory
        self._schedulers: Dict[str, WindowScheduler] = {}

    def get(self, channel_id: str) -> WindowScheduler:
        scheduler = self._schedulers.get(channel_id)
        if scheduler is None:
            scheduler = self._factory(channel_id)
            self._schedulers[channel_id] = scheduler
        return scheduler

    def channels(self) -> List[str]:
        return list(self._schedulers)

    async def start_autonomous(self, channel_ids: Iterable[str]) -> None:
        for channel_id in channel_ids:
            await self.get(channel_id).start()

    async def stop_all(self) -> None:
        for scheduler in list(self._schedulers.values()):
            await scheduler.stop()
