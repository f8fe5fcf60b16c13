"""Countdown clock for a single exam attempt."""

from __future__ import annotations

from collections.abc import Callable
import logging

from exam_app.constants.exam_constants import TICK_INTERVAL_SECONDS
from exam_app.core.services.task_scheduler import ScheduledCall, TaskScheduler

logger = logging.getLogger(__name__)


class CountdownTimer:
    """Counts down whole seconds and fires ``on_expired`` exactly once at zero."""

    def __init__(
        self,
        duration_seconds: int,
        scheduler: TaskScheduler,
        on_tick: Callable[[int], None] | None = None,
        on_expired: Callable[[], None] | None = None,
    ) -> None:
        self._remaining = max(0, int(duration_seconds))
        self._scheduler = scheduler
        self._on_tick = on_tick
        self._on_expired = on_expired
        self._handle: ScheduledCall | None = None
        self._running = False
        self._expired = False

    @property
    def remaining(self) -> int:
        return self._remaining

    def is_running(self) -> bool:
        return self._running

    def has_expired(self) -> bool:
        return self._expired

    def start(self) -> None:
        if self._running or self._expired:
            return
        self._running = True
        if self._remaining <= 0:
            self._handle = self._scheduler.call_later(0, self._expire)
        else:
            self._schedule_tick()

    def stop(self) -> None:
        """Stop ticking; a stopped timer never fires again."""
        self._running = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _schedule_tick(self) -> None:
        self._handle = self._scheduler.call_later(TICK_INTERVAL_SECONDS, self._tick)

    def _tick(self) -> None:
        self._handle = None
        if not self._running:
            return
        self._remaining -= 1
        if self._on_tick is not None:
            self._on_tick(self._remaining)
        if not self._running:
            return
        if self._remaining <= 0:
            self._expire()
            return
        self._schedule_tick()

    def _expire(self) -> None:
        self._handle = None
        if self._expired or not self._running:
            return
        self._expired = True
        self._running = False
        logger.info("Exam time expired")
        if self._on_expired is not None:
            self._on_expired()
