"""Deferred-call scheduling used by the timer and the integrity monitor.

Every recurring or delayed activity of a session goes through a
``TaskScheduler`` so that a session can own (and cancel) each handle it
creates. In production the scheduler is the running asyncio loop; tests plug
in a manual clock.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Protocol


class ScheduledCall(Protocol):
    def cancel(self) -> None: ...


class TaskScheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall: ...

    def time(self) -> float: ...


class AsyncioTaskScheduler:
    """Schedules callbacks on an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0.0, delay), callback)

    def time(self) -> float:
        return self.loop.time()
