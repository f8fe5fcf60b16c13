"""Integrity monitoring for an exam attempt.

Two signal sources feed the session:

* the focus watcher, which counts tab switches / window blurs and escalates
  once the violation limit is reached;
* the simulated proctor, which periodically raises eye and face warnings at
  random while a camera stream is held. No real detection happens.

The monitor never touches session state. It emits events through the
``emit`` callback and the session controller applies them.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from functools import partial
import logging
import random

from exam_app.constants.exam_constants import (
    EYE_WARNING_PROBABILITY,
    FACE_WARNING_PROBABILITY,
    FOCUS_DEDUPE_WINDOW_SECONDS,
    MAX_VIOLATIONS,
    PROCTOR_CHECK_INTERVAL_SECONDS,
    WARNING_CLEAR_SECONDS,
)
from exam_app.core.models import ExamSettings
from exam_app.core.services.media_access import MediaStream
from exam_app.core.services.task_scheduler import ScheduledCall, TaskScheduler
from exam_app.core.session_state import (
    FocusLost,
    FocusSource,
    MonitorEvent,
    ViolationThresholdExceeded,
    WarningCleared,
    WarningKind,
    WarningRaised,
)

logger = logging.getLogger(__name__)

EmitEvent = Callable[[MonitorEvent], None]


@dataclass(slots=True, eq=False)
class _PendingClear:
    kind: WarningKind
    handle: ScheduledCall | None = field(default=None)


class WarningTimers:
    """Raises warnings and clears each one after its own delay.

    Every raise gets an independent clear callback. A flag is only reported
    cleared once the most recent raise of that kind has expired, so an early
    clear never cuts a later warning short.
    """

    def __init__(
        self,
        scheduler: TaskScheduler,
        emit: EmitEvent,
        clear_after_seconds: float = WARNING_CLEAR_SECONDS,
    ) -> None:
        self._scheduler = scheduler
        self._emit = emit
        self._clear_after = clear_after_seconds
        self._outstanding: dict[WarningKind, int] = {kind: 0 for kind in WarningKind}
        self._pending: set[_PendingClear] = set()
        self._cancelled = False

    def raise_warning(self, kind: WarningKind) -> None:
        if self._cancelled:
            return
        self._outstanding[kind] += 1
        self._emit(WarningRaised(kind))
        pending = _PendingClear(kind)
        pending.handle = self._scheduler.call_later(self._clear_after, partial(self._clear, pending))
        self._pending.add(pending)

    def pending_count(self) -> int:
        return len(self._pending)

    def cancel_all(self) -> None:
        self._cancelled = True
        for pending in self._pending:
            if pending.handle is not None:
                pending.handle.cancel()
        self._pending.clear()

    def _clear(self, pending: _PendingClear) -> None:
        self._pending.discard(pending)
        if self._cancelled:
            return
        self._outstanding[pending.kind] -= 1
        if self._outstanding[pending.kind] == 0:
            self._emit(WarningCleared(pending.kind))


class FocusWatcher:
    """Counts focus-loss events and escalates once the violation limit is hit."""

    def __init__(
        self,
        scheduler: TaskScheduler,
        warnings: WarningTimers,
        emit: EmitEvent,
        max_violations: int = MAX_VIOLATIONS,
        dedupe_window_seconds: float = FOCUS_DEDUPE_WINDOW_SECONDS,
    ) -> None:
        self._scheduler = scheduler
        self._warnings = warnings
        self._emit = emit
        self._max_violations = max_violations
        self._dedupe_window = dedupe_window_seconds
        self._armed = False
        self._violation_count = 0
        self._escalated = False
        self._last_counted_at: float | None = None

    @property
    def violation_count(self) -> int:
        return self._violation_count

    def has_escalated(self) -> bool:
        return self._escalated

    def arm(self) -> None:
        self._armed = True

    def disarm(self) -> None:
        self._armed = False

    def observe(self, source: FocusSource) -> bool:
        """Record a focus loss. Returns False when the event was not counted."""
        if not self._armed:
            return False

        now = self._scheduler.time()
        if (
            self._dedupe_window > 0
            and self._last_counted_at is not None
            and now - self._last_counted_at < self._dedupe_window
        ):
            logger.debug("Ignoring %s within de-duplication window", source.value)
            return False
        self._last_counted_at = now

        self._violation_count += 1
        logger.warning(
            "Focus lost via %s (%d/%d)",
            source.value,
            self._violation_count,
            self._max_violations,
        )
        self._emit(FocusLost(source, self._violation_count))
        self._warnings.raise_warning(WarningKind.TAB_SWITCH)

        if self._violation_count >= self._max_violations and not self._escalated:
            self._escalated = True
            logger.warning("Violation limit reached after %d focus losses", self._violation_count)
            self._emit(ViolationThresholdExceeded(self._violation_count))
        return True


class SimulatedProctor:
    """Periodic random eye/face warnings while a camera stream is held."""

    def __init__(
        self,
        settings: ExamSettings,
        scheduler: TaskScheduler,
        warnings: WarningTimers,
        rng: random.Random,
        interval_seconds: float = PROCTOR_CHECK_INTERVAL_SECONDS,
        eye_probability: float = EYE_WARNING_PROBABILITY,
        face_probability: float = FACE_WARNING_PROBABILITY,
    ) -> None:
        self._settings = settings
        self._scheduler = scheduler
        self._warnings = warnings
        self._rng = rng
        self._interval = interval_seconds
        self._eye_probability = eye_probability
        self._face_probability = face_probability
        self._stream: MediaStream | None = None
        self._handle: ScheduledCall | None = None

    def is_running(self) -> bool:
        return self._stream is not None

    def start(self, stream: MediaStream) -> None:
        if self._stream is not None:
            self._stream.stop()
        self._stream = stream
        if self._handle is None:
            self._schedule_check()

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._stream is not None:
            self._stream.stop()
            self._stream = None

    def _schedule_check(self) -> None:
        self._handle = self._scheduler.call_later(self._interval, self._check)

    def _check(self) -> None:
        self._handle = None
        if self._stream is None:
            return
        if self._settings.eye_tracking and self._rng.random() < self._eye_probability:
            logger.info("Eye movement detected outside exam area")
            self._warnings.raise_warning(WarningKind.EYE)
        if self._settings.face_detection and self._rng.random() < self._face_probability:
            logger.info("Face not clearly visible")
            self._warnings.raise_warning(WarningKind.FACE)
        if self._stream is not None:
            self._schedule_check()


class IntegrityMonitor:
    """Facade over the focus watcher, the simulated proctor and warning timers."""

    def __init__(
        self,
        settings: ExamSettings,
        scheduler: TaskScheduler,
        emit: EmitEvent,
        rng: random.Random | None = None,
        max_violations: int = MAX_VIOLATIONS,
        dedupe_window_seconds: float = FOCUS_DEDUPE_WINDOW_SECONDS,
    ) -> None:
        self._settings = settings
        self._rng = rng if rng is not None else random.Random()
        self._warnings = WarningTimers(scheduler, emit)
        self._focus = FocusWatcher(
            scheduler,
            self._warnings,
            emit,
            max_violations=max_violations,
            dedupe_window_seconds=dedupe_window_seconds,
        )
        self._proctor = SimulatedProctor(settings, scheduler, self._warnings, self._rng)
        self._stopped = False

    @property
    def violation_count(self) -> int:
        return self._focus.violation_count

    def set_seed(self, seed: int | None) -> None:
        self._rng.seed(seed)

    def has_stream(self) -> bool:
        return self._proctor.is_running()

    def pending_warning_count(self) -> int:
        return self._warnings.pending_count()

    def start_focus_watch(self) -> None:
        if self._stopped or not self._settings.prevent_tab_switching:
            return
        self._focus.arm()

    def attach_stream(self, stream: MediaStream) -> None:
        if self._stopped or not self._settings.requires_monitoring:
            stream.stop()
            return
        self._proctor.start(stream)

    def report_focus_loss(self, source: FocusSource) -> bool:
        if self._stopped:
            return False
        return self._focus.observe(source)

    def stop(self) -> None:
        """Disarm everything, release the stream and cancel pending clears."""
        self._stopped = True
        self._focus.disarm()
        self._proctor.stop()
        self._warnings.cancel_all()
