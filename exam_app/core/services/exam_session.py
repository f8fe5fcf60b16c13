"""Service that runs one student's attempt at one exam.

Lifecycle::

    LOADING -> PERMISSION_PENDING -> IN_PROGRESS -> COMPLETED | TERMINATED
       \\-> FAILED (exam not found)

PERMISSION_PENDING is skipped when the exam uses neither eye tracking nor
face detection. The session owns every resource it starts (countdown timer,
integrity monitor, camera stream) and releases all of them synchronously on
the way into COMPLETED or TERMINATED, so nothing fires against a finished
attempt.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timezone
import logging
import random
from typing import Protocol

from exam_app.constants.exam_constants import (
    FOCUS_DEDUPE_WINDOW_SECONDS,
    MAX_VIOLATIONS,
    STRICT_ANSWER_VALIDATION,
)
from exam_app.core.certificate import (
    CertificatePayload,
    CertificateRenderer,
    build_certificate_payload,
    is_certificate_eligible,
)
from exam_app.core.errors import AnswerTypeMismatch, ExamNotFound, PermissionDenied
from exam_app.core.models import (
    Answer,
    ExamDefinition,
    ExamResult,
    Question,
    SubmitReason,
    validate_answer,
)
from exam_app.core.scoring import score_attempt
from exam_app.core.services.countdown_timer import CountdownTimer
from exam_app.core.services.integrity_monitor import IntegrityMonitor
from exam_app.core.services.media_access import (
    INITIAL_STREAM_CONSTRAINTS,
    RETRY_STREAM_CONSTRAINTS,
    MediaPermissionProvider,
)
from exam_app.core.services.result_store import ResultPersister
from exam_app.core.services.task_scheduler import TaskScheduler
from exam_app.core.session_state import (
    AnswerSelected,
    AttemptSubmitted,
    ExamLoaded,
    ExamLoadFailed,
    FocusSource,
    MonitorEvent,
    Navigated,
    PermissionGranted,
    PermissionRejected,
    PermissionRequestStarted,
    SessionEvent,
    SessionPhase,
    SessionState,
    TimerTicked,
    ViolationThresholdExceeded,
    reduce_session,
)

logger = logging.getLogger(__name__)


class ExamLookup(Protocol):
    def lookup(self, code: str) -> ExamDefinition | None: ...


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ExamSession:
    """Manages the state of a single exam attempt."""

    def __init__(
        self,
        student_id: str,
        student_name: str,
        lookup: ExamLookup,
        media: MediaPermissionProvider,
        result_store: ResultPersister,
        scheduler: TaskScheduler,
        certificate_renderer: CertificateRenderer | None = None,
        rng: random.Random | None = None,
        strict_answers: bool = STRICT_ANSWER_VALIDATION,
        max_violations: int = MAX_VIOLATIONS,
        dedupe_window_seconds: float = FOCUS_DEDUPE_WINDOW_SECONDS,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.student_id = student_id
        self.student_name = student_name
        self._lookup = lookup
        self._media = media
        self._result_store = result_store
        self._scheduler = scheduler
        self._certificate_renderer = certificate_renderer
        self._rng = rng
        self._strict_answers = strict_answers
        self._max_violations = max_violations
        self._dedupe_window = dedupe_window_seconds
        self._clock = clock

        self._state = SessionState()
        self._timer: CountdownTimer | None = None
        self._monitor: IntegrityMonitor | None = None
        self._permission_request: asyncio.Future[bool] | None = None
        self._result: ExamResult | None = None
        self._certificate: CertificatePayload | None = None
        self._result_persisted = False

    # --- Read access ---

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def phase(self) -> SessionPhase:
        return self._state.phase

    @property
    def exam(self) -> ExamDefinition | None:
        return self._state.exam

    @property
    def current_question(self) -> Question | None:
        return self._state.current_question

    @property
    def result(self) -> ExamResult | None:
        return self._result

    @property
    def certificate(self) -> CertificatePayload | None:
        return self._certificate

    @property
    def result_persisted(self) -> bool:
        return self._result_persisted

    @property
    def monitor(self) -> IntegrityMonitor | None:
        return self._monitor

    @property
    def timer(self) -> CountdownTimer | None:
        return self._timer

    def can_retry_permission(self) -> bool:
        return (
            self._state.phase is SessionPhase.PERMISSION_PENDING
            and not self._state.requesting_permission
            and self._state.permission_error is not None
        )

    # --- Operations ---

    def load(self, code: str) -> ExamDefinition:
        """Fetch the exam for ``code`` and enter the first active phase."""
        if self._state.phase is not SessionPhase.LOADING:
            raise RuntimeError("Exam has already been loaded for this session.")

        exam = self._lookup.lookup(code)
        if exam is None or not exam.questions:
            logger.warning("Exam %s not found or has no questions", code)
            self._dispatch(ExamLoadFailed(f"No exam found for code '{code}'."))
            raise ExamNotFound(code)

        self._monitor = IntegrityMonitor(
            exam.settings,
            self._scheduler,
            self._on_monitor_event,
            rng=self._rng,
            max_violations=self._max_violations,
            dedupe_window_seconds=self._dedupe_window,
        )
        self._timer = CountdownTimer(
            exam.duration_seconds,
            self._scheduler,
            on_tick=self._on_timer_tick,
            on_expired=self._on_timer_expired,
        )
        self._dispatch(ExamLoaded(exam))
        logger.info(
            "Student %s loaded exam %s (%d questions)",
            self.student_id,
            exam.code,
            exam.question_count,
        )
        if self._state.phase is SessionPhase.IN_PROGRESS:
            self._start_attempt()
        return exam

    async def request_monitoring_permission(self) -> bool:
        """Ask for camera access; returns True once the attempt is in progress.

        Only one request is in flight at a time: concurrent callers await the
        same outcome, and cancelling one caller leaves the request running
        for the others. A denial or a failed request leaves the session
        waiting for an explicit retry.
        """
        if self._state.phase is not SessionPhase.PERMISSION_PENDING:
            return self._state.phase is SessionPhase.IN_PROGRESS
        if self._permission_request is None:
            self._permission_request = asyncio.ensure_future(self._acquire_stream())
        return await asyncio.shield(self._permission_request)

    def select_answer(self, question_id: str, answer: Answer) -> bool:
        """Record ``answer`` for ``question_id``, replacing any earlier answer."""
        if self._state.phase is not SessionPhase.IN_PROGRESS:
            logger.debug("Ignoring answer for %s outside of an active attempt", question_id)
            return False

        try:
            question = self._state.exam.question_by_id(question_id)
            if question is None:
                raise AnswerTypeMismatch(f"Unknown question id '{question_id}'.")
            validate_answer(question, answer)
        except AnswerTypeMismatch:
            if self._strict_answers:
                raise
            logger.warning("Rejected answer for question %s", question_id, exc_info=True)
            return False

        self._dispatch(AnswerSelected(question_id, answer))
        return True

    def navigate(self, index: int) -> int:
        """Move to question ``index``; out-of-range requests are clamped."""
        self._dispatch(Navigated(index))
        return self._state.current_index

    def report_focus_loss(self, source: FocusSource) -> bool:
        """Feed a visibility-hidden or window-blur event to the focus watcher."""
        if self._state.phase is not SessionPhase.IN_PROGRESS or self._monitor is None:
            return False
        return self._monitor.report_focus_loss(source)

    def submit(self, reason: SubmitReason = SubmitReason.MANUAL) -> ExamResult | None:
        """Finish the attempt. Calling it again afterwards changes nothing."""
        if self._state.is_terminal:
            return self._result
        if self._state.phase not in (SessionPhase.IN_PROGRESS, SessionPhase.PERMISSION_PENDING):
            return None

        self._release_resources()

        exam = self._state.exam
        score = score_attempt(exam.questions, self._state.answers, exam.settings)
        self._dispatch(AttemptSubmitted(reason, score))
        logger.info(
            "Student %s submitted exam %s (%s): %d%% %s",
            self.student_id,
            exam.code,
            reason.value,
            score.percentage,
            "passed" if score.passed else "not passed",
        )

        result = ExamResult(
            student_id=self.student_id,
            student_name=self.student_name,
            exam_id=exam.id,
            exam_code=exam.code,
            exam_title=exam.title,
            percentage=score.percentage,
            gradable_total=score.gradable_total,
            correct_count=score.correct_count,
            tab_switch_count=self._state.security.violation_count,
            completed_at=self._clock(),
            passed=score.passed,
            submit_reason=reason,
        )
        self._result = result
        self._persist(result)

        if is_certificate_eligible(score.passed, exam.settings, reason):
            self._certificate = build_certificate_payload(result)
            self._render_certificate(self._certificate)
        return result

    # --- Internals ---

    def _dispatch(self, event: SessionEvent) -> None:
        self._state = reduce_session(self._state, event)

    def _start_attempt(self) -> None:
        self._timer.start()
        self._monitor.start_focus_watch()

    def _release_resources(self) -> None:
        if self._timer is not None:
            self._timer.stop()
        if self._monitor is not None:
            self._monitor.stop()

    async def _acquire_stream(self) -> bool:
        try:
            if self._state.phase is not SessionPhase.PERMISSION_PENDING:
                return self._state.phase is SessionPhase.IN_PROGRESS
            constraints = (
                RETRY_STREAM_CONSTRAINTS
                if self._state.permission_attempts > 0
                else INITIAL_STREAM_CONSTRAINTS
            )
            self._dispatch(PermissionRequestStarted())
            try:
                stream = await self._media.request_stream(constraints)
            except PermissionDenied as exc:
                logger.warning("Camera access denied for student %s: %s", self.student_id, exc)
                self._dispatch(PermissionRejected(str(exc) or "Camera access denied"))
                return False
            except Exception:
                logger.exception("Camera request failed for student %s", self.student_id)
                self._dispatch(PermissionRejected("Camera could not be started"))
                return False

            if self._state.phase is not SessionPhase.PERMISSION_PENDING:
                # The attempt ended while the request was in flight.
                stream.stop()
                return self._state.phase is SessionPhase.IN_PROGRESS

            self._dispatch(PermissionGranted())
            logger.info("Camera access granted for student %s", self.student_id)
            self._monitor.attach_stream(stream)
            self._start_attempt()
            return True
        except asyncio.CancelledError:
            self._dispatch(PermissionRejected("Camera request was interrupted"))
            raise
        finally:
            self._permission_request = None

    def _on_timer_tick(self, remaining: int) -> None:
        self._dispatch(TimerTicked(remaining))

    def _on_timer_expired(self) -> None:
        self.submit(SubmitReason.TIME_EXPIRED)

    def _on_monitor_event(self, event: MonitorEvent) -> None:
        if self._state.is_terminal:
            return
        self._dispatch(event)
        if isinstance(event, ViolationThresholdExceeded):
            self.submit(SubmitReason.SECURITY_VIOLATION)

    def _persist(self, result: ExamResult) -> None:
        try:
            self._result_store.append(result)
        except Exception:
            # The attempt stays complete for the student even if storage fails.
            logger.exception("Failed to persist result for student %s", self.student_id)
            return
        self._result_persisted = True

    def _render_certificate(self, payload: CertificatePayload) -> None:
        if self._certificate_renderer is None:
            return
        try:
            self._certificate_renderer.render(payload)
        except Exception:
            logger.exception("Certificate renderer failed for student %s", self.student_id)
