"""Session state, session events and the reducer that applies them.

The session controller owns one ``SessionState`` and replaces it through
``reduce_session`` whenever an event arrives, whether from the student
(answers, navigation), the countdown timer or the integrity monitor. The
reducer is pure: it never starts or stops anything. Starting and releasing
timers, streams and callbacks is the controller's job.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Union

from exam_app.constants.exam_constants import MAX_VIOLATIONS
from exam_app.core.models import Answer, ExamDefinition, Question, ScoreResult, SubmitReason


class SessionPhase(Enum):
    LOADING = "loading"
    PERMISSION_PENDING = "permission_pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    TERMINATED = "terminated"
    FAILED = "failed"


TERMINAL_PHASES = frozenset({SessionPhase.COMPLETED, SessionPhase.TERMINATED, SessionPhase.FAILED})


class WarningKind(Enum):
    EYE = "eye"
    FACE = "face"
    TAB_SWITCH = "tab_switch"


class FocusSource(Enum):
    VISIBILITY_HIDDEN = "visibility_hidden"
    WINDOW_BLUR = "window_blur"


@dataclass(frozen=True, slots=True)
class SecurityState:
    eye: bool = False
    face: bool = False
    tab_switch: bool = False
    violation_count: int = 0
    max_violations: int = MAX_VIOLATIONS
    threshold_exceeded: bool = False

    def with_flag(self, kind: WarningKind, value: bool) -> "SecurityState":
        if kind is WarningKind.EYE:
            return replace(self, eye=value)
        if kind is WarningKind.FACE:
            return replace(self, face=value)
        return replace(self, tab_switch=value)


@dataclass(frozen=True, slots=True)
class SessionState:
    phase: SessionPhase = SessionPhase.LOADING
    exam: ExamDefinition | None = None
    answers: dict[str, Answer] = field(default_factory=dict)
    current_index: int = 0
    time_left: int = 0
    security: SecurityState = field(default_factory=SecurityState)
    requesting_permission: bool = False
    permission_error: str | None = None
    permission_attempts: int = 0
    monitoring_active: bool = False
    submit_reason: SubmitReason | None = None
    score: ScoreResult | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    @property
    def question_count(self) -> int:
        return self.exam.question_count if self.exam is not None else 0

    @property
    def current_question(self) -> Question | None:
        if self.exam is None or not self.exam.questions:
            return None
        return self.exam.questions[self.current_index]


# --- Events ---


@dataclass(frozen=True, slots=True)
class ExamLoaded:
    exam: ExamDefinition


@dataclass(frozen=True, slots=True)
class ExamLoadFailed:
    message: str


@dataclass(frozen=True, slots=True)
class PermissionRequestStarted:
    pass


@dataclass(frozen=True, slots=True)
class PermissionGranted:
    pass


@dataclass(frozen=True, slots=True)
class PermissionRejected:
    message: str


@dataclass(frozen=True, slots=True)
class AnswerSelected:
    question_id: str
    answer: Answer


@dataclass(frozen=True, slots=True)
class Navigated:
    index: int


@dataclass(frozen=True, slots=True)
class TimerTicked:
    remaining: int


@dataclass(frozen=True, slots=True)
class WarningRaised:
    kind: WarningKind


@dataclass(frozen=True, slots=True)
class WarningCleared:
    kind: WarningKind


@dataclass(frozen=True, slots=True)
class FocusLost:
    source: FocusSource
    count: int


@dataclass(frozen=True, slots=True)
class ViolationThresholdExceeded:
    count: int


@dataclass(frozen=True, slots=True)
class AttemptSubmitted:
    reason: SubmitReason
    score: ScoreResult


SessionEvent = Union[
    ExamLoaded,
    ExamLoadFailed,
    PermissionRequestStarted,
    PermissionGranted,
    PermissionRejected,
    AnswerSelected,
    Navigated,
    TimerTicked,
    WarningRaised,
    WarningCleared,
    FocusLost,
    ViolationThresholdExceeded,
    AttemptSubmitted,
]

MonitorEvent = Union[WarningRaised, WarningCleared, FocusLost, ViolationThresholdExceeded]


def reduce_session(state: SessionState, event: SessionEvent) -> SessionState:
    """Return the state that results from applying ``event`` to ``state``."""
    if state.is_terminal:
        return state

    if isinstance(event, ExamLoaded):
        if state.phase is not SessionPhase.LOADING:
            return state
        exam = event.exam
        phase = (
            SessionPhase.PERMISSION_PENDING
            if exam.settings.requires_monitoring
            else SessionPhase.IN_PROGRESS
        )
        return replace(
            state,
            phase=phase,
            exam=exam,
            answers={},
            current_index=0,
            time_left=exam.duration_seconds,
            security=SecurityState(),
        )

    if isinstance(event, ExamLoadFailed):
        return replace(state, phase=SessionPhase.FAILED, error=event.message)

    if isinstance(event, PermissionRequestStarted):
        if state.phase is not SessionPhase.PERMISSION_PENDING:
            return state
        return replace(state, requesting_permission=True, permission_error=None)

    if isinstance(event, PermissionRejected):
        if state.phase is not SessionPhase.PERMISSION_PENDING:
            return state
        return replace(
            state,
            requesting_permission=False,
            permission_error=event.message,
            permission_attempts=state.permission_attempts + 1,
        )

    if isinstance(event, PermissionGranted):
        if state.phase is not SessionPhase.PERMISSION_PENDING:
            return state
        return replace(
            state,
            phase=SessionPhase.IN_PROGRESS,
            requesting_permission=False,
            permission_error=None,
            permission_attempts=state.permission_attempts + 1,
            monitoring_active=True,
        )

    if isinstance(event, AnswerSelected):
        if state.phase is not SessionPhase.IN_PROGRESS:
            return state
        answers = dict(state.answers)
        answers[event.question_id] = event.answer
        return replace(state, answers=answers)

    if isinstance(event, Navigated):
        if state.phase is not SessionPhase.IN_PROGRESS or state.question_count == 0:
            return state
        index = min(max(event.index, 0), state.question_count - 1)
        return replace(state, current_index=index)

    if isinstance(event, TimerTicked):
        if state.phase is not SessionPhase.IN_PROGRESS:
            return state
        return replace(state, time_left=max(0, event.remaining))

    if isinstance(event, WarningRaised):
        return replace(state, security=state.security.with_flag(event.kind, True))

    if isinstance(event, WarningCleared):
        return replace(state, security=state.security.with_flag(event.kind, False))

    if isinstance(event, FocusLost):
        if state.phase is not SessionPhase.IN_PROGRESS:
            return state
        security = replace(state.security, violation_count=state.security.violation_count + 1)
        return replace(state, security=security)

    if isinstance(event, ViolationThresholdExceeded):
        return replace(state, security=replace(state.security, threshold_exceeded=True))

    if isinstance(event, AttemptSubmitted):
        if state.phase not in (SessionPhase.IN_PROGRESS, SessionPhase.PERMISSION_PENDING):
            return state
        phase = (
            SessionPhase.TERMINATED
            if event.reason is SubmitReason.SECURITY_VIOLATION
            else SessionPhase.COMPLETED
        )
        return replace(
            state,
            phase=phase,
            submit_reason=event.reason,
            score=event.score,
            requesting_permission=False,
            monitoring_active=False,
        )

    raise TypeError(f"Unknown session event: {type(event).__name__}")
