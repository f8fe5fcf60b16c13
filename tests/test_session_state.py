"""
Tests for the session reducer.
"""

from dataclasses import replace

import pytest

from conftest import make_exam
from exam_app.core.models import UNANSWERED, ExamSettings, SelectedOption, SubmitReason
from exam_app.core.scoring import score_attempt
from exam_app.core.session_state import (
    AnswerSelected,
    AttemptSubmitted,
    ExamLoaded,
    ExamLoadFailed,
    FocusLost,
    FocusSource,
    Navigated,
    PermissionGranted,
    PermissionRejected,
    PermissionRequestStarted,
    SessionPhase,
    SessionState,
    TimerTicked,
    ViolationThresholdExceeded,
    WarningCleared,
    WarningKind,
    WarningRaised,
    reduce_session,
)


def loaded(settings=None) -> SessionState:
    return reduce_session(SessionState(), ExamLoaded(make_exam(settings)))


def submitted(state: SessionState, reason=SubmitReason.MANUAL) -> SessionState:
    exam = state.exam
    score = score_attempt(exam.questions, state.answers, exam.settings)
    return reduce_session(state, AttemptSubmitted(reason, score))


class TestLoading:
    """Entering the attempt"""

    def test_unproctored_exam_starts_in_progress(self):
        state = loaded()

        assert state.phase is SessionPhase.IN_PROGRESS
        assert state.time_left == 60
        assert state.current_index == 0
        assert state.answers == {}

    def test_proctored_exam_waits_for_permission(self):
        state = loaded(ExamSettings(face_detection=True))
        assert state.phase is SessionPhase.PERMISSION_PENDING

    def test_load_failure_is_terminal(self):
        state = reduce_session(SessionState(), ExamLoadFailed("No exam found"))

        assert state.phase is SessionPhase.FAILED
        assert state.error == "No exam found"
        assert state.is_terminal


class TestPermission:
    """Permission request bookkeeping"""

    def test_rejection_records_error_and_attempt(self):
        state = loaded(ExamSettings(eye_tracking=True))
        state = reduce_session(state, PermissionRequestStarted())
        assert state.requesting_permission

        state = reduce_session(state, PermissionRejected("Camera access denied"))

        assert state.phase is SessionPhase.PERMISSION_PENDING
        assert state.requesting_permission is False
        assert state.permission_error == "Camera access denied"
        assert state.permission_attempts == 1

    def test_grant_starts_attempt_with_monitoring(self):
        state = loaded(ExamSettings(eye_tracking=True))
        state = reduce_session(state, PermissionRequestStarted())
        state = reduce_session(state, PermissionGranted())

        assert state.phase is SessionPhase.IN_PROGRESS
        assert state.monitoring_active
        assert state.permission_error is None

    def test_answers_ignored_before_permission(self):
        state = loaded(ExamSettings(eye_tracking=True))

        after = reduce_session(state, AnswerSelected("q1", SelectedOption(0)))

        assert after is state


class TestInProgress:
    """Answers, navigation and clock"""

    def test_later_answer_replaces_earlier(self):
        state = loaded()
        state = reduce_session(state, AnswerSelected("q1", SelectedOption(0)))
        state = reduce_session(state, AnswerSelected("q1", SelectedOption(2)))

        assert state.answers == {"q1": SelectedOption(2)}

    def test_clearing_an_answer(self):
        state = loaded()
        state = reduce_session(state, AnswerSelected("q1", SelectedOption(0)))
        state = reduce_session(state, AnswerSelected("q1", UNANSWERED))

        assert state.answers["q1"] is UNANSWERED

    @pytest.mark.parametrize("requested, expected", [(-5, 0), (2, 2), (99, 3)])
    def test_navigation_is_clamped(self, requested, expected):
        state = reduce_session(loaded(), Navigated(requested))
        assert state.current_index == expected

    def test_timer_tick_updates_time_left(self):
        state = reduce_session(loaded(), TimerTicked(42))
        assert state.time_left == 42

    def test_focus_loss_increments_violations(self):
        state = reduce_session(loaded(), FocusLost(FocusSource.WINDOW_BLUR, 1))
        assert state.security.violation_count == 1

    def test_warning_flags(self):
        state = reduce_session(loaded(), WarningRaised(WarningKind.EYE))
        assert state.security.eye

        state = reduce_session(state, WarningCleared(WarningKind.EYE))
        assert not state.security.eye

    def test_threshold_flag(self):
        state = reduce_session(loaded(), ViolationThresholdExceeded(3))
        assert state.security.threshold_exceeded


class TestSubmission:
    """Terminal transitions"""

    def test_manual_submit_completes(self):
        state = submitted(loaded())

        assert state.phase is SessionPhase.COMPLETED
        assert state.submit_reason is SubmitReason.MANUAL
        assert state.score is not None

    def test_security_violation_terminates(self):
        state = submitted(loaded(), SubmitReason.SECURITY_VIOLATION)
        assert state.phase is SessionPhase.TERMINATED

    def test_terminal_state_ignores_every_event(self):
        state = submitted(loaded())

        for event in (
            AnswerSelected("q1", SelectedOption(0)),
            Navigated(2),
            TimerTicked(1),
            WarningRaised(WarningKind.FACE),
            FocusLost(FocusSource.VISIBILITY_HIDDEN, 1),
            ExamLoadFailed("late"),
        ):
            assert reduce_session(state, event) is state

    def test_second_submit_is_ignored(self):
        state = submitted(loaded())
        again = reduce_session(state, AttemptSubmitted(SubmitReason.TIME_EXPIRED, state.score))

        assert again.submit_reason is SubmitReason.MANUAL

    def test_unknown_event_raises(self):
        with pytest.raises(TypeError):
            reduce_session(loaded(), object())

    def test_current_question_follows_index(self):
        state = replace(loaded(), current_index=1)
        assert state.current_question.id == "q2"
