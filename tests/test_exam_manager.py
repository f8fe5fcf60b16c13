"""
Tests for the exam manager facade.
"""

import asyncio
from dataclasses import replace
from datetime import datetime

import pytest

from conftest import make_exam
from exam_app.core.errors import ExamNotAvailable, ExamNotFound
from exam_app.core.exam_manager import ExamManager
from exam_app.core.models import ExamSchedule, ExamSettings, SubmitReason
from exam_app.core.services.exam_repository import ExamRepository
from exam_app.core.session_state import SessionPhase

NOW = datetime(2026, 10, 19, 12, 0)


@pytest.fixture
def manager(scheduler):
    repository = ExamRepository()
    repository.add_exam(make_exam(code="OPEN"))
    repository.add_exam(make_exam(ExamSettings(face_detection=True), code="CAM"))
    repository.add_exam(
        replace(
            make_exam(code="MORNING"),
            schedule=ExamSchedule(date=NOW.date(), start_time="08:00", duration_minutes=60),
        )
    )
    return ExamManager(repository=repository, scheduler_factory=lambda: scheduler, clock=lambda: NOW)


class TestExamManager:
    """Session lifecycle per student"""

    def test_lists_exams_with_status(self, manager):
        statuses = {exam.code: manager.get_exam_status(exam) for exam in manager.list_exams()}

        assert statuses == {"OPEN": "Available Now", "CAM": "Available Now", "MORNING": "Completed"}

    def test_sessions_are_per_student(self, manager):
        first = manager.start_session("s1", "Ada", "OPEN")
        second = manager.start_session("s2", "Grace", "OPEN")

        assert manager.get_session("s1") is first
        assert manager.get_session("s2") is second
        assert first is not second

    def test_unknown_exam_registers_nothing(self, manager):
        with pytest.raises(ExamNotFound):
            manager.start_session("s1", "Ada", "NOPE")

        assert manager.get_session("s1") is None

    def test_past_window_on_same_day_not_available(self, manager):
        with pytest.raises(ExamNotAvailable):
            manager.start_session("s1", "Ada", "MORNING")

    def test_permission_resolution(self, manager):
        session = manager.start_session("s1", "Ada", "CAM")

        asyncio.run(manager.resolve_permission("s1", True))

        assert session.phase is SessionPhase.IN_PROGRESS

    def test_resolve_permission_without_session(self, manager):
        with pytest.raises(LookupError):
            asyncio.run(manager.resolve_permission("ghost", True))

    def test_discard_submits_open_attempt(self, manager):
        session = manager.start_session("s1", "Ada", "OPEN")

        manager.discard_session("s1")

        assert session.phase is SessionPhase.COMPLETED
        assert session.result.submit_reason is SubmitReason.MANUAL
        assert manager.get_session("s1") is None
        assert [r.student_id for r in manager.list_results("s1")] == ["s1"]
