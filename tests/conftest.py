"""
Pytest configuration and shared fakes for the exam engine tests.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from exam_app.core.errors import PermissionDenied, PersistenceFailure
from exam_app.core.models import (
    ExamDefinition,
    ExamSettings,
    LongAnswerQuestion,
    McqQuestion,
    NumericalQuestion,
    Option,
)
from exam_app.core.services.exam_repository import ExamRepository
from exam_app.core.services.exam_session import ExamSession

FIXED_NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class FakeHandle:
    def __init__(self, when: float, seq: int, callback) -> None:
        self.when = when
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Manual clock: callbacks only run when the test advances time."""

    def __init__(self) -> None:
        self.now = 0.0
        self._queue: list[FakeHandle] = []
        self._seq = 0

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback) -> FakeHandle:
        handle = FakeHandle(self.now + max(0.0, delay), self._seq, callback)
        self._seq += 1
        self._queue.append(handle)
        return handle

    def pending_count(self) -> int:
        return sum(1 for handle in self._queue if not handle.cancelled)

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [h for h in self._queue if not h.cancelled and h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.seq))
            self._queue.remove(handle)
            self.now = handle.when
            handle.callback()
        self.now = target
        self._queue = [h for h in self._queue if not h.cancelled]


class FakeStream:
    def __init__(self, constraints) -> None:
        self.constraints = constraints
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True


class GrantingMedia:
    def __init__(self) -> None:
        self.requests = []
        self.streams: list[FakeStream] = []

    async def request_stream(self, constraints) -> FakeStream:
        self.requests.append(constraints)
        stream = FakeStream(constraints)
        self.streams.append(stream)
        return stream


class DenyingMedia:
    def __init__(self) -> None:
        self.requests = []

    async def request_stream(self, constraints):
        self.requests.append(constraints)
        raise PermissionDenied("Camera access denied")


class ScriptedMedia(GrantingMedia):
    """Denies or grants requests in the order given."""

    def __init__(self, outcomes: list[bool]) -> None:
        super().__init__()
        self._outcomes = list(outcomes)

    async def request_stream(self, constraints) -> FakeStream:
        granted = self._outcomes.pop(0)
        if not granted:
            self.requests.append(constraints)
            raise PermissionDenied("Camera access denied")
        return await super().request_stream(constraints)


class BrokenMedia(GrantingMedia):
    """Raises ``error`` on the first request, then grants."""

    def __init__(self, error: BaseException) -> None:
        super().__init__()
        self._error: BaseException | None = error

    async def request_stream(self, constraints) -> FakeStream:
        if self._error is not None:
            error, self._error = self._error, None
            self.requests.append(constraints)
            raise error
        return await super().request_stream(constraints)


class GatedMedia(GrantingMedia):
    """Holds every request until ``gate`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.gate: asyncio.Event | None = None

    async def request_stream(self, constraints) -> FakeStream:
        self.requests.append(constraints)
        await self.gate.wait()
        stream = FakeStream(constraints)
        self.streams.append(stream)
        return stream


class RecordingPersister:
    def __init__(self) -> None:
        self.results = []

    def append(self, result) -> None:
        self.results.append(result)


class FailingPersister:
    def __init__(self) -> None:
        self.calls = 0

    def append(self, result) -> None:
        self.calls += 1
        raise PersistenceFailure("disk full")


class RecordingRenderer:
    def __init__(self) -> None:
        self.payloads = []

    def render(self, payload) -> None:
        self.payloads.append(payload)


def mcq(question_id: str, correct: str = "b", option_ids: str = "abc") -> McqQuestion:
    return McqQuestion(
        id=question_id,
        text=f"Question {question_id}",
        options=tuple(Option(id=o, text=f"Option {o.upper()}") for o in option_ids),
        correct_option_id=correct,
    )


def numerical(question_id: str, expected: float = 10.0, tolerance: float = 0.5) -> NumericalQuestion:
    return NumericalQuestion(
        id=question_id,
        text=f"Question {question_id}",
        expected_value=expected,
        tolerance=tolerance,
    )


def long_answer(question_id: str) -> LongAnswerQuestion:
    return LongAnswerQuestion(id=question_id, text=f"Essay {question_id}")


def make_exam(
    settings: ExamSettings | None = None,
    questions=None,
    duration_seconds: int = 60,
    code: str = "EX-1",
) -> ExamDefinition:
    if questions is None:
        # q1 correct index 1, q2 within 0.5 of 10, q3 correct index 0
        questions = (mcq("q1", "b"), numerical("q2"), mcq("q3", "a", "ab"), long_answer("q4"))
    return ExamDefinition(
        id=f"id-{code}",
        code=code,
        title="Sample Exam",
        duration_seconds=duration_seconds,
        settings=settings or ExamSettings(),
        questions=tuple(questions),
    )


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def persister() -> RecordingPersister:
    return RecordingPersister()


@pytest.fixture
def session_factory(scheduler, persister):
    """Build a session for ``exam`` that has not been loaded yet."""

    def factory(exam: ExamDefinition | None = None, media=None, **kwargs) -> ExamSession:
        repository = ExamRepository()
        if exam is not None:
            repository.add_exam(exam)
        kwargs.setdefault("result_store", persister)
        kwargs.setdefault("clock", lambda: FIXED_NOW)
        return ExamSession(
            student_id="student-1",
            student_name="Ada Lovelace",
            lookup=repository,
            media=media or GrantingMedia(),
            scheduler=scheduler,
            **kwargs,
        )

    return factory
