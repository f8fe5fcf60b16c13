"""Domain models for the exam application."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
import math
from typing import Any, ClassVar, Union

from exam_app.constants.exam_constants import (
    DEFAULT_NEGATIVE_MARKING_VALUE,
    DEFAULT_PASS_THRESHOLD,
)
from exam_app.core.errors import AnswerTypeMismatch


class QuestionType(Enum):
    MCQ = "mcq"
    SHORT_ANSWER = "shortanswer"
    LONG_ANSWER = "longanswer"
    NUMERICAL = "numerical"


class SubmitReason(Enum):
    """Why an attempt left the in-progress state."""

    MANUAL = "manual"
    TIME_EXPIRED = "time_expired"
    SECURITY_VIOLATION = "security_violation"


@dataclass(frozen=True, slots=True)
class Option:
    id: str
    text: str


@dataclass(frozen=True, slots=True)
class McqQuestion:
    """Multiple-choice question; graded by comparing option ids."""

    kind: ClassVar[QuestionType] = QuestionType.MCQ

    id: str
    text: str
    options: tuple[Option, ...]
    correct_option_id: str


@dataclass(frozen=True, slots=True)
class ShortAnswerQuestion:
    """Free-text question graded outside of the core."""

    kind: ClassVar[QuestionType] = QuestionType.SHORT_ANSWER

    id: str
    text: str
    expected_answer_text: str = ""


@dataclass(frozen=True, slots=True)
class LongAnswerQuestion:
    """Essay-style question graded outside of the core."""

    kind: ClassVar[QuestionType] = QuestionType.LONG_ANSWER

    id: str
    text: str
    expected_answer_text: str = ""


@dataclass(frozen=True, slots=True)
class NumericalQuestion:
    """Numeric question accepted within +/- tolerance of the expected value."""

    kind: ClassVar[QuestionType] = QuestionType.NUMERICAL

    id: str
    text: str
    expected_value: float
    tolerance: float = 0.0


Question = Union[McqQuestion, ShortAnswerQuestion, LongAnswerQuestion, NumericalQuestion]


@dataclass(frozen=True, slots=True)
class SelectedOption:
    option_index: int


@dataclass(frozen=True, slots=True)
class TextAnswer:
    text: str


@dataclass(frozen=True, slots=True)
class NumberAnswer:
    value: float


@dataclass(frozen=True, slots=True)
class Unanswered:
    """Explicit 'no answer'; valid for every question variant."""


UNANSWERED = Unanswered()

Answer = Union[SelectedOption, TextAnswer, NumberAnswer, Unanswered]


@dataclass(frozen=True, slots=True)
class ExamSettings:
    """Per-exam options; unknown options are dropped when parsed."""

    negative_marking: bool = False
    negative_marking_value: float = DEFAULT_NEGATIVE_MARKING_VALUE
    eye_tracking: bool = False
    face_detection: bool = False
    prevent_tab_switching: bool = False
    generate_certificate: bool = False
    display_results: bool = False
    pass_threshold: float = DEFAULT_PASS_THRESHOLD

    @property
    def requires_monitoring(self) -> bool:
        return self.eye_tracking or self.face_detection


@dataclass(frozen=True, slots=True)
class ExamSchedule:
    """Optional availability window for an exam."""

    date: date
    start_time: str  # "HH:MM"
    duration_minutes: int = 60


@dataclass(frozen=True, slots=True)
class ExamDefinition:
    """An exam as loaded from the repository; never changes during an attempt."""

    id: str
    code: str
    title: str
    duration_seconds: int
    settings: ExamSettings
    questions: tuple[Question, ...]
    description: str = ""
    schedule: ExamSchedule | None = None

    @property
    def question_count(self) -> int:
        return len(self.questions)

    def question_by_id(self, question_id: str) -> Question | None:
        return next((q for q in self.questions if q.id == question_id), None)


@dataclass(frozen=True, slots=True)
class ScoreResult:
    correct_count: int
    incorrect_count: int
    gradable_total: int
    negative_marks_deducted: float
    final_score: float
    percentage: int
    passed: bool

    @property
    def raw_score(self) -> int:
        return self.correct_count


@dataclass(frozen=True, slots=True)
class ExamResult:
    """Persisted outcome of one completed attempt."""

    student_id: str
    student_name: str
    exam_id: str
    exam_code: str
    exam_title: str
    percentage: int
    gradable_total: int
    correct_count: int
    tab_switch_count: int
    completed_at: datetime
    passed: bool
    submit_reason: SubmitReason = SubmitReason.MANUAL
    extra: dict[str, Any] = field(default_factory=dict)

    def to_record(self) -> dict[str, Any]:
        return {
            "student_id": self.student_id,
            "student_name": self.student_name,
            "exam_id": self.exam_id,
            "exam_code": self.exam_code,
            "exam_title": self.exam_title,
            "percentage": self.percentage,
            "gradable_total": self.gradable_total,
            "correct_count": self.correct_count,
            "tab_switch_count": self.tab_switch_count,
            "completed_at": self.completed_at.isoformat(),
            "passed": self.passed,
            "submit_reason": self.submit_reason.value,
            **self.extra,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "ExamResult":
        known = {
            "student_id", "student_name", "exam_id", "exam_code", "exam_title",
            "percentage", "gradable_total", "correct_count", "tab_switch_count",
            "completed_at", "passed", "submit_reason",
        }
        return cls(
            student_id=str(record["student_id"]),
            student_name=str(record["student_name"]),
            exam_id=str(record["exam_id"]),
            exam_code=str(record["exam_code"]),
            exam_title=str(record["exam_title"]),
            percentage=int(record["percentage"]),
            gradable_total=int(record["gradable_total"]),
            correct_count=int(record["correct_count"]),
            tab_switch_count=int(record.get("tab_switch_count", 0)),
            completed_at=datetime.fromisoformat(record["completed_at"]),
            passed=bool(record["passed"]),
            submit_reason=SubmitReason(record.get("submit_reason", SubmitReason.MANUAL.value)),
            extra={key: value for key, value in record.items() if key not in known},
        )


def validate_answer(question: Question, answer: Answer) -> None:
    """Raise AnswerTypeMismatch unless ``answer`` fits the variant of ``question``."""
    if isinstance(answer, Unanswered):
        return

    if isinstance(question, McqQuestion):
        if not isinstance(answer, SelectedOption):
            raise AnswerTypeMismatch(
                f"Question '{question.id}' expects a selected option, got {type(answer).__name__}."
            )
        index = answer.option_index
        if isinstance(index, bool) or not isinstance(index, int):
            raise AnswerTypeMismatch("Option index must be an integer.")
        if not 0 <= index < len(question.options):
            raise AnswerTypeMismatch(
                f"Option index {index} out of range for question '{question.id}'."
            )
    elif isinstance(question, (ShortAnswerQuestion, LongAnswerQuestion)):
        if not isinstance(answer, TextAnswer) or not isinstance(answer.text, str):
            raise AnswerTypeMismatch(
                f"Question '{question.id}' expects a text answer, got {type(answer).__name__}."
            )
    elif isinstance(question, NumericalQuestion):
        if not isinstance(answer, NumberAnswer):
            raise AnswerTypeMismatch(
                f"Question '{question.id}' expects a number, got {type(answer).__name__}."
            )
        value = answer.value
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise AnswerTypeMismatch(f"Numerical answer must be a finite number, got {value!r}.")
    else:
        raise AnswerTypeMismatch(f"Unsupported question type: {type(question).__name__}.")
