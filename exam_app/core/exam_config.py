"""Persisted exam documents and settings, validated with pydantic.

Stored documents use camelCase keys (``negativeMarking``, ``passThreshold``,
...). Snake_case keys are accepted as well. Unknown keys are ignored.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date
import json
from pathlib import Path
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError

from exam_app.constants.exam_constants import (
    DEFAULT_DURATION_SECONDS,
    DEFAULT_NEGATIVE_MARKING_VALUE,
    DEFAULT_PASS_THRESHOLD,
)
from exam_app.core.errors import ExamConfigError
from exam_app.core.models import (
    ExamDefinition,
    ExamSchedule,
    ExamSettings,
    LongAnswerQuestion,
    McqQuestion,
    NumericalQuestion,
    Option,
    Question,
    ShortAnswerQuestion,
)


def _coerce_id(value: Any) -> Any:
    return str(value) if isinstance(value, int) and not isinstance(value, bool) else value


# Ids are strings; older documents stored numeric ids.
DocumentId = Annotated[str, BeforeValidator(_coerce_id)]


class _Document(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class SettingsDocument(_Document):
    negative_marking: bool = Field(default=False, alias="negativeMarking")
    negative_marking_value: float = Field(
        default=DEFAULT_NEGATIVE_MARKING_VALUE, ge=0, le=1, alias="negativeMarkingValue"
    )
    eye_tracking: bool = Field(default=False, alias="eyeTracking")
    face_detection: bool = Field(default=False, alias="faceDetection")
    prevent_tab_switching: bool = Field(default=False, alias="preventTabSwitching")
    generate_certificate: bool = Field(default=False, alias="generateCertificate")
    display_results: bool = Field(default=False, alias="displayResults")
    pass_threshold: float = Field(default=DEFAULT_PASS_THRESHOLD, alias="passThreshold")

    def to_settings(self) -> ExamSettings:
        return ExamSettings(
            negative_marking=self.negative_marking,
            negative_marking_value=self.negative_marking_value,
            eye_tracking=self.eye_tracking,
            face_detection=self.face_detection,
            prevent_tab_switching=self.prevent_tab_switching,
            generate_certificate=self.generate_certificate,
            display_results=self.display_results,
            pass_threshold=self.pass_threshold,
        )


class OptionDocument(_Document):
    id: DocumentId
    text: str


class McqDocument(_Document):
    type: Literal["mcq"]
    id: DocumentId
    text: str
    options: list[OptionDocument] = Field(min_length=1)
    correct_option: DocumentId = Field(alias="correctOption")

    def to_question(self) -> Question:
        return McqQuestion(
            id=self.id,
            text=self.text,
            options=tuple(Option(id=o.id, text=o.text) for o in self.options),
            correct_option_id=self.correct_option,
        )


class ShortAnswerDocument(_Document):
    type: Literal["shortanswer"]
    id: DocumentId
    text: str
    answer: str = ""

    def to_question(self) -> Question:
        return ShortAnswerQuestion(id=self.id, text=self.text, expected_answer_text=self.answer)


class LongAnswerDocument(_Document):
    type: Literal["longanswer"]
    id: DocumentId
    text: str
    answer: str = ""

    def to_question(self) -> Question:
        return LongAnswerQuestion(id=self.id, text=self.text, expected_answer_text=self.answer)


class NumericalDocument(_Document):
    type: Literal["numerical"]
    id: DocumentId
    text: str
    numerical_answer: float = Field(alias="numericalAnswer")
    tolerance: float = Field(default=0.0, ge=0)

    def to_question(self) -> Question:
        return NumericalQuestion(
            id=self.id,
            text=self.text,
            expected_value=self.numerical_answer,
            tolerance=self.tolerance,
        )


QuestionDocument = Annotated[
    Union[McqDocument, ShortAnswerDocument, LongAnswerDocument, NumericalDocument],
    Field(discriminator="type"),
]


class ScheduleDocument(_Document):
    scheduled_date: date = Field(alias="date")
    start_time: str = Field(alias="startTime")
    duration: int = Field(default=60, gt=0)


class ExamDocument(_Document):
    id: DocumentId
    code: str
    title: str
    description: str = ""
    duration_seconds: int = Field(default=DEFAULT_DURATION_SECONDS, gt=0, alias="durationSeconds")
    settings: SettingsDocument = Field(default_factory=SettingsDocument)
    questions: list[QuestionDocument] = Field(default_factory=list)
    scheduling: ScheduleDocument | None = None

    def to_definition(self) -> ExamDefinition:
        schedule = None
        if self.scheduling is not None:
            schedule = ExamSchedule(
                date=self.scheduling.scheduled_date,
                start_time=self.scheduling.start_time,
                duration_minutes=self.scheduling.duration,
            )
        return ExamDefinition(
            id=self.id,
            code=self.code,
            title=self.title,
            description=self.description,
            duration_seconds=self.duration_seconds,
            settings=self.settings.to_settings(),
            questions=tuple(q.to_question() for q in self.questions),
            schedule=schedule,
        )


def parse_settings(raw: Mapping[str, Any] | None) -> ExamSettings:
    """Build ExamSettings from a stored mapping, applying defaults."""
    try:
        return SettingsDocument.model_validate(dict(raw or {})).to_settings()
    except ValidationError as exc:
        raise ExamConfigError(f"Invalid exam settings: {exc}") from exc


def parse_exam_document(raw: Mapping[str, Any]) -> ExamDefinition:
    try:
        return ExamDocument.model_validate(dict(raw)).to_definition()
    except ValidationError as exc:
        raise ExamConfigError(f"Invalid exam document: {exc}") from exc


def load_exam_from_json(file_path: Path) -> ExamDefinition:
    try:
        raw = json.loads(file_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ExamConfigError(f"{file_path} is not valid JSON.") from exc
    if not isinstance(raw, dict):
        raise ExamConfigError(f"{file_path} must contain a JSON object.")
    return parse_exam_document(raw)
