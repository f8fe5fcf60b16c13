"""Service for storing exam definitions and looking them up by code."""

from __future__ import annotations

import logging
from pathlib import Path

from exam_app.core.exam_config import load_exam_from_json
from exam_app.core.exam_importer import load_exam_from_file
from exam_app.core.models import ExamDefinition, McqQuestion, NumericalQuestion, Question

logger = logging.getLogger(__name__)


class ExamRepository:
    """Holds the exams students can join, keyed by their exam code."""

    def __init__(self) -> None:
        self._exams: dict[str, ExamDefinition] = {}

    def add_exam(self, exam: ExamDefinition) -> ExamDefinition:
        """Validate and register an exam. Codes are unique."""
        self._validate_exam(exam)
        key = self._normalize_code(exam.code)
        if key in self._exams:
            raise ValueError(f"An exam with code '{exam.code}' already exists.")
        self._exams[key] = exam
        logger.info("Registered exam %s (%d questions)", exam.code, exam.question_count)
        return exam

    def load_file(self, file_path: Path | str) -> ExamDefinition:
        """Import an exam from a .json document or a .txt exam file."""
        file_path = Path(file_path)
        suffix = file_path.suffix.lower()
        if suffix == ".json":
            exam = load_exam_from_json(file_path)
        elif suffix == ".txt":
            exam = load_exam_from_file(file_path)
        else:
            raise ValueError(f"Unsupported exam file type: '{file_path.suffix}'.")
        return self.add_exam(exam)

    def lookup(self, code: str) -> ExamDefinition | None:
        return self._exams.get(self._normalize_code(code))

    def list_exams(self) -> list[ExamDefinition]:
        return list(self._exams.values())

    def remove_exam(self, code: str) -> None:
        self._exams.pop(self._normalize_code(code), None)

    def clear(self) -> None:
        self._exams = {}

    @staticmethod
    def _normalize_code(code: str) -> str:
        return code.strip().upper()

    def _validate_exam(self, exam: ExamDefinition) -> None:
        if not exam.code.strip():
            raise ValueError("Exam code must not be empty.")
        if not exam.title.strip():
            raise ValueError("Exam title must not be empty.")
        if exam.duration_seconds <= 0:
            raise ValueError("Exam duration must be a positive number of seconds.")
        if not 0 <= exam.settings.negative_marking_value <= 1:
            raise ValueError("Negative marking value must be between 0 and 1.")

        seen_ids: set[str] = set()
        for question in exam.questions:
            if question.id in seen_ids:
                raise ValueError(f"Duplicate question id '{question.id}'.")
            seen_ids.add(question.id)
            self._validate_question(question)

    @staticmethod
    def _validate_question(question: Question) -> None:
        if not question.text.strip():
            raise ValueError(f"Question '{question.id}' text must not be empty.")
        if isinstance(question, McqQuestion):
            if not question.options:
                raise ValueError(f"Question '{question.id}' needs at least one option.")
            option_ids = [option.id for option in question.options]
            if len(set(option_ids)) != len(option_ids):
                raise ValueError(f"Question '{question.id}' has duplicate option ids.")
            if question.correct_option_id not in option_ids:
                raise ValueError(
                    f"Question '{question.id}' references unknown option '{question.correct_option_id}'."
                )
        elif isinstance(question, NumericalQuestion):
            if question.tolerance < 0:
                raise ValueError(f"Question '{question.id}' tolerance must not be negative.")
