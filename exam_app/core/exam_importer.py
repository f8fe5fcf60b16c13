"""Utilities for importing exams from a human-friendly text file.

File format: a header block followed by question blocks, separated by blank
lines or '---'.

    CODE: SAMPLE-2024
    TITLE: Web Development Certification Exam
    DESCRIPTION: Optional free text
    DURATION: 3600            (seconds, optional)
    SETTING: generateCertificate = true   (repeatable, see exam_config)

    Q: Question text (supports markdown + LaTeX). Additional lines until the
       next marker are treated as part of the question.
    TYPE: mcq | shortanswer | longanswer | numerical   (optional, default mcq)
    A: First option text      (mcq only; any number of lettered options)
    B: Second option text
    CORRECT: B                (mcq only)
    ANSWER: reference text, or the expected value for numerical questions
    TOLERANCE: 0.5            (numerical only, optional)
    ID: q-7                   (optional, defaults to the question position)

Example:

    Q: What is $2 + 2$?
    TYPE: numerical
    ANSWER: 4
    TOLERANCE: 0
"""

from __future__ import annotations

from pathlib import Path
import string

from exam_app.constants.exam_constants import DEFAULT_DURATION_SECONDS
from exam_app.core.errors import ExamConfigError
from exam_app.core.exam_config import parse_settings
from exam_app.core.models import (
    ExamDefinition,
    LongAnswerQuestion,
    McqQuestion,
    NumericalQuestion,
    Option,
    Question,
    QuestionType,
    ShortAnswerQuestion,
)


class ExamImportError(ExamConfigError):
    """Raised when an exam definition cannot be parsed."""


_OPTION_LETTERS = string.ascii_uppercase
_HEADER_KEYS = ("CODE:", "TITLE:", "DESCRIPTION:", "DURATION:", "SETTING:", "EXAM_ID:")


def load_exam_from_file(file_path: Path) -> ExamDefinition:
    text = file_path.read_text(encoding="utf-8")
    return parse_exam_text(text)


def parse_exam_text(text: str) -> ExamDefinition:
    blocks = _split_blocks(text)
    if not blocks or not _is_header(blocks[0]):
        raise ExamImportError("Exam file must start with a header block (CODE: ..., TITLE: ...).")

    header = _parse_header(blocks[0])
    questions = [_parse_block(block, position) for position, block in enumerate(blocks[1:], start=1)]
    if not questions:
        raise ExamImportError("Exam file did not contain any questions.")

    return ExamDefinition(
        id=header["id"],
        code=header["code"],
        title=header["title"],
        description=header["description"],
        duration_seconds=header["duration"],
        settings=parse_settings(header["settings"]),
        questions=tuple(questions),
    )


def _split_blocks(text: str) -> list[str]:
    blocks: list[str] = []
    current_block: list[str] = []
    for raw_line in text.splitlines():
        stripped = raw_line.strip()
        if stripped == "---":
            if current_block:
                blocks.append("\n".join(current_block).strip())
                current_block = []
            continue
        if stripped:
            current_block.append(raw_line)
        elif current_block:
            # Blank line encountered after content - finalize current block
            blocks.append("\n".join(current_block).strip())
            current_block = []
    if current_block:
        blocks.append("\n".join(current_block).strip())
    return [block for block in blocks if block]


def _is_header(block: str) -> bool:
    return any(line.strip().upper().startswith("CODE:") for line in block.splitlines())


def _parse_header(block: str) -> dict:
    code = ""
    title = ""
    description = ""
    exam_id = ""
    duration = DEFAULT_DURATION_SECONDS
    settings: dict[str, str] = {}

    for raw_line in block.splitlines():
        line = raw_line.strip()
        upper = line.upper()
        if not upper.startswith(_HEADER_KEYS):
            raise ExamImportError(f"Unknown header line: '{line}'.")
        key, value = line.split(":", 1)
        key = key.strip().upper()
        value = value.strip()
        if key == "CODE":
            code = value
        elif key == "TITLE":
            title = value
        elif key == "DESCRIPTION":
            description = value
        elif key == "EXAM_ID":
            exam_id = value
        elif key == "DURATION":
            try:
                duration = int(value)
            except ValueError as exc:
                raise ExamImportError("DURATION must be an integer number of seconds.") from exc
            if duration <= 0:
                raise ExamImportError("DURATION must be a positive integer.")
        elif key == "SETTING":
            if "=" not in value:
                raise ExamImportError(f"SETTING must look like 'name = value', got '{value}'.")
            name, setting_value = value.split("=", 1)
            settings[name.strip()] = setting_value.strip()

    if not code:
        raise ExamImportError("CODE must not be empty.")
    if not title:
        raise ExamImportError("TITLE must not be empty.")
    return {
        "id": exam_id or code,
        "code": code,
        "title": title,
        "description": description,
        "duration": duration,
        "settings": settings,
    }


def _parse_block(block: str, position: int) -> Question:
    question_lines: list[str] = []
    options: dict[str, str] = {}
    answer_lines: list[str] = []
    correct_letter: str | None = None
    tolerance_text: str | None = None
    type_text: str | None = None
    question_id = str(position)
    current_section: str | None = None

    for raw_line in block.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        upper = line.upper()
        if upper.startswith("Q:"):
            question_lines = [line[2:].strip()]
            current_section = "Q"
            continue

        if upper.startswith("TYPE:"):
            type_text = line.split(":", 1)[1].strip().lower()
            current_section = None
            continue

        if upper.startswith("CORRECT:"):
            correct_letter = line.split(":", 1)[1].strip().upper()
            current_section = None
            continue

        if upper.startswith("ANSWER:"):
            answer_lines = [line.split(":", 1)[1].strip()]
            current_section = "ANSWER"
            continue

        if upper.startswith("TOLERANCE:"):
            tolerance_text = line.split(":", 1)[1].strip()
            current_section = None
            continue

        if upper.startswith("ID:"):
            question_id = line.split(":", 1)[1].strip()
            if not question_id:
                raise ExamImportError("ID must not be empty.")
            current_section = None
            continue

        if len(line) > 2 and line[0].upper() in _OPTION_LETTERS and line[1] == ":":
            letter = line[0].upper()
            options[letter] = line[2:].strip()
            current_section = letter
            continue

        if current_section == "Q":
            question_lines.append(line)
        elif current_section == "ANSWER":
            answer_lines.append(line)
        elif current_section in _OPTION_LETTERS and current_section in options:
            options[current_section] = options[current_section] + f"\n{line}"
        else:
            raise ExamImportError(
                f"Encountered text outside of a known section: '{line}'."
            )

    question_text = "\n".join(question_lines).strip()
    if not question_text:
        raise ExamImportError("Question text missing (Q: ...)")

    question_type = _resolve_type(type_text, has_options=bool(options))
    answer_text = "\n".join(answer_lines).strip()

    if question_type is QuestionType.MCQ:
        return _build_mcq(question_id, question_text, options, correct_letter)
    if question_type is QuestionType.NUMERICAL:
        return _build_numerical(question_id, question_text, answer_text, tolerance_text)
    if question_type is QuestionType.SHORT_ANSWER:
        return ShortAnswerQuestion(id=question_id, text=question_text, expected_answer_text=answer_text)
    return LongAnswerQuestion(id=question_id, text=question_text, expected_answer_text=answer_text)


def _resolve_type(type_text: str | None, has_options: bool) -> QuestionType:
    if type_text is None:
        if not has_options:
            raise ExamImportError("TYPE is required for questions without options.")
        return QuestionType.MCQ
    try:
        return QuestionType(type_text)
    except ValueError as exc:
        allowed = ", ".join(t.value for t in QuestionType)
        raise ExamImportError(f"TYPE must be one of {allowed}.") from exc


def _build_mcq(
    question_id: str,
    question_text: str,
    options: dict[str, str],
    correct_letter: str | None,
) -> McqQuestion:
    if not options:
        raise ExamImportError("Multiple-choice questions need at least one option (A: ...).")
    letters = sorted(options)
    if letters != list(_OPTION_LETTERS[: len(letters)]):
        raise ExamImportError("Options must be lettered consecutively starting at A.")
    option_list = tuple(Option(id=letter.lower(), text=options[letter].strip()) for letter in letters)
    if any(not option.text for option in option_list):
        raise ExamImportError("Option text cannot be empty.")
    if correct_letter is None:
        raise ExamImportError("Multiple-choice questions need CORRECT: <letter>.")
    if correct_letter not in options:
        raise ExamImportError(f"CORRECT must be one of {', '.join(letters)}.")
    return McqQuestion(
        id=question_id,
        text=question_text,
        options=option_list,
        correct_option_id=correct_letter.lower(),
    )


def _build_numerical(
    question_id: str,
    question_text: str,
    answer_text: str,
    tolerance_text: str | None,
) -> NumericalQuestion:
    try:
        expected = float(answer_text)
    except ValueError as exc:
        raise ExamImportError("Numerical questions need ANSWER: <number>.") from exc
    tolerance = 0.0
    if tolerance_text:
        try:
            tolerance = float(tolerance_text)
        except ValueError as exc:
            raise ExamImportError("TOLERANCE must be a number.") from exc
    if tolerance < 0:
        raise ExamImportError("TOLERANCE must not be negative.")
    return NumericalQuestion(
        id=question_id,
        text=question_text,
        expected_value=expected,
        tolerance=tolerance,
    )
