"""Scoring of a finished attempt.

Only MCQ and numerical questions are gradable here. Short and long answers are
left for external (manual or AI) grading and never influence the percentage.

An MCQ or numerical question without an answer counts towards the gradable
total but is neither correct nor incorrect, so it is never penalised by
negative marking.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
import math

from exam_app.core.models import (
    Answer,
    ExamSettings,
    LongAnswerQuestion,
    McqQuestion,
    NumberAnswer,
    NumericalQuestion,
    Question,
    ScoreResult,
    SelectedOption,
    ShortAnswerQuestion,
    UNANSWERED,
)


def is_gradable(question: Question) -> bool:
    return isinstance(question, (McqQuestion, NumericalQuestion))


def score_attempt(
    questions: Iterable[Question],
    answers: Mapping[str, Answer],
    settings: ExamSettings,
) -> ScoreResult:
    """Score ``answers`` (keyed by question id) against ``questions``."""
    correct = 0
    incorrect = 0
    gradable_total = 0

    for question in questions:
        answer = answers.get(question.id, UNANSWERED)
        if isinstance(question, McqQuestion):
            gradable_total += 1
            verdict = _grade_mcq(question, answer)
        elif isinstance(question, NumericalQuestion):
            gradable_total += 1
            verdict = _grade_numerical(question, answer)
        elif isinstance(question, (ShortAnswerQuestion, LongAnswerQuestion)):
            continue
        else:
            raise TypeError(f"Unsupported question type: {type(question).__name__}")

        if verdict is True:
            correct += 1
        elif verdict is False:
            incorrect += 1

    deducted = 0.0
    final_score = float(correct)
    if settings.negative_marking:
        final_score = max(0.0, correct - incorrect * settings.negative_marking_value)
        # Only what was actually taken off the raw score.
        deducted = correct - final_score

    if gradable_total > 0:
        percentage = _round_half_up(final_score / gradable_total * 100)
    else:
        percentage = 0
    passed = gradable_total > 0 and percentage >= settings.pass_threshold

    return ScoreResult(
        correct_count=correct,
        incorrect_count=incorrect,
        gradable_total=gradable_total,
        negative_marks_deducted=deducted,
        final_score=final_score,
        percentage=percentage,
        passed=passed,
    )


def _grade_mcq(question: McqQuestion, answer: Answer) -> bool | None:
    if not isinstance(answer, SelectedOption):
        return None
    if not 0 <= answer.option_index < len(question.options):
        return None
    return question.options[answer.option_index].id == question.correct_option_id


def _grade_numerical(question: NumericalQuestion, answer: Answer) -> bool | None:
    if not isinstance(answer, NumberAnswer):
        return None
    if not math.isfinite(answer.value):
        return None
    return abs(answer.value - question.expected_value) <= question.tolerance


def _round_half_up(value: float) -> int:
    # round() is half-to-even; 62.5% must become 63.
    return int(math.floor(value + 0.5))
