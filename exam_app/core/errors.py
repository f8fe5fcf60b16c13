"""Exceptions raised by the exam core."""

from __future__ import annotations


class ExamError(Exception):
    """Base class for all exam-domain errors."""


class ExamNotFound(ExamError, LookupError):
    """Raised when an exam code resolves to nothing or to an exam without questions."""

    def __init__(self, code: str) -> None:
        super().__init__(f"No exam found for code '{code}'.")
        self.code = code


class ExamNotAvailable(ExamError):
    """Raised when an exam is requested outside of its scheduled window."""


class PermissionDenied(ExamError):
    """Raised by a media provider when camera access is rejected."""


class AnswerTypeMismatch(ExamError, TypeError):
    """Raised when an answer does not fit the variant of its question."""


class PersistenceFailure(ExamError):
    """Raised when a result could not be appended to the result store."""


class ExamConfigError(ExamError, ValueError):
    """Raised when an exam document or settings mapping cannot be parsed."""
