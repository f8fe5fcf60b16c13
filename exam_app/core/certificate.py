"""Certificate eligibility and the payload handed to a certificate renderer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Protocol

from exam_app.core.models import ExamResult, ExamSettings, SubmitReason

_MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


@dataclass(frozen=True, slots=True)
class CertificatePayload:
    student_name: str
    exam_title: str
    percentage: int
    completed_at: datetime
    exam_code: str

    def to_dict(self) -> dict[str, object]:
        return {
            "student_name": self.student_name,
            "exam_title": self.exam_title,
            "percentage": self.percentage,
            "completed_at": self.completed_at.isoformat(),
            "completed_on": format_certificate_date(self.completed_at),
            "exam_code": self.exam_code,
        }


class CertificateRenderer(Protocol):
    def render(self, payload: CertificatePayload) -> None: ...


def is_certificate_eligible(passed: bool, settings: ExamSettings, reason: SubmitReason) -> bool:
    return passed and settings.generate_certificate and reason is not SubmitReason.SECURITY_VIOLATION


def build_certificate_payload(result: ExamResult) -> CertificatePayload:
    return CertificatePayload(
        student_name=result.student_name,
        exam_title=result.exam_title,
        percentage=result.percentage,
        completed_at=result.completed_at,
        exam_code=result.exam_code,
    )


def format_certificate_date(value: date) -> str:
    """Format like ``October 19, 2026`` regardless of the process locale."""
    return f"{_MONTH_NAMES[value.month - 1]} {value.day}, {value.year}"
