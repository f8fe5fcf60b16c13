"""
Tests for certificate eligibility and exam scheduling.
"""

from datetime import date, datetime

import pytest

from exam_app.core.certificate import (
    build_certificate_payload,
    format_certificate_date,
    is_certificate_eligible,
)
from exam_app.core.models import ExamSchedule, ExamSettings, SubmitReason
from exam_app.core.scheduling import (
    STATUS_AVAILABLE,
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_SCHEDULED,
    get_exam_status,
    is_exam_active,
    parse_start_time,
)
from test_result_store import make_result


class TestCertificate:
    """Eligibility and payload"""

    def test_eligible_only_when_passed_enabled_and_not_terminated(self):
        enabled = ExamSettings(generate_certificate=True)

        assert is_certificate_eligible(True, enabled, SubmitReason.MANUAL)
        assert is_certificate_eligible(True, enabled, SubmitReason.TIME_EXPIRED)
        assert not is_certificate_eligible(False, enabled, SubmitReason.MANUAL)
        assert not is_certificate_eligible(True, ExamSettings(), SubmitReason.MANUAL)
        assert not is_certificate_eligible(True, enabled, SubmitReason.SECURITY_VIOLATION)

    def test_payload_from_result(self):
        payload = build_certificate_payload(make_result(percentage=92))

        assert payload.student_name == "Grace Hopper"
        assert payload.percentage == 92
        assert payload.to_dict()["completed_on"] == "October 19, 2026"

    def test_date_format(self):
        assert format_certificate_date(date(2026, 1, 5)) == "January 5, 2026"


SCHEDULE = ExamSchedule(date=date(2026, 10, 19), start_time="10:00", duration_minutes=60)


class TestScheduling:
    """Availability windows"""

    def test_unscheduled_exam_always_active(self):
        assert is_exam_active(None, datetime(2026, 10, 19, 3, 0))
        assert get_exam_status(None, datetime(2026, 10, 19, 3, 0)) == STATUS_AVAILABLE

    @pytest.mark.parametrize(
        "now, active",
        [
            (datetime(2026, 10, 19, 9, 59), False),
            (datetime(2026, 10, 19, 10, 0), True),
            (datetime(2026, 10, 19, 11, 0), True),
            (datetime(2026, 10, 19, 11, 1), False),
            (datetime(2026, 10, 18, 10, 30), False),
            (datetime(2026, 10, 20, 8, 0), True),
        ],
    )
    def test_active_window(self, now, active):
        assert is_exam_active(SCHEDULE, now) is active

    def test_status_labels(self):
        assert get_exam_status(SCHEDULE, datetime(2026, 10, 19, 9, 0)) == STATUS_SCHEDULED
        assert get_exam_status(SCHEDULE, datetime(2026, 10, 19, 10, 30)) == STATUS_IN_PROGRESS
        assert get_exam_status(SCHEDULE, datetime(2026, 10, 20, 8, 0)) == STATUS_COMPLETED

    def test_start_time_validation(self):
        with pytest.raises(ValueError):
            parse_start_time("25:00")
