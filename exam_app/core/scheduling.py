"""Availability rules for scheduled exams.

An exam without a schedule is always available. A scheduled exam on a past
day also counts as available (only ``get_exam_status`` reports it as
completed); on the scheduled day it is available from the start time until
the end of its window.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta

from exam_app.core.models import ExamSchedule

STATUS_AVAILABLE = "Available Now"
STATUS_SCHEDULED = "Scheduled"
STATUS_IN_PROGRESS = "In Progress"
STATUS_COMPLETED = "Completed"


def parse_start_time(value: str) -> time:
    hours_text, minutes_text = value.strip().split(":", 1)
    hours, minutes = int(hours_text), int(minutes_text)
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValueError(f"Invalid start time '{value}'.")
    return time(hours, minutes)


def exam_window(schedule: ExamSchedule) -> tuple[datetime, datetime]:
    start = datetime.combine(schedule.date, parse_start_time(schedule.start_time))
    return start, start + timedelta(minutes=schedule.duration_minutes)


def is_exam_active(schedule: ExamSchedule | None, now: datetime) -> bool:
    if schedule is None:
        return True
    if schedule.date != now.date():
        return schedule.date < now.date()
    start, end = exam_window(schedule)
    return start <= now <= end


def get_exam_status(schedule: ExamSchedule | None, now: datetime) -> str:
    if schedule is None:
        return STATUS_AVAILABLE
    start, end = exam_window(schedule)
    if now < start:
        return STATUS_SCHEDULED
    if now <= end:
        return STATUS_IN_PROGRESS
    return STATUS_COMPLETED
