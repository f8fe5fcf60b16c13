"""Static metadata describing ExamProctor."""

APP_NAME = "ExamProctor"
APP_VERSION = "0.1"
APP_LICENSE = "MIT License"
APP_ABOUT_TEXT = (
    "ExamProctor runs timed, proctored exams: it serves questions, records answers, "
    "watches for tab switches during the attempt and scores the result with optional "
    "negative marking."
)
