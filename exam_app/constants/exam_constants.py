"""Exam-related constants shared across the core services and the API."""

DEFAULT_DURATION_SECONDS: int = 3600
DEFAULT_PASS_THRESHOLD: float = 60.0
DEFAULT_NEGATIVE_MARKING_VALUE: float = 0.25

TICK_INTERVAL_SECONDS: float = 1.0

MAX_VIOLATIONS: int = 3
WARNING_CLEAR_SECONDS: float = 5.0
# 0 counts visibility-hidden and window-blur separately, even for one physical switch.
FOCUS_DEDUPE_WINDOW_SECONDS: float = 0.0

PROCTOR_CHECK_INTERVAL_SECONDS: float = 15.0
EYE_WARNING_PROBABILITY: float = 0.10
FACE_WARNING_PROBABILITY: float = 0.05

STRICT_ANSWER_VALIDATION: bool = False
