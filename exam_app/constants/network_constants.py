"""Network and storage configuration constants for the exam application."""

DEFAULT_HOST: str = "0.0.0.0"
DEFAULT_PORT: int = 8000
RESULTS_FILE_PATH: str = "exam_results.json"
SAMPLE_EXAM_PATH: str = "exam_app/data/sample_exam.txt"
