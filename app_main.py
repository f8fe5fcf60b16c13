"""Application entry point for the ExamProctor server."""

from __future__ import annotations

from pathlib import Path
import socket
import sys

from exam_app.constants.about import APP_NAME
from exam_app.constants.network_constants import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    RESULTS_FILE_PATH,
    SAMPLE_EXAM_PATH,
)
from exam_app.core.errors import ExamConfigError
from exam_app.core.exam_manager import ExamManager
from exam_app.core.services.exam_repository import ExamRepository
from exam_app.core.services.result_store import JsonResultStore
from exam_app.server.api_server import run_api_server
from exam_app.utils.logging_config import configure_logging


def _determine_student_url(port: int) -> str:
    """Best-effort determination of the local IP for student-facing URL."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            ip_address = sock.getsockname()[0]
    except OSError:
        ip_address = "127.0.0.1"
    return f"http://{ip_address}:{port}/"


def main(argv: list[str] | None = None) -> None:
    """Load the exams, then serve the student API in the foreground.

    Any exam files given on the command line are loaded instead of the
    bundled sample exam.
    """
    logger = configure_logging()
    logger.info("Starting %s…", APP_NAME)

    exam_files = argv if argv is not None else sys.argv[1:]
    if not exam_files:
        exam_files = [str(Path(__file__).resolve().parent / SAMPLE_EXAM_PATH)]

    repository = ExamRepository()
    for exam_file in exam_files:
        try:
            exam = repository.load_file(exam_file)
        except (OSError, ExamConfigError, ValueError) as exc:
            logger.error("Could not load exam from %s: %s", exam_file, exc)
            continue
        logger.info("Loaded exam %s (%s)", exam.code, exam.title)

    exam_manager = ExamManager(
        repository=repository,
        result_store=JsonResultStore(Path(RESULTS_FILE_PATH)),
    )
    logger.info("Student page available at %s", _determine_student_url(DEFAULT_PORT))
    run_api_server(exam_manager, host=DEFAULT_HOST, port=DEFAULT_PORT)


if __name__ == "__main__":
    main()
