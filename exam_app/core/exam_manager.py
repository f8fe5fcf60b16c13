"""Business logic shared between the API and the exam sessions."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
import logging

from exam_app.constants.exam_constants import STRICT_ANSWER_VALIDATION
from exam_app.core.certificate import CertificateRenderer
from exam_app.core.errors import ExamNotAvailable
from exam_app.core.models import ExamDefinition, ExamResult
from exam_app.core.scheduling import get_exam_status, is_exam_active
from exam_app.core.services.exam_repository import ExamRepository
from exam_app.core.services.exam_session import ExamSession
from exam_app.core.services.media_access import ClientReportedMediaProvider
from exam_app.core.services.result_store import InMemoryResultStore, ResultStore
from exam_app.core.services.task_scheduler import AsyncioTaskScheduler, TaskScheduler
from exam_app.core.session_state import SessionPhase

logger = logging.getLogger(__name__)


class ExamManager:
    """Facade over the exam repository, the result store and per-student sessions."""

    def __init__(
        self,
        repository: ExamRepository | None = None,
        result_store: ResultStore | None = None,
        scheduler_factory: Callable[[], TaskScheduler] = AsyncioTaskScheduler,
        certificate_renderer: CertificateRenderer | None = None,
        strict_answers: bool = STRICT_ANSWER_VALIDATION,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._repository = repository or ExamRepository()
        self._result_store = result_store or InMemoryResultStore()
        self._scheduler_factory = scheduler_factory
        self._certificate_renderer = certificate_renderer
        self._strict_answers = strict_answers
        self._clock = clock

        self._sessions: dict[str, ExamSession] = {}
        self._media: dict[str, ClientReportedMediaProvider] = {}

    # --- Exam Repository Delegation ---

    @property
    def repository(self) -> ExamRepository:
        return self._repository

    def get_exam(self, code: str) -> ExamDefinition | None:
        return self._repository.lookup(code)

    def list_exams(self) -> list[ExamDefinition]:
        return self._repository.list_exams()

    def get_exam_status(self, exam: ExamDefinition) -> str:
        return get_exam_status(exam.schedule, self._clock())

    # --- Session Lifecycle ---

    def start_session(self, student_id: str, student_name: str, code: str) -> ExamSession:
        """Create and load a session; raises ExamNotFound without registering one."""
        existing = self._sessions.get(student_id)
        if existing is not None and existing.phase in (
            SessionPhase.PERMISSION_PENDING,
            SessionPhase.IN_PROGRESS,
        ):
            raise RuntimeError("An exam is already in progress for this student.")

        exam = self._repository.lookup(code)
        if exam is not None and not is_exam_active(exam.schedule, self._clock()):
            raise ExamNotAvailable(f"Exam '{exam.code}' is not available right now.")

        media = ClientReportedMediaProvider()
        session = ExamSession(
            student_id=student_id,
            student_name=student_name,
            lookup=self._repository,
            media=media,
            result_store=self._result_store,
            scheduler=self._scheduler_factory(),
            certificate_renderer=self._certificate_renderer,
            strict_answers=self._strict_answers,
        )
        session.load(code)

        self._sessions[student_id] = session
        self._media[student_id] = media
        return session

    def get_session(self, student_id: str) -> ExamSession | None:
        return self._sessions.get(student_id)

    async def resolve_permission(self, student_id: str, granted: bool) -> ExamSession:
        """Apply the browser's camera-permission outcome to the student's session."""
        session = self._require_session(student_id)
        self._media[student_id].report(granted)
        await session.request_monitoring_permission()
        return session

    def discard_session(self, student_id: str) -> None:
        session = self._sessions.pop(student_id, None)
        self._media.pop(student_id, None)
        if session is not None and not session.state.is_terminal:
            session.submit()

    def _require_session(self, student_id: str) -> ExamSession:
        session = self._sessions.get(student_id)
        if session is None:
            raise LookupError("No exam session for this student.")
        return session

    # --- Results ---

    def list_results(self, student_id: str | None = None) -> list[ExamResult]:
        return self._result_store.list_results(student_id)
