"""FastAPI server that exposes student exam endpoints.

Endpoints are async so that every session timer is scheduled on the
server's event loop.
"""

from __future__ import annotations

from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from pydantic import BaseModel
import uvicorn

from exam_app.constants.about import APP_ABOUT_TEXT, APP_LICENSE, APP_NAME, APP_VERSION
from exam_app.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from exam_app.core.certificate import format_certificate_date
from exam_app.core.errors import AnswerTypeMismatch, ExamNotAvailable, ExamNotFound
from exam_app.core.exam_manager import ExamManager
from exam_app.core.markdown_math_renderer import renderer
from exam_app.core.models import (
    UNANSWERED,
    Answer,
    ExamResult,
    NumberAnswer,
    SelectedOption,
    SubmitReason,
    TextAnswer,
)
from exam_app.core.services.exam_session import ExamSession
from exam_app.core.session_state import FocusSource, SessionPhase

_STUDENT_COOKIE = "examapp_student_id"


def _ensure_student(request: Request, response: Response) -> str:
    student_id = request.cookies.get(_STUDENT_COOKIE)
    if student_id:
        return student_id
    student_id = uuid4().hex
    response.set_cookie(
        key=_STUDENT_COOKIE,
        value=student_id,
        max_age=60 * 60 * 24 * 30,
        samesite="lax",
        httponly=True,
    )
    return student_id


class StartPayload(BaseModel):
    """Payload schema for joining an exam."""

    student_name: str


class PermissionPayload(BaseModel):
    """Outcome of the browser's camera-permission prompt."""

    granted: bool


class AnswerPayload(BaseModel):
    """Payload schema for submitted answers; set exactly one value or ``clear``."""

    question_id: str
    option_index: int | None = None
    text: str | None = None
    value: float | None = None
    clear: bool = False

    def to_answer(self) -> Answer:
        if self.clear:
            return UNANSWERED
        provided = [
            answer
            for answer, present in (
                (SelectedOption(self.option_index), self.option_index is not None),
                (TextAnswer(self.text), self.text is not None),
                (NumberAnswer(self.value), self.value is not None),
            )
            if present
        ]
        if len(provided) != 1:
            raise ValueError("Provide exactly one of option_index, text or value.")
        return provided[0]


class NavigatePayload(BaseModel):
    index: int


class FocusPayload(BaseModel):
    source: FocusSource


def _get_exam_manager_dependency(exam_manager: ExamManager):
    def dependency() -> ExamManager:
        return exam_manager

    return dependency


def _result_payload(result: ExamResult) -> dict[str, object]:
    return {
        "exam_code": result.exam_code,
        "exam_title": result.exam_title,
        "percentage": result.percentage,
        "correct_count": result.correct_count,
        "gradable_total": result.gradable_total,
        "passed": result.passed,
        "tab_switch_count": result.tab_switch_count,
        "completed_at": result.completed_at.isoformat(),
        "submit_reason": result.submit_reason.value,
    }


def _answer_payload(answer: Answer) -> dict[str, object]:
    if isinstance(answer, SelectedOption):
        return {"option_index": answer.option_index}
    if isinstance(answer, TextAnswer):
        return {"text": answer.text}
    if isinstance(answer, NumberAnswer):
        return {"value": answer.value}
    return {"clear": True}


def session_snapshot(session: ExamSession) -> dict[str, object]:
    """Serialize what the student client needs to render the session."""
    state = session.state
    exam = state.exam
    question = state.current_question
    security = state.security

    payload: dict[str, object] = {
        "phase": state.phase.value,
        "exam_code": exam.code if exam else None,
        "exam_title": exam.title if exam else None,
        "question_count": state.question_count,
        "current_index": state.current_index,
        "time_left": state.time_left,
        "current_question": (
            renderer.render_question(question)
            if question is not None and not state.is_terminal
            else None
        ),
        "answers": {qid: _answer_payload(answer) for qid, answer in state.answers.items()},
        "security": {
            "eye": security.eye,
            "face": security.face,
            "tab_switch": security.tab_switch,
            "violation_count": security.violation_count,
            "max_violations": security.max_violations,
        },
        "requesting_permission": state.requesting_permission,
        "permission_error": state.permission_error,
        "can_retry_permission": session.can_retry_permission(),
        "submit_reason": state.submit_reason.value if state.submit_reason else None,
        "result": None,
        "certificate_available": session.certificate is not None,
        "error": state.error,
    }
    if state.score is not None and exam is not None and exam.settings.display_results:
        score = state.score
        payload["result"] = {
            "percentage": score.percentage,
            "correct_count": score.correct_count,
            "incorrect_count": score.incorrect_count,
            "gradable_total": score.gradable_total,
            "negative_marks_deducted": score.negative_marks_deducted,
            "final_score": score.final_score,
            "passed": score.passed,
        }
    return payload


def create_api_app(exam_manager: ExamManager) -> FastAPI:
    """Create a FastAPI application wired to the provided exam manager."""
    app = FastAPI(
        title=f"{APP_NAME} API",
        version=APP_VERSION,
        description=APP_ABOUT_TEXT,
        license_info={"name": APP_LICENSE},
    )
    exam_manager_dep = _get_exam_manager_dependency(exam_manager)

    def require_session(manager: ExamManager, student_id: str) -> ExamSession:
        session = manager.get_session(student_id)
        if session is None:
            raise HTTPException(status_code=404, detail="No exam session. Join an exam first.")
        return session

    @app.get("/identity")
    async def get_identity(request: Request, response: Response) -> dict[str, object]:
        return {"student_id": _ensure_student(request, response)}

    @app.get("/exams/{code}")
    async def get_exam(code: str, manager: ExamManager = Depends(exam_manager_dep)) -> dict[str, object]:
        exam = manager.get_exam(code)
        if exam is None:
            raise HTTPException(status_code=404, detail=f"No exam found for code '{code}'.")
        return {
            "code": exam.code,
            "title": exam.title,
            "description": exam.description,
            "duration_seconds": exam.duration_seconds,
            "question_count": exam.question_count,
            "requires_camera": exam.settings.requires_monitoring,
            "status": manager.get_exam_status(exam),
        }

    @app.post("/exams/{code}/start", status_code=201)
    async def start_exam(
        code: str,
        payload: StartPayload,
        request: Request,
        response: Response,
        manager: ExamManager = Depends(exam_manager_dep),
    ) -> dict[str, object]:
        student_id = _ensure_student(request, response)
        student_name = payload.student_name.strip()
        if not student_name:
            raise HTTPException(status_code=422, detail="Student name must not be empty.")
        try:
            session = manager.start_session(student_id, student_name, code)
        except ExamNotFound as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except (ExamNotAvailable, RuntimeError) as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return session_snapshot(session)

    @app.get("/session")
    async def get_session(
        request: Request,
        response: Response,
        manager: ExamManager = Depends(exam_manager_dep),
    ) -> dict[str, object]:
        session = require_session(manager, _ensure_student(request, response))
        return session_snapshot(session)

    @app.post("/session/permission")
    async def report_permission(
        payload: PermissionPayload,
        request: Request,
        response: Response,
        manager: ExamManager = Depends(exam_manager_dep),
    ) -> dict[str, object]:
        student_id = _ensure_student(request, response)
        require_session(manager, student_id)
        session = await manager.resolve_permission(student_id, payload.granted)
        return session_snapshot(session)

    @app.post("/session/answer")
    async def submit_answer(
        payload: AnswerPayload,
        request: Request,
        response: Response,
        manager: ExamManager = Depends(exam_manager_dep),
    ) -> dict[str, object]:
        session = require_session(manager, _ensure_student(request, response))
        if session.phase is not SessionPhase.IN_PROGRESS:
            raise HTTPException(status_code=409, detail="The exam is not in progress.")
        try:
            accepted = session.select_answer(payload.question_id, payload.to_answer())
        except (AnswerTypeMismatch, ValueError) as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        if not accepted:
            raise HTTPException(status_code=422, detail="Answer does not fit the question.")
        return session_snapshot(session)

    @app.post("/session/navigate")
    async def navigate(
        payload: NavigatePayload,
        request: Request,
        response: Response,
        manager: ExamManager = Depends(exam_manager_dep),
    ) -> dict[str, object]:
        session = require_session(manager, _ensure_student(request, response))
        session.navigate(payload.index)
        return session_snapshot(session)

    @app.post("/session/focus")
    async def report_focus_loss(
        payload: FocusPayload,
        request: Request,
        response: Response,
        manager: ExamManager = Depends(exam_manager_dep),
    ) -> dict[str, object]:
        session = require_session(manager, _ensure_student(request, response))
        session.report_focus_loss(payload.source)
        return session_snapshot(session)

    @app.post("/session/submit")
    async def submit_exam(
        request: Request,
        response: Response,
        manager: ExamManager = Depends(exam_manager_dep),
    ) -> dict[str, object]:
        session = require_session(manager, _ensure_student(request, response))
        session.submit(SubmitReason.MANUAL)
        return session_snapshot(session)

    @app.get("/session/certificate")
    async def get_certificate(
        request: Request,
        response: Response,
        manager: ExamManager = Depends(exam_manager_dep),
    ) -> dict[str, object]:
        session = require_session(manager, _ensure_student(request, response))
        certificate = session.certificate
        if certificate is None:
            raise HTTPException(status_code=404, detail="No certificate for this attempt.")
        return certificate.to_dict()

    @app.get("/results")
    async def list_results(
        request: Request,
        response: Response,
        manager: ExamManager = Depends(exam_manager_dep),
    ) -> list[dict[str, object]]:
        student_id = _ensure_student(request, response)
        return [
            {**_result_payload(result), "completed_on": format_certificate_date(result.completed_at)}
            for result in manager.list_results(student_id)
        ]

    return app


def run_api_server(
    exam_manager: ExamManager,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
) -> None:
    """Serve the API until interrupted."""
    app = create_api_app(exam_manager)
    config = uvicorn.Config(app=app, host=host, port=port, log_level="info")
    server = uvicorn.Server(config)
    server.run()
