"""Media permission collaborator used by proctored exams.

The browser owns the camera. The server only learns whether the student
granted access, so the production provider resolves requests from what the
client reported.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Protocol

from exam_app.core.errors import PermissionDenied

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StreamConstraints:
    video: bool = True
    width: int | None = None
    height: int | None = None
    facing_mode: str | None = None


# First request asks for a small user-facing stream, retries accept any camera.
INITIAL_STREAM_CONSTRAINTS = StreamConstraints(width=320, height=240, facing_mode="user")
RETRY_STREAM_CONSTRAINTS = StreamConstraints()


class MediaStream(Protocol):
    def stop(self) -> None: ...


class MediaPermissionProvider(Protocol):
    async def request_stream(self, constraints: StreamConstraints) -> MediaStream: ...


class ClientStream:
    """Server-side handle for a camera stream held by the student's browser."""

    def __init__(self, constraints: StreamConstraints) -> None:
        self.constraints = constraints
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def stop(self) -> None:
        if self._active:
            logger.debug("Releasing client media stream")
        self._active = False


class ClientReportedMediaProvider:
    """Resolves permission requests from the outcome the client reported last."""

    def __init__(self) -> None:
        self._granted: bool | None = None

    def report(self, granted: bool) -> None:
        self._granted = granted

    async def request_stream(self, constraints: StreamConstraints) -> ClientStream:
        if not self._granted:
            raise PermissionDenied("Camera access denied")
        return ClientStream(constraints)
