"""Append-only stores for completed exam results."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

from exam_app.core.errors import PersistenceFailure
from exam_app.core.models import ExamResult

logger = logging.getLogger(__name__)


class ResultPersister(Protocol):
    def append(self, result: ExamResult) -> None: ...


class ResultStore(ResultPersister, Protocol):
    def list_results(self, student_id: str | None = None) -> list[ExamResult]: ...


class InMemoryResultStore:
    """Keeps results for the lifetime of the process."""

    def __init__(self) -> None:
        self._results: list[ExamResult] = []

    def append(self, result: ExamResult) -> None:
        self._results.append(result)

    def list_results(self, student_id: str | None = None) -> list[ExamResult]:
        if student_id is None:
            return list(self._results)
        return [r for r in self._results if r.student_id == student_id]


class JsonResultStore:
    """Stores results as a JSON array in a single file.

    Unreadable or corrupt files are treated as empty when listing. Appending
    never overwrites a file it cannot parse; that, like a failed write,
    raises PersistenceFailure.
    """

    def __init__(self, file_path: Path) -> None:
        self._file_path = Path(file_path)

    @property
    def file_path(self) -> Path:
        return self._file_path

    def append(self, result: ExamResult) -> None:
        records = self._read_records(strict=True)
        records.append(result.to_record())
        try:
            self._file_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._file_path.with_suffix(self._file_path.suffix + ".tmp")
            tmp_path.write_text(json.dumps(records, indent=2), encoding="utf-8")
            tmp_path.replace(self._file_path)
        except OSError as exc:
            raise PersistenceFailure(f"Could not write results to {self._file_path}") from exc

    def list_results(self, student_id: str | None = None) -> list[ExamResult]:
        results: list[ExamResult] = []
        for record in self._read_records():
            try:
                result = ExamResult.from_record(record)
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed result record in %s", self._file_path)
                continue
            if student_id is None or result.student_id == student_id:
                results.append(result)
        return results

    def _read_records(self, strict: bool = False) -> list[dict]:
        if not self._file_path.exists():
            return []
        try:
            data = json.loads(self._file_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            if strict:
                raise PersistenceFailure(f"Could not read results from {self._file_path}") from exc
            logger.error("Error retrieving results from %s", self._file_path)
            return []
        if not isinstance(data, list):
            if strict:
                raise PersistenceFailure(f"Results file {self._file_path} does not contain a list")
            logger.error("Results file %s does not contain a list", self._file_path)
            return []
        return [record for record in data if isinstance(record, dict)]
