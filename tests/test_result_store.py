"""
Tests for result persistence.
"""

import json
from datetime import datetime, timezone

import pytest

from exam_app.core.errors import PersistenceFailure
from exam_app.core.models import ExamResult, SubmitReason
from exam_app.core.services.result_store import InMemoryResultStore, JsonResultStore


def make_result(student_id="s1", percentage=80, **kwargs) -> ExamResult:
    return ExamResult(
        student_id=student_id,
        student_name="Grace Hopper",
        exam_id="exam-1",
        exam_code="EX-1",
        exam_title="Sample Exam",
        percentage=percentage,
        gradable_total=5,
        correct_count=4,
        tab_switch_count=1,
        completed_at=datetime(2026, 10, 19, 9, 30, tzinfo=timezone.utc),
        passed=percentage >= 60,
        **kwargs,
    )


class TestInMemoryResultStore:
    """Process-local storage"""

    def test_filters_by_student(self):
        store = InMemoryResultStore()
        store.append(make_result("s1"))
        store.append(make_result("s2"))

        assert [r.student_id for r in store.list_results()] == ["s1", "s2"]
        assert [r.student_id for r in store.list_results("s2")] == ["s2"]


class TestJsonResultStore:
    """File-backed storage"""

    def test_appends_and_reads_back(self, tmp_path):
        store = JsonResultStore(tmp_path / "results" / "results.json")
        result = make_result(submit_reason=SubmitReason.TIME_EXPIRED)

        store.append(result)
        store.append(make_result("s2", percentage=40))

        loaded = store.list_results("s1")
        assert loaded == [result]
        assert len(store.list_results()) == 2

    def test_records_are_plain_json(self, tmp_path):
        path = tmp_path / "results.json"
        JsonResultStore(path).append(make_result())

        records = json.loads(path.read_text(encoding="utf-8"))

        assert records[0]["exam_code"] == "EX-1"
        assert records[0]["submit_reason"] == "manual"
        assert records[0]["completed_at"] == "2026-10-19T09:30:00+00:00"

    def test_unknown_record_keys_survive(self, tmp_path):
        path = tmp_path / "results.json"
        record = make_result().to_record()
        record["grader_notes"] = "check essay"
        path.write_text(json.dumps([record]), encoding="utf-8")

        loaded = JsonResultStore(path).list_results()[0]

        assert loaded.extra == {"grader_notes": "check essay"}
        assert loaded.to_record()["grader_notes"] == "check essay"

    def test_missing_file_lists_nothing(self, tmp_path):
        assert JsonResultStore(tmp_path / "absent.json").list_results() == []

    def test_corrupt_file_lists_nothing_but_refuses_append(self, tmp_path):
        path = tmp_path / "results.json"
        path.write_text("{broken", encoding="utf-8")
        store = JsonResultStore(path)

        assert store.list_results() == []
        with pytest.raises(PersistenceFailure):
            store.append(make_result())
        assert path.read_text(encoding="utf-8") == "{broken"

    def test_malformed_records_skipped(self, tmp_path):
        path = tmp_path / "results.json"
        path.write_text(json.dumps([{"student_id": "s1"}, make_result().to_record()]), encoding="utf-8")

        assert len(JsonResultStore(path).list_results()) == 1
