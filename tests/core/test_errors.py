"""Tests for the DurableError hierarchy and FailureDetails."""

from __future__ import annotations

import pytest

from durable_mr.core.errors import (
    ConcurrentAppendConflict,
    DurableError,
    EmptyInputError,
    ErrorCategory,
    FailureDetails,
    InstanceExistsError,
    InstanceNotFoundError,
    NonDeterminismError,
    ObjectNotFoundError,
    OrchestrationError,
    PartialFailure,
    RecordFormatError,
    StorageError,
    SubOrchestrationFailed,
    TaskFailedError,
    TaskTimeoutError,
)


class TestDurableError:
    """Tests for base error behaviour."""

    def test_defaults(self):
        error = DurableError("boom")
        assert error.message == "boom"
        assert error.category is ErrorCategory.INTERNAL
        assert error.retryable is False
        assert str(error) == "boom"

    def test_explicit_overrides(self):
        error = OrchestrationError("bad input", category=ErrorCategory.VALIDATION, retryable=True)
        assert error.category is ErrorCategory.VALIDATION
        assert error.retryable is True

    def test_cause_is_chained(self):
        cause = OSError("disk")
        error = StorageError("write failed", cause=cause)
        assert error.__cause__ is cause
        assert error.to_dict()["cause"] == "disk"

    def test_with_context(self):
        error = DurableError("x").with_context(instance_id="abc", container="datain")
        data = error.to_dict()
        assert data["context"] == {"instance_id": "abc", "container": "datain"}

    def test_to_dict_without_context(self):
        data = EmptyInputError("nothing").to_dict()
        assert data == {
            "error_type": "EmptyInputError",
            "message": "nothing",
            "category": "VALIDATION",
            "retryable": False,
        }


class TestSubclasses:
    """Tests for category and retryable defaults of concrete errors."""

    @pytest.mark.parametrize(
        "error, category, retryable",
        [
            (ConcurrentAppendConflict("i", 1, 2), ErrorCategory.HISTORY, True),
            (InstanceNotFoundError("i"), ErrorCategory.HISTORY, False),
            (InstanceExistsError("i"), ErrorCategory.ORCHESTRATION, False),
            (NonDeterminismError("diverged", task_id=3), ErrorCategory.ORCHESTRATION, False),
            (TaskTimeoutError("map_file", 1.0, 1.5), ErrorCategory.TASK, True),
            (StorageError("io"), ErrorCategory.STORAGE, True),
            (ObjectNotFoundError("datain", "a.txt"), ErrorCategory.STORAGE, False),
            (RecordFormatError("short"), ErrorCategory.PARSE, False),
        ],
    )
    def test_category_and_retryable(self, error, category, retryable):
        assert error.category is category
        assert error.retryable is retryable

    def test_conflict_versions(self):
        error = ConcurrentAppendConflict("abc", 3, 5)
        assert error.expected_version == 3
        assert error.actual_version == 5
        assert "abc" in error.message

    def test_task_failed_mirrors_failure_retryable(self):
        failure = FailureDetails("RecordFormatError", "short", retryable=False)
        error = TaskFailedError("map_file", failure, task_id=2)
        assert error.retryable is False
        assert error.context.task_id == 2
        assert error.failure is failure

    def test_sub_orchestration_failed(self):
        failure = FailureDetails("EmptyInputError", "no results", retryable=False)
        error = SubOrchestrationFailed("reduce", "job:1", failure)
        assert error.child_instance_id == "job:1"
        assert "EmptyInputError" in error.message

    def test_object_not_found_metadata(self):
        error = ObjectNotFoundError("datain", "a.txt")
        assert error.to_dict()["context"] == {"container": "datain", "object": "a.txt"}


class TestPartialFailure:
    """Tests for fan-out failure reporting."""

    def test_failed_items_and_results(self):
        failed = {"b.txt": FailureDetails("ValueError", "bad")}
        error = PartialFailure(failed, [3, None])
        assert error.failed_items == failed
        assert error.results == [3, None]
        assert error.message.startswith("1 task(s) failed: b.txt")

    def test_message_truncates_long_lists(self):
        failed = {f"f{i}": FailureDetails("E", "x") for i in range(7)}
        assert "(+2 more)" in PartialFailure(failed).message

    def test_to_dict_includes_items(self):
        error = PartialFailure({"a": FailureDetails("E", "x", retryable=False)})
        assert error.to_dict()["failed_items"]["a"]["retryable"] is False


class TestFailureDetails:
    """Tests for the serializable failure payload."""

    def test_from_plain_exception_is_retryable(self):
        failure = FailureDetails.from_exception(ValueError("bad value"))
        assert failure.error_type == "ValueError"
        assert failure.message == "bad value"
        assert failure.retryable is True

    def test_from_durable_error(self):
        failure = FailureDetails.from_exception(ObjectNotFoundError("datain", "x"))
        assert failure.error_type == "ObjectNotFoundError"
        assert failure.retryable is False
        assert failure.details["container"] == "datain"

    def test_dict_round_trip(self):
        failure = FailureDetails("E", "msg", retryable=False, details={"k": 1})
        assert FailureDetails.from_dict(failure.to_dict()) == failure

    def test_str(self):
        assert str(FailureDetails("E", "msg")) == "E: msg"
