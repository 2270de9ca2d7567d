"""Tests for track_job and the stage task retry policy."""

import pytest

from kirin.errors import ConfigurationMissing, EmptyBatch, PersistenceFailure
from kirin.status import JobStatus, Stage
from kirin.workers.base import PipelineTask, track_job


class TestTrackJob:
    """Test the job record lifecycle around a stage body."""

    def test_completes_with_result(self, in_memory_store):
        with track_job(in_memory_store, Stage.OUTPUT, {"k": 1}) as outcome:
            assert in_memory_store.get_job(outcome.record.id).status == JobStatus.ACTIVE
            outcome.result = {"file": "x.txt"}

        record = in_memory_store.get_job(outcome.record.id)
        assert record.status == JobStatus.COMPLETED
        assert record.result == {"file": "x.txt"}
        assert record.data == {"k": 1}

    def test_failure_is_recorded_and_reraised(self, in_memory_store):
        with pytest.raises(RuntimeError, match="boom"):
            with track_job(in_memory_store, Stage.PROCESS, {}, attempt=3):
                raise RuntimeError("boom")

        [record] = in_memory_store.jobs_for(Stage.PROCESS)
        assert record.status == JobStatus.FAILED
        assert record.error == "boom"
        assert record.attempts == 3

    def test_empty_message_uses_type_name(self, in_memory_store):
        with pytest.raises(KeyError):
            with track_job(in_memory_store, Stage.COLLECT, {}):
                raise KeyError()

        assert in_memory_store.jobs_for(Stage.COLLECT)[0].error == "KeyError"

    def test_fail_job_error_does_not_mask_original(self, in_memory_store, monkeypatch):
        def broken_fail(job_id, error, attempts):
            raise PersistenceFailure("db gone")

        monkeypatch.setattr(in_memory_store, "fail_job", broken_fail)

        with pytest.raises(ValueError, match="original"):
            with track_job(in_memory_store, Stage.OUTPUT, {}):
                raise ValueError("original")

    def test_collector_name_recorded(self, in_memory_store):
        with track_job(in_memory_store, Stage.COLLECT, {}, collector_name="slack") as outcome:
            pass

        assert in_memory_store.get_job(outcome.record.id).collector_name == "slack"


class TestRetryPolicy:
    """Test the queue retry settings on the task base class."""

    def test_retry_ceiling(self):
        # Three attempts in total
        assert PipelineTask.max_retries == 2
        assert PipelineTask.retry_backoff == 5
        assert PipelineTask.retry_jitter is False

    def test_permanent_errors_not_retried(self):
        assert ConfigurationMissing in PipelineTask.dont_autoretry_for
        assert EmptyBatch in PipelineTask.dont_autoretry_for
        assert Exception in PipelineTask.autoretry_for
