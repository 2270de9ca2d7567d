"""
Validation tests for all fake implementations.

These tests ensure the fakes properly implement their interfaces and
behave correctly for testing purposes.
"""

import pytest

from kirin.db.store import PipelineStore
from kirin.dispatch import StageDispatcher
from kirin.errors import PersistenceFailure
from kirin.models import CollectJob, Interest, SummarizeContext, Summary
from kirin.status import JobStatus, Stage
from kirin.summarization.client import SummarizationClient
from tests.fakes import (
    FakeSlackWebClient,
    FakeSummarizer,
    InMemoryPipelineStore,
    RecordingDispatcher,
    message,
    slack_api_error,
)


# ==================== InMemoryPipelineStore Tests ====================

class TestInMemoryPipelineStore:
    """Test InMemoryPipelineStore fake implementation."""

    def test_implements_interface(self):
        assert isinstance(InMemoryPipelineStore(), PipelineStore)

    def test_interest_ordering_matches_real_store(self):
        store = InMemoryPipelineStore()
        store.add_interest(Interest(user_id="u", keyword="a", weight=1))
        store.add_interest(Interest(user_id="u", keyword="b", weight=3))
        store.add_interest(Interest(user_id="u", keyword="c", weight=1))
        store.add_interest(Interest(user_id="u", keyword="off", weight=9, active=False))

        assert [i.keyword for i in store.get_active_interests("u")] == ["b", "a", "c"]

    def test_job_lifecycle(self):
        store = InMemoryPipelineStore()
        record = store.start_job(Stage.COLLECT, {"x": 1})

        store.fail_job(record.id, "nope", attempts=2)

        assert store.get_job(record.id).status == JobStatus.FAILED
        assert store.get_job(record.id).attempts == 2

    def test_summary_upsert(self):
        store = InMemoryPipelineStore()
        summary = Summary(id="s", source="slack", text="t", user_id="u")

        store.save_summary(summary)
        store.save_summary(summary)

        assert store.save_calls == ["s", "s"]
        assert len(store.list_summaries("slack")) == 1

    def test_configured_failure(self):
        store = InMemoryPipelineStore(fail_on_save_summary=True)
        with pytest.raises(PersistenceFailure):
            store.save_summary(Summary(id="s", source="slack", text="t", user_id="u"))


# ==================== RecordingDispatcher Tests ====================

class TestRecordingDispatcher:
    """Test RecordingDispatcher fake implementation."""

    def test_records_jobs(self):
        dispatcher = RecordingDispatcher()
        assert isinstance(dispatcher, StageDispatcher)

        task_id = dispatcher.enqueue_collect(CollectJob())

        assert task_id == "collect-1"
        assert len(dispatcher.collect_jobs) == 1


# ==================== FakeSlackWebClient Tests ====================

class TestFakeSlackWebClient:
    """Test FakeSlackWebClient fake implementation."""

    def test_pagination(self):
        client = FakeSlackWebClient(history={"C1": [[message("1.0")], [message("2.0")]]})

        first = client.conversations_history(channel="C1")
        second = client.conversations_history(channel="C1", cursor=first["response_metadata"]["next_cursor"])

        assert first["has_more"] is True
        assert second["has_more"] is False
        assert second["messages"][0]["ts"] == "2.0"

    def test_unknown_user_raises(self):
        client = FakeSlackWebClient()
        with pytest.raises(Exception) as exc_info:
            client.users_info(user="U404")
        assert exc_info.value.response["error"] == "user_not_found"

    def test_api_error_carries_status_and_headers(self):
        error = slack_api_error("ratelimited", status_code=429, headers={"Retry-After": "5"})
        assert error.response.status_code == 429
        assert error.response.headers["Retry-After"] == "5"


# ==================== FakeSummarizer Tests ====================

class TestFakeSummarizer:
    """Test FakeSummarizer fake implementation."""

    def test_records_calls(self):
        summarizer = FakeSummarizer(text="ok")
        assert isinstance(summarizer, SummarizationClient)

        assert summarizer.summarize([], SummarizeContext()) == "ok"
        assert len(summarizer.calls) == 1

    def test_configured_error(self):
        summarizer = FakeSummarizer(error=RuntimeError("down"))
        with pytest.raises(RuntimeError):
            summarizer.summarize([], SummarizeContext())
