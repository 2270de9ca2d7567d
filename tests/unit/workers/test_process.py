"""
Tests for the process stage.
"""

import pytest

from kirin.config import DEFAULT_SYSTEM_PROMPT
from kirin.errors import EmptyBatch, ModelUnavailable
from kirin.models import Interest, ProcessJob, ProcessorConfig
from kirin.status import JobStatus, Stage
from kirin.summarization.prompts import INTEREST_INTRO
from kirin.workers.process import run_process
from tests.utils import make_message


class SummarizerFactoryRecorder:
    def __init__(self, summarizer):
        self.summarizer = summarizer
        self.configs = []

    def __call__(self, config):
        self.configs.append(config)
        return self.summarizer


@pytest.fixture
def job():
    return ProcessJob(
        messages=[make_message("1.0", text="deploy failed"), make_message("2.0", text="rolled back")],
        user_id="default",
        source="slack",
    )


@pytest.fixture
def factory(fake_summarizer):
    return SummarizerFactoryRecorder(fake_summarizer)


def process(job, settings, store, dispatcher, factory, attempt=1):
    return run_process(
        job,
        settings=settings,
        store=store,
        dispatcher=dispatcher,
        summarizer_factory=factory,
        attempt=attempt,
    )


class TestProcessHappyPath:
    """Test a normal summarization run."""

    def test_saves_summary_and_enqueues_output(
        self, job, settings, in_memory_store, recording_dispatcher, factory
    ):
        result = process(job, settings, in_memory_store, recording_dispatcher, factory)

        [summary] = in_memory_store.summaries.values()
        assert result == {"summaryId": summary.id, "messageCount": 2}
        assert summary.text == "A short summary."
        assert summary.message_ids == [m.id for m in job.messages]
        assert summary.model_name == "fake-model"
        assert summary.user_id == "default"

        [output_job] = recording_dispatcher.output_jobs
        assert output_job.summary_id == summary.id
        assert output_job.summary == summary.text
        assert output_job.message_ids == summary.message_ids

    def test_raw_messages_stored_with_summary(
        self, job, settings, in_memory_store, recording_dispatcher, factory
    ):
        process(job, settings, in_memory_store, recording_dispatcher, factory)

        [raw] = in_memory_store.raw_messages.values()
        assert [m["id"] for m in raw] == [m.id for m in job.messages]
        assert "displayName" in raw[0]

    def test_record_completed(self, job, settings, in_memory_store, recording_dispatcher, factory):
        process(job, settings, in_memory_store, recording_dispatcher, factory)

        [record] = in_memory_store.jobs_for(Stage.PROCESS)
        assert record.status == JobStatus.COMPLETED
        assert record.data["messageCount"] == 2


class TestProcessConfiguration:
    """Test that config and interests are read fresh on each call."""

    def test_missing_config_uses_default_prompt(
        self, job, settings, in_memory_store, recording_dispatcher, factory, fake_summarizer
    ):
        process(job, settings, in_memory_store, recording_dispatcher, factory)

        _, context = fake_summarizer.calls[0]
        assert context.system_prompt == DEFAULT_SYSTEM_PROMPT
        assert context.source_prompt is None
        assert context.interest_prompt is None
        assert factory.configs[0].name == "default"

    def test_source_prompt_and_interests(
        self, job, settings, in_memory_store, recording_dispatcher, factory, fake_summarizer
    ):
        in_memory_store.add_processor_config(
            ProcessorConfig(system_prompt="Be terse.", source_prompts={"slack": "Slack context."})
        )
        in_memory_store.add_interest(Interest(user_id="default", keyword="deploys", weight=2))
        in_memory_store.add_interest(Interest(user_id="someone-else", keyword="lunch"))

        process(job, settings, in_memory_store, recording_dispatcher, factory)

        _, context = fake_summarizer.calls[0]
        assert context.system_prompt == "Be terse."
        assert context.source_prompt == "Slack context."
        assert context.interest_prompt.startswith(INTEREST_INTRO)
        assert "deploys" in context.interest_prompt
        assert "lunch" not in context.interest_prompt

    def test_config_reloaded_every_call(
        self, job, settings, in_memory_store, recording_dispatcher, factory, fake_summarizer
    ):
        in_memory_store.add_processor_config(ProcessorConfig(system_prompt="First."))
        process(job, settings, in_memory_store, recording_dispatcher, factory)

        in_memory_store.add_processor_config(ProcessorConfig(system_prompt="Second."))
        in_memory_store.add_interest(Interest(user_id="default", keyword="late"))
        process(job, settings, in_memory_store, recording_dispatcher, factory)

        assert in_memory_store.config_reads == 2
        assert in_memory_store.interest_reads == 2
        assert fake_summarizer.calls[0][1].system_prompt == "First."
        assert fake_summarizer.calls[1][1].system_prompt == "Second."
        assert fake_summarizer.calls[1][1].interest_prompt is not None

    def test_model_settings_come_from_config(
        self, job, settings, in_memory_store, recording_dispatcher, factory
    ):
        in_memory_store.add_processor_config(ProcessorConfig(model="mistral", temperature=0.1))

        process(job, settings, in_memory_store, recording_dispatcher, factory)

        assert factory.configs[0].model == "mistral"
        assert factory.configs[0].temperature == 0.1


class TestProcessRedelivery:
    """Test at-least-once behaviour."""

    def test_redelivery_stores_second_summary(
        self, job, settings, in_memory_store, recording_dispatcher, factory
    ):
        first = process(job, settings, in_memory_store, recording_dispatcher, factory)
        second = process(job, settings, in_memory_store, recording_dispatcher, factory)

        assert first["summaryId"] != second["summaryId"]
        assert len(in_memory_store.summaries) == 2
        assert len(recording_dispatcher.output_jobs) == 2


class TestProcessFailures:
    """Test failure handling."""

    def test_empty_batch(self, settings, in_memory_store, recording_dispatcher, factory, fake_summarizer):
        job = ProcessJob(messages=[], user_id="default", source="slack")

        with pytest.raises(EmptyBatch):
            process(job, settings, in_memory_store, recording_dispatcher, factory)

        assert fake_summarizer.calls == []
        assert in_memory_store.jobs_for(Stage.PROCESS)[0].status == JobStatus.FAILED

    def test_model_unavailable_fails_record(
        self, job, settings, in_memory_store, recording_dispatcher, fake_summarizer
    ):
        fake_summarizer.error = ModelUnavailable("ollama down", attempts=5)
        factory = SummarizerFactoryRecorder(fake_summarizer)

        with pytest.raises(ModelUnavailable):
            process(job, settings, in_memory_store, recording_dispatcher, factory, attempt=3)

        [record] = in_memory_store.jobs_for(Stage.PROCESS)
        assert record.status == JobStatus.FAILED
        assert record.attempts == 3
        assert in_memory_store.summaries == {}
        assert recording_dispatcher.output_jobs == []
