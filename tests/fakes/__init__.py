"""
Fake implementations for testing.

This package contains fake (test double) implementations of core interfaces,
following the "fakes over mocks" philosophy. Fakes are simplified working
implementations that behave like real components but avoid external
dependencies.

Key fakes:
- InMemoryPipelineStore: In-memory store (no database)
- RecordingDispatcher: Records enqueued jobs (no broker)
- FakeSlackWebClient: Canned Slack API responses (no network)
- FakeSummarizer: Canned model output (no model endpoint)
"""

from tests.fakes.dispatch import RecordingDispatcher
from tests.fakes.slack import FakeSlackWebClient, message, slack_api_error
from tests.fakes.store import InMemoryPipelineStore
from tests.fakes.summarizer import FakeSummarizer

__all__ = [
    "InMemoryPipelineStore",
    "RecordingDispatcher",
    "FakeSlackWebClient",
    "FakeSummarizer",
    "message",
    "slack_api_error",
]
