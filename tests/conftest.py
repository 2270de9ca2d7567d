from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator

import pytest

# Celery reads broker settings when kirin.celery_config is first imported;
# keep tests off Redis.
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")

from sqlalchemy.pool import StaticPool  # noqa: E402

from kirin.config import KirinSettings  # noqa: E402
from kirin.db.session import build_engine, get_sessionmaker, init_db  # noqa: E402
from kirin.db.store import SQLAlchemyPipelineStore  # noqa: E402
from kirin.models import CollectorConfig, CollectorSettings  # noqa: E402
from kirin.sources.slack import AuthorCache  # noqa: E402
from kirin.storage.local_file_storage import SummaryFileSink  # noqa: E402
from tests.fakes import (  # noqa: E402
    FakeSummarizer,
    InMemoryPipelineStore,
    RecordingDispatcher,
)
from tests.utils import StepClock  # noqa: E402


@pytest.fixture
def settings(tmp_path: Path) -> KirinSettings:
    """Settings isolated from the developer's environment and .env file."""
    return KirinSettings(
        _env_file=None,
        output_dir=tmp_path / "output",
        database={"url": "sqlite://"},
        slack={"bot_token": "xoxb-env-token", "channel_ids": ["CENV"], "lookback_hours": 24},
    )


@pytest.fixture
def in_memory_store() -> InMemoryPipelineStore:
    """
    Provide InMemoryPipelineStore for tests.

    Fast, deterministic store without a database.
    """
    return InMemoryPipelineStore()


@pytest.fixture
def slack_collector() -> CollectorConfig:
    return CollectorConfig(
        name="slack",
        display_name="Slack Collector",
        enabled=True,
        settings=CollectorSettings(channel_ids=["C1"], lookback_hours=12, token="xoxb-db-token"),
    )


@pytest.fixture
def recording_dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def fake_summarizer() -> FakeSummarizer:
    return FakeSummarizer()


@pytest.fixture
def author_cache() -> AuthorCache:
    return AuthorCache()


@pytest.fixture
def step_clock() -> StepClock:
    return StepClock(datetime(2024, 11, 28, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def file_sink(tmp_path: Path, step_clock: StepClock) -> SummaryFileSink:
    return SummaryFileSink(tmp_path / "output", clock=step_clock)


@pytest.fixture
def sqlite_session_factory():
    """In-memory SQLite shared across sessions through a StaticPool."""
    engine = build_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield get_sessionmaker(engine)
    engine.dispose()


@pytest.fixture
def sqlite_store(sqlite_session_factory) -> Generator[SQLAlchemyPipelineStore, None, None]:
    yield SQLAlchemyPipelineStore(sqlite_session_factory)
