from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from slack_sdk import WebClient

from kirin.config import KirinSettings, configure_logging, get_settings
from kirin.db.session import engine_from_settings, get_sessionmaker
from kirin.db.store import PipelineStore, SQLAlchemyPipelineStore
from kirin.dispatch import CeleryDispatcher, StageDispatcher
from kirin.errors import ConfigurationMissing
from kirin.models import ProcessorConfig
from kirin.sources.slack import AuthorCache, SlackSourceClient
from kirin.storage.local_file_storage import SummaryFileSink
from kirin.summarization.client import OllamaClient, SummarizationClient

logger = logging.getLogger(__name__)

SourceFactory = Callable[[str, str], SlackSourceClient]
SummarizerFactory = Callable[[ProcessorConfig], SummarizationClient]


@dataclass
class WorkerRuntime:
    settings: KirinSettings
    store: PipelineStore
    sink: SummaryFileSink
    dispatcher: StageDispatcher
    author_cache: AuthorCache
    source_factory: SourceFactory
    summarizer_factory: SummarizerFactory


_worker_runtime: Optional[WorkerRuntime] = None


def build_source_factory(settings: KirinSettings, author_cache: AuthorCache) -> SourceFactory:
    def factory(source: str, token: str) -> SlackSourceClient:
        if source != "slack":
            raise ConfigurationMissing(f"No source client available for {source!r}")
        # Retries belong to the job queue, so the SDK's own retry handlers are off
        web_client = WebClient(token=token, retry_handlers=[])
        return SlackSourceClient(
            web_client,
            author_cache,
            source=source,
            page_limit=settings.slack.history_page_limit,
            replies_limit=settings.slack.replies_limit,
        )

    return factory


def build_summarizer_factory(settings: KirinSettings) -> SummarizerFactory:
    def factory(config: ProcessorConfig) -> SummarizationClient:
        return OllamaClient(
            base_url=config.base_url or settings.ollama.base_url,
            model=config.model or settings.ollama.model,
            timeout=settings.ollama.timeout_seconds,
            max_attempts=settings.ollama.max_attempts,
            retry_delay=settings.ollama.retry_delay_seconds,
            temperature=config.temperature,
        )

    return factory


def get_worker_runtime() -> WorkerRuntime:
    global _worker_runtime
    if _worker_runtime is not None:
        return _worker_runtime

    settings = get_settings()
    configure_logging(settings)

    engine = engine_from_settings(settings)
    store = SQLAlchemyPipelineStore(get_sessionmaker(engine))
    author_cache = AuthorCache()

    _worker_runtime = WorkerRuntime(
        settings=settings,
        store=store,
        sink=SummaryFileSink(root_dir=settings.output_dir),
        dispatcher=CeleryDispatcher(),
        author_cache=author_cache,
        source_factory=build_source_factory(settings, author_cache),
        summarizer_factory=build_summarizer_factory(settings),
    )
    logger.info(
        "Worker runtime initialized",
        extra={"output_dir": str(settings.output_dir), "environment": settings.environment},
    )
    return _worker_runtime


def set_worker_runtime(runtime: Optional[WorkerRuntime]) -> None:
    """Install a prebuilt runtime (tests, embedded use) or clear it with None."""
    global _worker_runtime
    _worker_runtime = runtime
