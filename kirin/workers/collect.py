"""
Collect stage.

Loads the collector record, fetches messages from the source and hands the
whole batch to the process queue as a single job.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from kirin.celery_config import COLLECT_TASK, celery_app
from kirin.config import KirinSettings, get_settings
from kirin.db.store import PipelineStore
from kirin.dispatch import StageDispatcher
from kirin.errors import ConfigurationMissing
from kirin.models import CollectJob, ProcessJob
from kirin.status import Stage
from kirin.worker_runtime import SourceFactory, get_worker_runtime
from kirin.workers.base import CollectTask, track_job

logger = logging.getLogger(__name__)


def run_collect(
    job: CollectJob,
    *,
    settings: KirinSettings,
    store: PipelineStore,
    dispatcher: StageDispatcher,
    source_factory: SourceFactory,
    attempt: int = 1,
) -> Dict[str, Any]:
    """
    Run one collect job.

    Values in the job payload win over the collector record, which wins over
    the environment defaults.

    Returns:
        The job result, {"messageCount": N}

    Raises:
        ConfigurationMissing: no collector record, token or channel list
    """
    with track_job(
        store,
        Stage.COLLECT,
        job.to_payload(),
        collector_name=job.source,
        attempt=attempt,
    ) as outcome:
        collector = store.get_collector(job.source)
        if collector is None:
            raise ConfigurationMissing(f"{job.source} collector configuration not found in database")

        if not collector.enabled:
            logger.info(f"{collector.name} collector is disabled, skipping job")
            outcome.result = {"messageCount": 0}
            return outcome.result

        token = collector.settings.token or settings.slack.token_value()
        if not token:
            raise ConfigurationMissing(f"No API token for {collector.name} in config or environment")

        channel_ids = job.channel_ids or collector.settings.channel_ids or settings.slack.channel_ids
        if not channel_ids:
            raise ConfigurationMissing(f"No channels configured for {collector.name}")

        lookback_hours = (
            job.lookback_hours
            or collector.settings.lookback_hours
            or settings.slack.lookback_hours
        )

        logger.info(
            f"Fetching from {len(channel_ids)} channels, {lookback_hours:g}h lookback",
            extra={"collector": collector.name, "attempt": attempt},
        )

        source_client = source_factory(job.source, token)
        messages = source_client.fetch_messages(channel_ids, lookback_hours)

        if not messages:
            logger.warning(f"No {job.source} messages found")
        else:
            dispatcher.enqueue_process(
                ProcessJob(
                    messages=messages,
                    user_id=job.user_id or settings.default_user_id,
                    source=job.source,
                )
            )
            logger.info(f"Queued {len(messages)} messages for processing")

        outcome.result = {"messageCount": len(messages)}
        return outcome.result


@celery_app.task(
    base=CollectTask,
    bind=True,
    name=COLLECT_TASK,
    rate_limit=get_settings().queue.collect_rate_limit,
)
def collect_messages(self, payload: dict) -> dict:
    """
    Collect messages for one scheduled or manual trigger.

    Args:
        payload: CollectJob as camelCase JSON

    Returns:
        {"messageCount": N}
    """
    job = CollectJob.model_validate(payload)
    logger.info(
        "Starting collection",
        extra={"task_id": self.request.id, "source": job.source, "manual": job.manual},
    )

    runtime = get_worker_runtime()
    return run_collect(
        job,
        settings=runtime.settings,
        store=runtime.store,
        dispatcher=runtime.dispatcher,
        source_factory=runtime.source_factory,
        attempt=self.attempt_number(),
    )
