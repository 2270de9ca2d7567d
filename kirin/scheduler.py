"""
Collection scheduling.

Celery beat fires trigger_scheduled_collection on the configured cadence;
manual triggers call trigger_collection directly. Either way the result is
one CollectJob on the collect queue.
"""

from __future__ import annotations

import logging
from typing import Optional

from kirin.celery_config import SCHEDULE_TASK, celery_app
from kirin.config import KirinSettings
from kirin.db.store import PipelineStore
from kirin.dispatch import StageDispatcher
from kirin.errors import ConfigurationMissing
from kirin.models import CollectJob
from kirin.worker_runtime import get_worker_runtime

logger = logging.getLogger(__name__)


def trigger_collection(
    store: PipelineStore,
    dispatcher: StageDispatcher,
    settings: KirinSettings,
    collector_name: str = "slack",
    manual: bool = False,
) -> Optional[CollectJob]:
    """
    Enqueue a collect job for a collector.

    Scheduled triggers skip unknown or disabled collectors with a log line.
    Manual triggers raise instead, so the caller sees why nothing happened.

    Returns:
        The enqueued job, or None when a scheduled trigger was skipped

    Raises:
        ConfigurationMissing: manual trigger of an unknown or disabled collector
    """
    collector = store.get_collector(collector_name)
    if collector is None or not collector.enabled:
        reason = "not found" if collector is None else "disabled"
        if manual:
            raise ConfigurationMissing(f"Collector {collector_name} is {reason}")
        logger.info(f"[Scheduler] Skipping {collector_name} collection: collector {reason}")
        return None

    job = CollectJob(
        source=collector.name,
        channel_ids=collector.settings.channel_ids or None,
        lookback_hours=collector.settings.lookback_hours or settings.slack.lookback_hours,
        user_id=settings.default_user_id,
        manual=manual,
    )
    dispatcher.enqueue_collect(job)
    logger.info(
        f"[Scheduler] Queued {collector_name} collection",
        extra={"collector": collector_name, "manual": manual},
    )
    return job


@celery_app.task(bind=True, name=SCHEDULE_TASK)
def trigger_scheduled_collection(self, collector_name: str = "slack") -> dict:
    """Beat entry point; returns whether a collect job was queued."""
    runtime = get_worker_runtime()
    job = trigger_collection(
        runtime.store,
        runtime.dispatcher,
        runtime.settings,
        collector_name=collector_name,
    )
    return {"queued": job is not None, "collector": collector_name}
