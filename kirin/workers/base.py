"""
Shared plumbing for the stage workers.

track_job gives every stage the same job-record discipline: ACTIVE before any
external I/O, then COMPLETED or FAILED exactly once for the attempt. The
PipelineTask base class carries the queue-level retry policy.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional

from celery import Task

from kirin.config import get_settings
from kirin.db.store import PipelineStore
from kirin.errors import ConfigurationMissing, EmptyBatch, PersistenceFailure
from kirin.status import JobRecord, Stage

logger = logging.getLogger(__name__)

_settings = get_settings()


@dataclass
class JobOutcome:
    """Filled in by the stage body; becomes the COMPLETED record's result."""

    record: JobRecord
    result: Dict[str, Any] = field(default_factory=dict)


@contextmanager
def track_job(
    store: PipelineStore,
    stage: Stage,
    data: Dict[str, Any],
    *,
    collector_name: Optional[str] = None,
    attempt: int = 1,
) -> Iterator[JobOutcome]:
    """
    Record one stage attempt around the wrapped block.

    Any exception marks the record FAILED with the attempt count and is
    re-raised unchanged for the queue's retry policy.

    Usage:
        with track_job(store, Stage.OUTPUT, payload, attempt=n) as outcome:
            ...
            outcome.result = {"file": name}
    """
    record = store.start_job(stage, data, collector_name=collector_name, attempts=attempt)
    outcome = JobOutcome(record=record)
    try:
        yield outcome
    except Exception as exc:
        try:
            store.fail_job(record.id, str(exc) or type(exc).__name__, attempt)
        except PersistenceFailure:
            logger.exception(f"Could not mark {stage.value} job {record.id} failed")
        raise
    store.complete_job(record.id, outcome.result)


class PipelineTask(Task):
    """Base class for stage tasks.

    Retries any failure with exponential backoff up to the configured
    attempt ceiling. Configuration errors and empty batches will not get
    better on retry and fail straight away.
    """

    stage: Stage

    autoretry_for = (Exception,)
    dont_autoretry_for = (ConfigurationMissing, EmptyBatch)
    retry_backoff = _settings.queue.backoff_seconds
    retry_backoff_max = _settings.queue.backoff_max_seconds
    retry_jitter = False
    max_retries = _settings.queue.max_attempts - 1

    def attempt_number(self) -> int:
        return (self.request.retries or 0) + 1

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        """Handle task failure."""
        logger.error(
            f"{self.stage.value.capitalize()} task failed: {exc}",
            exc_info=(type(exc), exc, exc.__traceback__),
            extra={"task_id": task_id, "stage": self.stage.value},
        )

    def on_retry(self, exc, task_id, args, kwargs, einfo):
        logger.warning(
            f"{self.stage.value.capitalize()} task retrying: {exc}",
            extra={"task_id": task_id, "stage": self.stage.value, "retries": self.request.retries},
        )


class CollectTask(PipelineTask):
    """Base class for collect tasks."""

    stage = Stage.COLLECT


class ProcessTask(PipelineTask):
    """Base class for process tasks."""

    stage = Stage.PROCESS


class OutputTask(PipelineTask):
    """Base class for output tasks."""

    stage = Stage.OUTPUT
