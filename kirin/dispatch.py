"""
Stage dispatchers.

Stage handlers hand their successor's payload to a StageDispatcher instead
of touching the broker directly. CeleryDispatcher is the production
implementation; tests record payloads in memory.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

from celery import Celery

from kirin.celery_config import STAGE_PRIORITIES, STAGE_TASKS, celery_app
from kirin.models import CollectJob, OutputJob, ProcessJob, WireModel
from kirin.status import Stage

logger = logging.getLogger(__name__)


class StageDispatcher(ABC):
    """Abstract base class for enqueuing stage jobs."""

    @abstractmethod
    def enqueue_collect(self, job: CollectJob) -> Optional[str]:
        """Enqueue a collect job; returns the queue's task id when known."""
        pass

    @abstractmethod
    def enqueue_process(self, job: ProcessJob) -> Optional[str]:
        """Enqueue a process job carrying one collected batch."""
        pass

    @abstractmethod
    def enqueue_output(self, job: OutputJob) -> Optional[str]:
        """Enqueue an output job for a persisted summary."""
        pass


class CeleryDispatcher(StageDispatcher):
    """Sends stage jobs by task name so callers never import the task modules."""

    def __init__(self, app: Optional[Celery] = None):
        self.app = app or celery_app

    def enqueue_collect(self, job: CollectJob) -> Optional[str]:
        return self._send(Stage.COLLECT, job)

    def enqueue_process(self, job: ProcessJob) -> Optional[str]:
        return self._send(Stage.PROCESS, job)

    def enqueue_output(self, job: OutputJob) -> Optional[str]:
        return self._send(Stage.OUTPUT, job)

    def _send(self, stage: Stage, job: WireModel) -> str:
        result = self.app.send_task(
            STAGE_TASKS[stage],
            args=[job.to_payload()],
            queue=stage.value,
            priority=STAGE_PRIORITIES[stage],
        )
        logger.info(
            f"Queued {stage.value} job",
            extra={"stage": stage.value, "task_id": result.id},
        )
        return result.id
