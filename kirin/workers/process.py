"""
Process stage.

Turns one collected batch into a Summary: fresh processor config and
interests on every invocation, one model call, one stored Summary, one output
job.

Each invocation mints a new summary id. A redelivery after the summary was
committed therefore stores a second Summary for the same batch; at-least-once
delivery accepts that.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict

from kirin.celery_config import PROCESS_TASK, celery_app
from kirin.config import DEFAULT_SYSTEM_PROMPT, KirinSettings
from kirin.db.store import PipelineStore
from kirin.dispatch import StageDispatcher
from kirin.errors import EmptyBatch
from kirin.models import OutputJob, ProcessJob, ProcessorConfig, Summary
from kirin.status import Stage
from kirin.summarization.prompts import build_context
from kirin.worker_runtime import SummarizerFactory, get_worker_runtime
from kirin.workers.base import ProcessTask, track_job

logger = logging.getLogger(__name__)

PROCESSOR_CONFIG_NAME = "default"


def run_process(
    job: ProcessJob,
    *,
    settings: KirinSettings,
    store: PipelineStore,
    dispatcher: StageDispatcher,
    summarizer_factory: SummarizerFactory,
    attempt: int = 1,
) -> Dict[str, Any]:
    record_data = {
        "source": job.source,
        "userId": job.user_id,
        "messageCount": len(job.messages),
        "messageIds": [m.id for m in job.messages],
    }
    with track_job(store, Stage.PROCESS, record_data, attempt=attempt) as outcome:
        if not job.messages:
            raise EmptyBatch(f"No messages to summarize for {job.source}")

        logger.info(f"Processing {len(job.messages)} messages from {job.source}")

        config = store.get_processor_config(PROCESSOR_CONFIG_NAME)
        if config is None:
            logger.warning("No processor config in database, using environment defaults")
            config = ProcessorConfig(name=PROCESSOR_CONFIG_NAME)

        interests = store.get_active_interests(job.user_id)
        context = build_context(
            config.system_prompt or DEFAULT_SYSTEM_PROMPT,
            config.source_prompts.get(job.source),
            interests,
        )

        summarizer = summarizer_factory(config)
        text = summarizer.summarize(job.messages, context)

        summary = Summary(
            id=uuid.uuid4().hex,
            source=job.source,
            text=text,
            message_ids=[m.id for m in job.messages],
            user_id=job.user_id,
            model_name=summarizer.model_name,
        )
        store.save_summary(summary, raw_messages=[m.to_payload() for m in job.messages])
        logger.info(f"Saved summary to database with ID: {summary.id}")

        dispatcher.enqueue_output(OutputJob.from_summary(summary))

        outcome.result = {"summaryId": summary.id, "messageCount": len(job.messages)}
        return outcome.result


@celery_app.task(base=ProcessTask, bind=True, name=PROCESS_TASK)
def process_messages(self, payload: dict) -> dict:
    """
    Summarize one collected batch.

    Args:
        payload: ProcessJob as camelCase JSON

    Returns:
        {"summaryId": ..., "messageCount": N}
    """
    job = ProcessJob.model_validate(payload)
    logger.info(
        "Starting processing",
        extra={"task_id": self.request.id, "source": job.source, "message_count": len(job.messages)},
    )

    runtime = get_worker_runtime()
    return run_process(
        job,
        settings=runtime.settings,
        store=runtime.store,
        dispatcher=runtime.dispatcher,
        summarizer_factory=runtime.summarizer_factory,
        attempt=self.attempt_number(),
    )
