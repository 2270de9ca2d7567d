"""
Output stage.

Writes three files per summary: a timestamped copy, the per-source "latest"
file and a metadata snapshot. Rerunning a job creates a new timestamped file
and overwrites the other two.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from kirin.celery_config import OUTPUT_TASK, celery_app
from kirin.db.store import PipelineStore
from kirin.models import OutputJob, iso_millis
from kirin.status import Stage
from kirin.storage.local_file_storage import SummaryFileSink
from kirin.worker_runtime import get_worker_runtime
from kirin.workers.base import OutputTask, track_job

logger = logging.getLogger(__name__)

METADATA_SUMMARY_CHARS = 200
ELLIPSIS = "..."


def truncate_summary(text: str, limit: int = METADATA_SUMMARY_CHARS) -> str:
    """Cut text to at most `limit` characters, ellipsis included."""
    if len(text) <= limit:
        return text
    return text[:limit - len(ELLIPSIS)] + ELLIPSIS


def run_output(
    job: OutputJob,
    *,
    store: PipelineStore,
    sink: SummaryFileSink,
    attempt: int = 1,
) -> Dict[str, Any]:
    payload = job.to_payload()
    with track_job(store, Stage.OUTPUT, payload, attempt=attempt) as outcome:
        logger.info(f"Storing output from {job.source}")

        now = sink.now()
        filename = f"{job.source}-{int(now.timestamp() * 1000)}.txt"
        latest_filename = f"{job.source}-latest.txt"

        sink.write_summary(job.summary, filename)
        sink.write_summary(job.summary, latest_filename)

        metadata = dict(payload)
        metadata["summary"] = truncate_summary(job.summary)
        metadata["processedAt"] = iso_millis(now)
        sink.write_metadata(job.source, metadata)

        logger.info(f"Stored output: {filename}")
        outcome.result = {"file": filename, "latest": latest_filename}
        return outcome.result


@celery_app.task(base=OutputTask, bind=True, name=OUTPUT_TASK)
def store_output(self, payload: dict) -> dict:
    """
    Write the artifacts for one summary.

    Args:
        payload: OutputJob as camelCase JSON

    Returns:
        {"file": ..., "latest": ...}
    """
    job = OutputJob.model_validate(payload)
    logger.info(
        "Starting output",
        extra={"task_id": self.request.id, "summary_id": job.summary_id},
    )

    runtime = get_worker_runtime()
    return run_output(
        job,
        store=runtime.store,
        sink=runtime.sink,
        attempt=self.attempt_number(),
    )
