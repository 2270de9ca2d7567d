"""
Celery configuration for Kirin.

This module provides the Celery application shared by the three stage
workers and the beat scheduler: one queue per stage, routing by task name,
JSON-only payloads and late acknowledgement for at-least-once delivery.
"""

from __future__ import annotations

from celery import Celery
from celery.schedules import crontab
from kombu import Exchange, Queue

from kirin.config import get_settings
from kirin.status import Stage

# Task names are part of the queue contract; the dispatcher sends by name.
COLLECT_TASK = "kirin.workers.collect.collect_messages"
PROCESS_TASK = "kirin.workers.process.process_messages"
OUTPUT_TASK = "kirin.workers.output.store_output"
SCHEDULE_TASK = "kirin.scheduler.trigger_scheduled_collection"

STAGE_TASKS = {
    Stage.COLLECT: COLLECT_TASK,
    Stage.PROCESS: PROCESS_TASK,
    Stage.OUTPUT: OUTPUT_TASK,
}

# Redis transport: 0 is served first. Process jobs outrank new collections.
STAGE_PRIORITIES = {
    Stage.COLLECT: 5,
    Stage.PROCESS: 1,
    Stage.OUTPUT: 5,
}

# Hard and soft time limits per stage, in seconds
STAGE_TIME_LIMITS = {
    Stage.COLLECT: (600, 540),
    Stage.PROCESS: (900, 840),
    Stage.OUTPUT: (120, 100),
}

settings = get_settings()

# Create Celery application
celery_app = Celery(
    "kirin",
    broker=settings.effective_celery_broker_url,
    backend=settings.effective_celery_result_backend,
    include=[
        "kirin.workers.collect",
        "kirin.workers.process",
        "kirin.workers.output",
        "kirin.scheduler",
    ],
)

# Define exchanges
pipeline_exchange = Exchange("kirin", type="direct")

# Define queues with routing
celery_app.conf.task_queues = tuple(
    Queue(stage.value, pipeline_exchange, routing_key=stage.value)
    for stage in Stage
)

# Task routing configuration
celery_app.conf.task_routes = {
    COLLECT_TASK: {"queue": Stage.COLLECT.value},
    PROCESS_TASK: {"queue": Stage.PROCESS.value},
    OUTPUT_TASK: {"queue": Stage.OUTPUT.value},
    # Scheduling only enqueues a collect job; it runs on the collect workers
    SCHEDULE_TASK: {"queue": Stage.COLLECT.value},
}

# Celery configuration
celery_app.conf.update(
    # Task execution settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task result settings
    result_expires=86400,  # 24 hours
    result_extended=True,

    # Task acknowledgment settings
    task_acks_late=True,  # Acknowledge after task completes
    task_reject_on_worker_lost=True,  # Redeliver if worker dies

    # Worker settings
    worker_prefetch_multiplier=1,  # Disable prefetching for fair distribution

    # Priorities
    task_queue_max_priority=10,
    task_default_priority=5,
    broker_transport_options={
        "queue_order_strategy": "priority",
        "priority_steps": list(range(10)),
    },

    # Monitoring
    task_track_started=True,
    task_send_sent_event=True,
    worker_send_task_events=True,

    # Tests and local runs execute tasks inline
    task_always_eager=settings.celery_always_eager,
    task_eager_propagates=True,

    # Beat scheduler
    beat_schedule={
        "collect-slack": {
            "task": SCHEDULE_TASK,
            "schedule": crontab(minute=f"*/{settings.queue.collect_schedule_minutes}"),
            "kwargs": {"collector_name": "slack"},
        },
    },
)


def configure_for_worker(stage: str) -> int:
    """
    Configure Celery for one stage's worker.

    Args:
        stage: One of 'collect', 'process', 'output'

    Returns:
        The worker concurrency for that stage
    """
    stage = Stage(stage)
    time_limit, soft_time_limit = STAGE_TIME_LIMITS[stage]
    concurrency = settings.queue.concurrency_for(stage.value)
    celery_app.conf.update(
        task_time_limit=time_limit,
        task_soft_time_limit=soft_time_limit,
        worker_concurrency=concurrency,
    )
    return concurrency
