"""
Kirin worker entry point.

Starts a Celery worker for one stage queue, the beat scheduler, a manual
collection trigger, or database initialisation.

    kirin-worker collect|process|output
    kirin-worker beat
    kirin-worker trigger [--collector slack]
    kirin-worker init-db
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Optional, Sequence

from kirin.celery_config import celery_app, configure_for_worker
from kirin.config import configure_logging, get_settings
from kirin.status import Stage

logger = logging.getLogger(__name__)


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="kirin-worker")
    parser.add_argument(
        "command",
        choices=[stage.value for stage in Stage] + ["beat", "trigger", "init-db"],
    )
    parser.add_argument("--collector", default="slack", help="Collector for 'trigger'")
    return parser.parse_args(argv)


def start_stage_worker(stage: str) -> None:
    settings = get_settings()
    concurrency = configure_for_worker(stage)
    celery_app.worker_main(
        argv=[
            "worker",
            f"--queues={stage}",
            f"--concurrency={os.getenv('CELERY_CONCURRENCY', str(concurrency))}",
            f"--loglevel={settings.log_level}",
            f"--hostname={stage}-worker@%h",
        ]
    )


def start_beat() -> None:
    settings = get_settings()
    celery_app.start(argv=["beat", f"--loglevel={settings.log_level}"])


def trigger(collector_name: str) -> None:
    from kirin.scheduler import trigger_collection
    from kirin.worker_runtime import get_worker_runtime

    runtime = get_worker_runtime()
    trigger_collection(
        runtime.store,
        runtime.dispatcher,
        runtime.settings,
        collector_name=collector_name,
        manual=True,
    )


def init_database() -> None:
    from kirin.db.seed import seed_defaults
    from kirin.db.session import engine_from_settings, get_sessionmaker, init_db

    settings = get_settings()
    engine = engine_from_settings(settings)
    init_db(engine)
    seed_defaults(get_sessionmaker(engine), settings)
    logger.info("Database initialized")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    configure_logging(get_settings())

    if args.command == "beat":
        start_beat()
    elif args.command == "trigger":
        trigger(args.collector)
    elif args.command == "init-db":
        init_database()
    else:
        start_stage_worker(args.command)
    return 0


if __name__ == "__main__":
    sys.exit(main())
