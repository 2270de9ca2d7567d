"""Idempotent seed data for a fresh database.

Creates the default user with two interests, the Slack collector and the
default processor config. Existing rows are left untouched, so rerunning is
safe.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from kirin.config import DEFAULT_SYSTEM_PROMPT, KirinSettings
from kirin.db.models import Collector, InterestRecord, ProcessorConfigRecord, UserProfile
from kirin.db.session import session_scope

logger = logging.getLogger(__name__)

DEFAULT_INTERESTS = (
    ("Helen Pumpkin Pie", 1.5),
    ("stuffing", 1.2),
)

DEFAULT_SOURCE_PROMPTS = {
    "slack": "Focus on actionable items and technical discussions.",
}


def seed_defaults(session_factory: sessionmaker[Session], settings: KirinSettings) -> None:
    with session_scope(session_factory) as session:
        user = session.execute(
            select(UserProfile).where(UserProfile.username == settings.default_user_id)
        ).scalars().first()
        if user is None:
            user = UserProfile(
                id=settings.default_user_id,
                username=settings.default_user_id,
                email="admin@kirin.local",
            )
            session.add(user)
            session.flush()
            logger.info(f"Created default user profile: {user.username}")

        for keyword, weight in DEFAULT_INTERESTS:
            exists = session.execute(
                select(InterestRecord).where(
                    InterestRecord.user_id == user.id,
                    InterestRecord.keyword == keyword,
                )
            ).scalars().first()
            if exists is None:
                session.add(InterestRecord(user_id=user.id, keyword=keyword, weight=weight))

        if session.execute(select(Collector).where(Collector.name == "slack")).scalars().first() is None:
            session.add(
                Collector(
                    name="slack",
                    display_name="Slack Collector",
                    enabled=True,
                    schedule_pattern=f"*/{settings.queue.collect_schedule_minutes} * * * *",
                    concurrency=settings.queue.collect_concurrency,
                    rate_limit_max=10,
                    rate_limit_ms=60000,
                    settings={
                        "channelIds": list(settings.slack.channel_ids),
                        "lookbackHours": settings.slack.lookback_hours,
                        "token": settings.slack.token_value() or "",
                    },
                )
            )
            logger.info("Created Slack collector")

        existing_config = session.execute(
            select(ProcessorConfigRecord).where(ProcessorConfigRecord.name == "default")
        ).scalars().first()
        if existing_config is None:
            session.add(
                ProcessorConfigRecord(
                    name="default",
                    model=settings.ollama.model,
                    base_url=settings.ollama.base_url,
                    temperature=0.7,
                    enabled=True,
                    concurrency=settings.queue.process_concurrency,
                    batch_size=100,
                    system_prompt=DEFAULT_SYSTEM_PROMPT,
                    source_prompts=dict(DEFAULT_SOURCE_PROMPTS),
                )
            )
            logger.info("Created default processor config")
