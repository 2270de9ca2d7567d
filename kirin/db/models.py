"""
SQLAlchemy ORM models for Kirin.

These models hold collector and processor configuration, user interests,
append-only job records and generated summaries.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return uuid.uuid4().hex


class Collector(Base):
    """Collector configuration - one row per source (slack, signal, ...)."""

    __tablename__ = "collectors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, unique=True)
    display_name = Column(String, nullable=True)
    enabled = Column(Boolean, nullable=False, default=True)
    schedule_pattern = Column(String, nullable=True)
    concurrency = Column(Integer, nullable=False, default=1)
    rate_limit_max = Column(Integer, nullable=True)
    rate_limit_ms = Column(Integer, nullable=True)
    # {"channelIds": [...], "lookbackHours": 24, "token": "xoxb-..."}
    settings = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=_utcnow)

    jobs = relationship("PipelineJob", back_populates="collector")


class PipelineJob(Base):
    """Append-only record of one stage invocation."""

    __tablename__ = "pipeline_jobs"

    id = Column(String(32), primary_key=True, default=_uuid)
    stage = Column(String, nullable=False)
    collector_id = Column(Integer, ForeignKey("collectors.id"), nullable=True)
    task_id = Column(String, nullable=True)
    status = Column(String, nullable=False, default="PENDING")
    attempts = Column(Integer, nullable=False, default=0)
    data = Column(JSON, nullable=True)
    result = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    collector = relationship("Collector", back_populates="jobs")

    __table_args__ = (
        Index("idx_pipeline_jobs_stage_status", "stage", "status"),
    )


class ProcessorConfigRecord(Base):
    """Summarizer settings; the row named 'default' is used by the process stage."""

    __tablename__ = "processor_configs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, unique=True)
    model = Column(String, nullable=True)
    base_url = Column(String, nullable=True)
    temperature = Column(Float, nullable=True)
    enabled = Column(Boolean, nullable=False, default=True)
    concurrency = Column(Integer, nullable=False, default=2)
    batch_size = Column(Integer, nullable=False, default=100)
    system_prompt = Column(Text, nullable=True)
    # {"slack": "Focus on actionable items...", ...}
    source_prompts = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=_utcnow)


class UserProfile(Base):
    """A user whose interests personalise summaries."""

    __tablename__ = "user_profiles"

    id = Column(String, primary_key=True, default=_uuid)
    username = Column(String, nullable=False, unique=True)
    email = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    interests = relationship("InterestRecord", back_populates="user")


class InterestRecord(Base):
    """Weighted keyword declared by a user."""

    __tablename__ = "interests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, ForeignKey("user_profiles.id"), nullable=False)
    keyword = Column(String, nullable=False)
    weight = Column(Float, nullable=False, default=1.0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    user = relationship("UserProfile", back_populates="interests")

    __table_args__ = (
        UniqueConstraint("user_id", "keyword", name="uq_interests_user_keyword"),
    )


class SummaryRecord(Base):
    """Generated summary of one collected batch."""

    __tablename__ = "summaries"

    id = Column(String(32), primary_key=True, default=_uuid)
    source = Column(String, nullable=False)
    summary = Column(Text, nullable=False)
    raw_messages = Column(JSON, nullable=True)
    message_ids = Column(JSON, nullable=False, default=list)
    user_id = Column(String, nullable=False)
    topics = Column(JSON, nullable=False, default=list)
    relevance_score = Column(Float, nullable=True)
    model_name = Column(String, nullable=True)
    generated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("idx_summaries_source_generated_at", "source", "generated_at"),
    )
