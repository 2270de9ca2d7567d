"""
Pipeline store abstraction.

The stages only talk to a PipelineStore: configuration reads, job records and
summary persistence. SQLAlchemyPipelineStore implements it over the
repositories; tests use an in-memory fake with the same interface.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from kirin.db.models import Collector, PipelineJob, SummaryRecord
from kirin.db.repositories import (
    CollectorRepository,
    InterestRepository,
    PipelineJobRepository,
    ProcessorConfigRepository,
    SummaryRepository,
)
from kirin.errors import PersistenceFailure
from kirin.models import (
    DEFAULT_RELEVANCE_SCORE,
    CollectorConfig,
    CollectorSettings,
    Interest,
    ProcessorConfig,
    Summary,
)
from kirin.status import JobRecord, JobStatus, Stage

logger = logging.getLogger(__name__)


class PipelineStore(ABC):
    """
    Abstract base class for the pipeline's relational store.

    All implementations must provide:
    - Collector and processor configuration reads
    - Active interests per user
    - Job record lifecycle (start, complete, fail)
    - Summary persistence keyed by summary id
    """

    # ==================== Configuration ====================

    @abstractmethod
    def get_collector(self, name: str) -> Optional[CollectorConfig]:
        """Get collector configuration by name."""
        pass

    @abstractmethod
    def get_processor_config(self, name: str = "default") -> Optional[ProcessorConfig]:
        """Get processor configuration by name."""
        pass

    @abstractmethod
    def get_active_interests(self, user_id: str) -> List[Interest]:
        """Get a user's active interests, highest weight first."""
        pass

    # ==================== Job Records ====================

    @abstractmethod
    def start_job(
        self,
        stage: Stage,
        data: Dict[str, Any],
        collector_name: Optional[str] = None,
        attempts: int = 1,
    ) -> JobRecord:
        """Record a stage invocation as ACTIVE."""
        pass

    @abstractmethod
    def complete_job(self, job_id: str, result: Optional[Dict[str, Any]] = None) -> None:
        """Mark a job COMPLETED with its result."""
        pass

    @abstractmethod
    def fail_job(self, job_id: str, error: str, attempts: int) -> None:
        """Mark a job FAILED with the error and attempt count."""
        pass

    @abstractmethod
    def get_job(self, job_id: str) -> Optional[JobRecord]:
        """Get a job record by id."""
        pass

    # ==================== Summaries ====================

    @abstractmethod
    def save_summary(self, summary: Summary, raw_messages: Optional[list] = None) -> Summary:
        """Insert or overwrite a summary keyed by its id."""
        pass

    @abstractmethod
    def get_summary(self, summary_id: str) -> Optional[Summary]:
        """Get a summary by id."""
        pass

    @abstractmethod
    def list_summaries(self, source: str) -> List[Summary]:
        """List summaries for a source, oldest first."""
        pass


class SQLAlchemyPipelineStore(PipelineStore):
    """
    PipelineStore backed by SQLAlchemy.

    Every call runs in its own short session. Driver and ORM errors surface
    as PersistenceFailure so stage code sees one error type.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory
        self.collectors = CollectorRepository(session_factory)
        self.processor_configs = ProcessorConfigRepository(session_factory)
        self.interests = InterestRepository(session_factory)
        self.jobs = PipelineJobRepository(session_factory)
        self.summaries = SummaryRepository(session_factory)

    # ==================== Configuration ====================

    def get_collector(self, name: str) -> Optional[CollectorConfig]:
        try:
            row = self.collectors.get_by_name(name)
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to load collector {name!r}: {e}") from e
        if row is None:
            return None
        return self._collector_to_config(row)

    def get_processor_config(self, name: str = "default") -> Optional[ProcessorConfig]:
        try:
            row = self.processor_configs.get_by_name(name)
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to load processor config {name!r}: {e}") from e
        if row is None:
            return None
        return ProcessorConfig(
            name=row.name,
            model=row.model,
            base_url=row.base_url,
            temperature=row.temperature,
            enabled=row.enabled,
            system_prompt=row.system_prompt,
            source_prompts=dict(row.source_prompts or {}),
        )

    def get_active_interests(self, user_id: str) -> List[Interest]:
        try:
            rows = self.interests.list_active_for_user(user_id)
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to load interests for {user_id!r}: {e}") from e
        return [
            Interest(
                user_id=row.user_id,
                keyword=row.keyword,
                weight=row.weight,
                active=row.is_active,
            )
            for row in rows
        ]

    # ==================== Job Records ====================

    def start_job(
        self,
        stage: Stage,
        data: Dict[str, Any],
        collector_name: Optional[str] = None,
        attempts: int = 1,
    ) -> JobRecord:
        try:
            collector_id = None
            if collector_name:
                collector = self.collectors.get_by_name(collector_name)
                collector_id = collector.id if collector else None
            row = self.jobs.start(
                stage=Stage(stage).value,
                data=data,
                collector_id=collector_id,
                attempts=attempts,
            )
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to record {stage} job: {e}") from e
        return self._job_to_record(row, collector_name)

    def complete_job(self, job_id: str, result: Optional[Dict[str, Any]] = None) -> None:
        try:
            row = self.jobs.complete(job_id, result)
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to complete job {job_id}: {e}") from e
        if row is None:
            logger.warning(f"Job {job_id} not found when marking completed")

    def fail_job(self, job_id: str, error: str, attempts: int) -> None:
        try:
            row = self.jobs.fail(job_id, error, attempts)
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to mark job {job_id} failed: {e}") from e
        if row is None:
            logger.warning(f"Job {job_id} not found when marking failed")

    def get_job(self, job_id: str) -> Optional[JobRecord]:
        try:
            row = self.jobs.get_by_id(job_id)
            if row is None:
                return None
            collector_name = None
            if row.collector_id is not None:
                collector = self.collectors.get_by_id(row.collector_id)
                collector_name = collector.name if collector else None
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to load job {job_id}: {e}") from e
        return self._job_to_record(row, collector_name)

    # ==================== Summaries ====================

    def save_summary(self, summary: Summary, raw_messages: Optional[list] = None) -> Summary:
        try:
            self.summaries.upsert(
                id=summary.id,
                source=summary.source,
                summary=summary.text,
                raw_messages=raw_messages,
                message_ids=list(summary.message_ids),
                user_id=summary.user_id,
                topics=list(summary.topics),
                relevance_score=summary.relevance_score,
                model_name=summary.model_name,
                generated_at=summary.generated_at,
            )
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to save summary {summary.id}: {e}") from e
        return summary

    def get_summary(self, summary_id: str) -> Optional[Summary]:
        try:
            row = self.summaries.get_by_id(summary_id)
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to load summary {summary_id}: {e}") from e
        return self._summary_from_row(row) if row else None

    def list_summaries(self, source: str) -> List[Summary]:
        try:
            rows = self.summaries.list_for_source(source)
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to list summaries for {source!r}: {e}") from e
        return [self._summary_from_row(row) for row in rows]

    # ==================== Helper Methods ====================

    @staticmethod
    def _collector_to_config(row: Collector) -> CollectorConfig:
        return CollectorConfig(
            id=str(row.id),
            name=row.name,
            display_name=row.display_name,
            enabled=row.enabled,
            schedule_pattern=row.schedule_pattern,
            settings=CollectorSettings.model_validate(row.settings or {}),
        )

    @staticmethod
    def _job_to_record(row: PipelineJob, collector_name: Optional[str]) -> JobRecord:
        return JobRecord(
            id=row.id,
            stage=Stage(row.stage),
            status=JobStatus(row.status),
            attempts=row.attempts,
            collector_name=collector_name,
            data=row.data or {},
            result=row.result,
            error=row.error,
            started_at=row.started_at,
            completed_at=row.completed_at,
            failed_at=row.failed_at,
        )

    @staticmethod
    def _summary_from_row(row: SummaryRecord) -> Summary:
        return Summary(
            id=row.id,
            source=row.source,
            text=row.summary,
            message_ids=list(row.message_ids or []),
            user_id=row.user_id,
            generated_at=row.generated_at,
            relevance_score=(
                row.relevance_score
                if row.relevance_score is not None
                else DEFAULT_RELEVANCE_SCORE
            ),
            topics=list(row.topics or []),
            model_name=row.model_name,
        )
