"""Repositories over the Kirin ORM models.

Each repository owns one model and opens its own short session per call via
the injected session factory. Callers receive detached ORM instances
(``expire_on_commit=False``) or plain values.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, sessionmaker

from kirin.db.models import (
    Collector,
    InterestRecord,
    PipelineJob,
    ProcessorConfigRecord,
    SummaryRecord,
    UserProfile,
)
from kirin.db.session import session_scope
from kirin.status import JobStatus

ModelT = TypeVar("ModelT")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseRepository(Generic[ModelT]):
    """Base repository providing common CRUD operations.

    Subclasses should set the model_class attribute to their ORM model.
    """

    model_class: Type[ModelT]

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    def _get_session(self):
        """Get a database session context manager."""
        return session_scope(self.session_factory)

    def get_by_id(self, id: Any) -> Optional[ModelT]:
        with self._get_session() as session:
            return session.get(self.model_class, id)

    def create(self, **kwargs) -> ModelT:
        """Create a new record and return it with defaults populated."""
        with self._get_session() as session:
            instance = self.model_class(**kwargs)  # type: ignore[call-arg]
            session.add(instance)
            session.flush()
            session.refresh(instance)
            return instance


class CollectorRepository(BaseRepository[Collector]):
    model_class = Collector

    def get_by_name(self, name: str) -> Optional[Collector]:
        with self._get_session() as session:
            stmt = select(Collector).where(Collector.name == name)
            return session.execute(stmt).scalars().first()


class ProcessorConfigRepository(BaseRepository[ProcessorConfigRecord]):
    model_class = ProcessorConfigRecord

    def get_by_name(self, name: str) -> Optional[ProcessorConfigRecord]:
        with self._get_session() as session:
            stmt = select(ProcessorConfigRecord).where(ProcessorConfigRecord.name == name)
            return session.execute(stmt).scalars().first()


class InterestRepository(BaseRepository[InterestRecord]):
    model_class = InterestRecord

    def list_active_for_user(self, user_key: str) -> List[InterestRecord]:
        """Active interests for a user, highest weight first.

        ``user_key`` matches either the profile id or its username. Ties keep
        insertion order.
        """
        with self._get_session() as session:
            stmt = (
                select(InterestRecord)
                .join(UserProfile, InterestRecord.user_id == UserProfile.id)
                .where(
                    or_(UserProfile.id == user_key, UserProfile.username == user_key),
                    InterestRecord.is_active.is_(True),
                )
                .order_by(InterestRecord.weight.desc(), InterestRecord.id.asc())
            )
            return list(session.execute(stmt).scalars().all())


class PipelineJobRepository(BaseRepository[PipelineJob]):
    model_class = PipelineJob

    def start(
        self,
        *,
        stage: str,
        data: Optional[dict],
        collector_id: Optional[int] = None,
        task_id: Optional[str] = None,
        attempts: int = 0,
    ) -> PipelineJob:
        return self.create(
            stage=stage,
            collector_id=collector_id,
            task_id=task_id,
            status=JobStatus.ACTIVE.value,
            attempts=attempts,
            data=data,
            started_at=_utcnow(),
        )

    def complete(self, job_id: str, result: Optional[dict]) -> Optional[PipelineJob]:
        with self._get_session() as session:
            job = session.get(PipelineJob, job_id)
            if job is None:
                return None
            job.status = JobStatus.COMPLETED.value
            job.completed_at = _utcnow()
            job.result = result
            return job

    def fail(self, job_id: str, error: str, attempts: int) -> Optional[PipelineJob]:
        with self._get_session() as session:
            job = session.get(PipelineJob, job_id)
            if job is None:
                return None
            job.status = JobStatus.FAILED.value
            job.failed_at = _utcnow()
            job.error = error
            job.attempts = attempts
            return job


class SummaryRepository(BaseRepository[SummaryRecord]):
    model_class = SummaryRecord

    def upsert(self, **fields) -> SummaryRecord:
        """Insert or overwrite the summary keyed by ``fields['id']``."""
        with self._get_session() as session:
            instance = session.merge(SummaryRecord(**fields))
            session.flush()
            return instance

    def list_for_source(self, source: str) -> List[SummaryRecord]:
        with self._get_session() as session:
            stmt = (
                select(SummaryRecord)
                .where(SummaryRecord.source == source)
                .order_by(SummaryRecord.generated_at.asc())
            )
            return list(session.execute(stmt).scalars().all())
