"""Database layer: ORM models, sessions, repositories and the pipeline store."""

from kirin.db.models import (
    Base,
    Collector,
    InterestRecord,
    PipelineJob,
    ProcessorConfigRecord,
    SummaryRecord,
    UserProfile,
)
from kirin.db.session import (
    build_engine,
    engine_from_settings,
    get_sessionmaker,
    init_db,
    session_scope,
)
from kirin.db.store import PipelineStore, SQLAlchemyPipelineStore

__all__ = [
    "Base",
    "Collector",
    "InterestRecord",
    "PipelineJob",
    "ProcessorConfigRecord",
    "SummaryRecord",
    "UserProfile",
    "build_engine",
    "engine_from_settings",
    "get_sessionmaker",
    "init_db",
    "session_scope",
    "PipelineStore",
    "SQLAlchemyPipelineStore",
]
