"""
Job status tracking for the Kirin pipeline.

Every stage invocation writes a job record that moves
PENDING -> ACTIVE -> COMPLETED | FAILED exactly once per attempt.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class JobStatus(str, Enum):
    """Job record status."""

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    def is_terminal(self) -> bool:
        """Check if this is a terminal (final) status."""
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class Stage(str, Enum):
    """Pipeline stage; the value doubles as the queue name."""

    COLLECT = "collect"
    PROCESS = "process"
    OUTPUT = "output"


@dataclass
class JobRecord:
    """Snapshot of a stage invocation as stored by the pipeline store."""

    id: str
    stage: Stage
    status: JobStatus
    attempts: int = 0
    collector_name: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "stage": self.stage.value,
            "status": self.status.value,
            "attempts": self.attempts,
            "collector_name": self.collector_name,
            "data": self.data,
            "result": self.result,
            "error": self.error,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "failed_at": self.failed_at.isoformat() if self.failed_at else None,
        }
