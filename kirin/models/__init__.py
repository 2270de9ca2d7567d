"""
Pydantic models shared by the Kirin stages.

These models define the messages passed between stages through the job
queue, plus the read-only views of configuration the stages load from the
store. Queue payloads serialise with camelCase keys and accept either
camelCase or snake_case on input.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Bump when NormalizedMessage gains or changes a field consumers rely on.
MESSAGE_SCHEMA_VERSION = 1

# Placeholder scoring until a real relevance scorer exists.
DEFAULT_RELEVANCE_SCORE = 0.8


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def iso_millis(value: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a Z suffix."""
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


class WireModel(BaseModel):
    """Base for anything that travels through a queue as JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_payload(self) -> dict[str, Any]:
        """Serialise to the JSON-safe, camelCase dict sent to the queue."""
        return self.model_dump(mode="json", by_alias=True)


# ==================== Messages ====================

class RawMessage(WireModel):
    """A message as fetched from the source, before author resolution."""

    model_config = ConfigDict(frozen=True)

    external_id: str
    author_id: str
    text: str
    # Fixed-point seconds string such as "1700000000.000200"; never compare as text
    timestamp: str
    channel_id: str
    parent_thread_id: Optional[str] = None
    is_thread_reply: bool = False
    reply_count: Optional[int] = None

    @field_validator("timestamp")
    @classmethod
    def _check_timestamp(cls, v: str) -> str:
        try:
            Decimal(v)
        except (InvalidOperation, TypeError) as exc:
            raise ValueError(f"timestamp must be a decimal string, got {v!r}") from exc
        return v

    @property
    def timestamp_value(self) -> Decimal:
        return Decimal(self.timestamp)

    @property
    def timestamp_datetime(self) -> datetime:
        return datetime.fromtimestamp(float(self.timestamp_value), tz=timezone.utc)


class NormalizedMessage(RawMessage):
    """A collected message with its author resolved, as handed to Process."""

    id: str
    source: str
    display_name: str
    schema_version: int = MESSAGE_SCHEMA_VERSION

    @classmethod
    def from_raw(cls, raw: RawMessage, *, source: str, display_name: str) -> "NormalizedMessage":
        return cls(
            id=f"{source}-{raw.channel_id}-{raw.timestamp}",
            source=source,
            display_name=display_name,
            **raw.model_dump(),
        )


# ==================== Interests & prompts ====================

class Interest(BaseModel):
    """A user-declared keyword that biases summarization."""

    user_id: str
    keyword: str
    weight: float = 1.0
    active: bool = True


class SummarizeContext(BaseModel):
    """Prompt fragments combined in order: system, source, interest."""

    system_prompt: str = ""
    source_prompt: Optional[str] = None
    interest_prompt: Optional[str] = None


# ==================== Configuration views ====================

class CollectorSettings(BaseModel):
    """Per-source settings stored with a collector record."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    channel_ids: list[str] = Field(default_factory=list)
    lookback_hours: Optional[float] = None
    token: Optional[str] = None


class CollectorConfig(BaseModel):
    """Collector enable flag and settings."""

    id: Optional[str] = None
    name: str
    display_name: Optional[str] = None
    enabled: bool = True
    schedule_pattern: Optional[str] = None
    settings: CollectorSettings = Field(default_factory=CollectorSettings)


class ProcessorConfig(BaseModel):
    """Summarizer configuration, reloaded on every process job."""

    name: str = "default"
    model: Optional[str] = None
    base_url: Optional[str] = None
    temperature: Optional[float] = None
    enabled: bool = True
    system_prompt: Optional[str] = None
    source_prompts: dict[str, str] = Field(default_factory=dict)


# ==================== Results ====================

class Summary(WireModel):
    """Terminal artifact of the process stage; never mutated after creation."""

    id: str
    source: str
    text: str
    message_ids: list[str] = Field(default_factory=list)
    user_id: str
    generated_at: datetime = Field(default_factory=utcnow)
    relevance_score: float = DEFAULT_RELEVANCE_SCORE
    topics: list[str] = Field(default_factory=list)
    model_name: Optional[str] = None


# ==================== Queue payloads ====================

class CollectJob(WireModel):
    """Payload of the collect queue."""

    source: str = "slack"
    channel_ids: Optional[list[str]] = None
    lookback_hours: Optional[float] = None
    scheduled_at: datetime = Field(default_factory=utcnow)
    user_id: Optional[str] = None
    manual: bool = False


class ProcessJob(WireModel):
    """Payload of the process queue: one collected batch."""

    messages: list[NormalizedMessage]
    user_id: str
    source: str


class OutputJob(WireModel):
    """Payload of the output queue."""

    message_ids: list[str]
    summary: str
    relevance_score: float = DEFAULT_RELEVANCE_SCORE
    topics: list[str] = Field(default_factory=list)
    source: str
    timestamp: datetime = Field(default_factory=utcnow)
    user_id: str
    summary_id: str

    @classmethod
    def from_summary(cls, summary: Summary) -> "OutputJob":
        return cls(
            message_ids=list(summary.message_ids),
            summary=summary.text,
            relevance_score=summary.relevance_score,
            topics=list(summary.topics),
            source=summary.source,
            timestamp=summary.generated_at,
            user_id=summary.user_id,
            summary_id=summary.id,
        )


__all__ = [
    "MESSAGE_SCHEMA_VERSION",
    "DEFAULT_RELEVANCE_SCORE",
    "utcnow",
    "iso_millis",
    "WireModel",
    "RawMessage",
    "NormalizedMessage",
    "Interest",
    "SummarizeContext",
    "CollectorSettings",
    "CollectorConfig",
    "ProcessorConfig",
    "Summary",
    "CollectJob",
    "ProcessJob",
    "OutputJob",
]
