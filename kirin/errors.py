"""Error taxonomy for the Kirin pipeline.

Stage-level errors propagate so the job queue's retry/backoff decides what
happens next. Per-item errors (one author lookup, one thread fetch) are
absorbed by the source client and only exist so the fallback path has a
named cause to log.
"""

from __future__ import annotations

from typing import Optional


class KirinError(Exception):
    """Base error for the pipeline."""


class SourceUnavailable(KirinError):
    """Upstream chat API unreachable or returned a non-success status."""

    def __init__(self, message: str, channel_id: Optional[str] = None):
        self.channel_id = channel_id
        super().__init__(message)


class SourceRateLimited(SourceUnavailable):
    """Upstream chat API asked us to slow down."""

    def __init__(
        self,
        message: str,
        channel_id: Optional[str] = None,
        retry_after: Optional[float] = None,
    ):
        self.retry_after = retry_after
        super().__init__(message, channel_id=channel_id)


class IdentityResolutionFailure(KirinError):
    """Author lookup failed; callers fall back to the raw author id."""


class ThreadFetchFailure(KirinError):
    """Thread replies could not be fetched; callers use an empty reply set."""


class ModelUnavailable(KirinError):
    """Model endpoint failed on every attempt."""

    def __init__(self, message: str, attempts: int, last_error: Optional[BaseException] = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(message)


class PersistenceFailure(KirinError):
    """A store or file write failed."""


class ConfigurationMissing(KirinError):
    """Required configuration (collector record, credential, channel list) is absent."""


class EmptyBatch(KirinError):
    """A process job arrived without any messages to summarize."""
