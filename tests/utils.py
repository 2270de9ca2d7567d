"""
Test utilities, factories, and assertions.

Provides helper functions for creating test data and asserting results.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from kirin.models import NormalizedMessage, RawMessage


# ==================== Factories ====================

def make_message(
    ts: str,
    author: str = "U1",
    text: str = "hello",
    channel: str = "C1",
    display_name: Optional[str] = None,
    is_thread_reply: bool = False,
    parent: Optional[str] = None,
) -> NormalizedMessage:
    """
    Create a normalized Slack message.

    Example:
        msg = make_message("1000.1", author="U1", text="hi")
        assert msg.id == "slack-C1-1000.1"
    """
    raw = RawMessage(
        external_id=ts,
        author_id=author,
        text=text,
        timestamp=ts,
        channel_id=channel,
        parent_thread_id=parent,
        is_thread_reply=is_thread_reply,
    )
    return NormalizedMessage.from_raw(raw, source="slack", display_name=display_name or author)


class StepClock:
    """Clock that returns start, start + step, start + 2*step, ..."""

    def __init__(self, start: datetime, step_ms: int = 1):
        self.current = start
        self.step = timedelta(milliseconds=step_ms)

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + self.step
        return value


# ==================== Assertions ====================

def assert_sorted_by_timestamp(messages: Sequence[NormalizedMessage]) -> None:
    values = [m.timestamp_value for m in messages]
    assert values == sorted(values), f"Not sorted: {[m.timestamp for m in messages]}"


def timestamps(messages: Sequence[NormalizedMessage]) -> List[str]:
    return [m.timestamp for m in messages]
