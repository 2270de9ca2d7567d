"""
Slack source client.

Fetches channel history over a lookback window, folds thread replies in
directly after their parent, resolves author ids to display names through a
process-wide cache and returns one chronologically sorted batch.

Per-item failures (an author lookup, a thread fetch) fall back quietly.
Channel-level failures propagate as SourceUnavailable or SourceRateLimited so
the job queue decides whether to retry.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError, SlackClientError

from kirin.errors import (
    IdentityResolutionFailure,
    SourceRateLimited,
    SourceUnavailable,
    ThreadFetchFailure,
)
from kirin.models import NormalizedMessage, RawMessage

logger = logging.getLogger(__name__)

SOURCE_NAME = "slack"


class AuthorCache:
    """
    Author id -> display name, shared by every client in the process.

    Inserts take a lock; reads do not. Two workers resolving the same author
    at once both call the API and the last write wins, which is harmless.
    """

    def __init__(self):
        self._names: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, author_id: str) -> Optional[str]:
        return self._names.get(author_id)

    def set(self, author_id: str, display_name: str) -> None:
        with self._lock:
            self._names[author_id] = display_name

    def __contains__(self, author_id: str) -> bool:
        return author_id in self._names

    def __len__(self) -> int:
        return len(self._names)

    def __bool__(self) -> bool:
        # An empty cache is still a cache
        return True


def _has_content(message: Dict[str, Any]) -> bool:
    return bool(message.get("text") and message.get("ts") and message.get("user"))


def _retry_after(response: Any) -> Optional[float]:
    headers = getattr(response, "headers", None) or {}
    value = headers.get("Retry-After") or headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _is_rate_limited(error: SlackApiError) -> bool:
    response = error.response
    if getattr(response, "status_code", None) == 429:
        return True
    try:
        return response.get("error") == "ratelimited"
    except AttributeError:
        return False


class SlackSourceClient:
    """
    Collects messages from Slack channels.

    Holds no per-call state beyond the injected AuthorCache, so one instance
    may serve many collect jobs.
    """

    def __init__(
        self,
        web_client: WebClient,
        author_cache: AuthorCache,
        source: str = SOURCE_NAME,
        page_limit: int = 1000,
        replies_limit: int = 100,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            web_client: Authenticated slack_sdk WebClient
            author_cache: Process-wide author name cache
            source: Source name used in message ids
            page_limit: Records per conversations.history page
            replies_limit: Records per conversations.replies call
            clock: Returns the current epoch time in seconds
        """
        self.web_client = web_client
        self.author_cache = author_cache
        self.source = source
        self.page_limit = page_limit
        self.replies_limit = replies_limit
        self._clock = clock

    def fetch_messages(
        self, channel_ids: Sequence[str], lookback_hours: float
    ) -> List[NormalizedMessage]:
        """
        Fetch messages from all channels within the lookback window.

        Returns messages sorted ascending by timestamp. Replies follow their
        parent before the final sort; the sort is stable so equal timestamps
        keep fetch order.

        Raises:
            SourceRateLimited: Slack throttled a history call
            SourceUnavailable: Slack was unreachable or rejected a history call
        """
        lookback_time = self._clock() - float(lookback_hours) * 3600
        messages: List[NormalizedMessage] = []

        for channel_id in channel_ids:
            logger.debug(f"Fetching messages from channel: {channel_id}")
            fetched = 0
            for message in self._iter_history(channel_id, lookback_time):
                fetched += 1
                if not _has_content(message):
                    continue

                messages.append(self._normalize(self._to_raw(message, channel_id)))

                reply_count = message.get("reply_count") or 0
                if reply_count > 0:
                    logger.debug(
                        f"Fetching {reply_count} thread replies for message {message['ts']}"
                    )
                    replies = self._fetch_thread_replies(channel_id, message["ts"])
                    messages.extend(replies)
                    logger.debug(f"Fetched {len(replies)} thread replies")

            if fetched == 0:
                logger.debug(f"No messages found in channel {channel_id}")
            else:
                logger.debug(f"Fetched {fetched} messages from channel {channel_id}")

        messages.sort(key=lambda m: m.timestamp_value)
        logger.info(f"Total messages fetched (including threads): {len(messages)}")
        return messages

    # ==================== Slack API ====================

    def _iter_history(self, channel_id: str, oldest: float) -> Iterator[Dict[str, Any]]:
        cursor: Optional[str] = None
        while True:
            kwargs: Dict[str, Any] = {
                "channel": channel_id,
                "oldest": f"{oldest:.6f}",
                "limit": self.page_limit,
            }
            if cursor:
                kwargs["cursor"] = cursor

            try:
                response = self.web_client.conversations_history(**kwargs)
            except SlackApiError as e:
                if _is_rate_limited(e):
                    retry_after = _retry_after(e.response)
                    logger.warning(
                        f"Rate limited fetching channel {channel_id}",
                        extra={"channel_id": channel_id, "retry_after": retry_after},
                    )
                    raise SourceRateLimited(
                        f"Slack rate limited history for {channel_id}",
                        channel_id=channel_id,
                        retry_after=retry_after,
                    ) from e
                logger.error(f"Error fetching messages from channel {channel_id}: {e}")
                raise SourceUnavailable(
                    f"Slack history failed for {channel_id}: {e}", channel_id=channel_id
                ) from e
            except (SlackClientError, OSError) as e:
                logger.error(f"Error fetching messages from channel {channel_id}: {e}")
                raise SourceUnavailable(
                    f"Slack unreachable for {channel_id}: {e}", channel_id=channel_id
                ) from e

            for message in response.get("messages") or []:
                yield message

            metadata = response.get("response_metadata") or {}
            cursor = metadata.get("next_cursor")
            if not cursor:
                return

    def _fetch_thread_replies(self, channel_id: str, thread_ts: str) -> List[NormalizedMessage]:
        """Replies to one thread, parent excluded. Failures yield an empty list."""
        try:
            thread = self._request_replies(channel_id, thread_ts)
        except ThreadFetchFailure as e:
            logger.debug(f"Error fetching thread replies for {thread_ts}: {e}")
            return []

        replies: List[NormalizedMessage] = []
        # Element 0 is the parent
        for message in thread[1:]:
            if not _has_content(message):
                continue
            raw = RawMessage(
                external_id=message["ts"],
                author_id=message["user"],
                text=message["text"],
                timestamp=message["ts"],
                channel_id=channel_id,
                parent_thread_id=thread_ts,
                is_thread_reply=True,
            )
            replies.append(self._normalize(raw))
        return replies

    def _resolve_author(self, author_id: str) -> str:
        cached = self.author_cache.get(author_id)
        if cached is not None:
            return cached

        try:
            display_name = self._lookup_display_name(author_id)
        except IdentityResolutionFailure as e:
            logger.debug(f"Could not resolve user {author_id}: {e}")
            return author_id

        self.author_cache.set(author_id, display_name)
        return display_name

    def _request_replies(self, channel_id: str, thread_ts: str) -> List[Dict[str, Any]]:
        try:
            response = self.web_client.conversations_replies(
                channel=channel_id, ts=thread_ts, limit=self.replies_limit
            )
        except (SlackClientError, OSError) as e:
            raise ThreadFetchFailure(f"conversations.replies failed for {thread_ts}: {e}") from e
        return list(response.get("messages") or [])

    def _lookup_display_name(self, author_id: str) -> str:
        try:
            response = self.web_client.users_info(user=author_id)
        except (SlackClientError, OSError) as e:
            raise IdentityResolutionFailure(f"users.info failed for {author_id}: {e}") from e

        user = response.get("user") or {}
        display_name = user.get("real_name") or user.get("name")
        if not display_name:
            raise IdentityResolutionFailure(f"No name on user {author_id}")
        return display_name

    # ==================== Helper Methods ====================

    @staticmethod
    def _to_raw(message: Dict[str, Any], channel_id: str) -> RawMessage:
        return RawMessage(
            external_id=message["ts"],
            author_id=message["user"],
            text=message["text"],
            timestamp=message["ts"],
            channel_id=channel_id,
            parent_thread_id=message.get("thread_ts"),
            is_thread_reply=False,
            reply_count=int(message.get("reply_count") or 0),
        )

    def _normalize(self, raw: RawMessage) -> NormalizedMessage:
        return NormalizedMessage.from_raw(
            raw,
            source=self.source,
            display_name=self._resolve_author(raw.author_id),
        )

