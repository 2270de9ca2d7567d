"""Message sources."""

from kirin.sources.slack import AuthorCache, SlackSourceClient

__all__ = ["AuthorCache", "SlackSourceClient"]
