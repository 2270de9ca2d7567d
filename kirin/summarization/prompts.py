"""Prompt assembly for summarization.

Everything here is pure: no I/O, no configuration lookups. The process stage
loads the fragments and hands them in.
"""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

from kirin.models import Interest, NormalizedMessage, SummarizeContext, iso_millis

THREAD_REPLY_PREFIX = "  ↳ "

INTEREST_INTRO = "The user is especially interested in the following topics (highest priority first):"

THREAD_NOTE = 'Note: Messages indented with "↳" are replies within conversation threads.'


def compose(
    system_prompt: str,
    source_prompt: Optional[str] = None,
    interest_prompt: Optional[str] = None,
) -> str:
    """Join instruction fragments in fixed order: system, source, interest.

    Non-empty optional fragments are separated from what precedes them by a
    blank line. Empty ones are left out entirely.
    """
    parts = [system_prompt or ""]
    for fragment in (source_prompt, interest_prompt):
        if fragment:
            parts.append(fragment)
    return "\n\n".join(parts)


def format_weight(weight: float) -> str:
    """Render a weight exactly as declared; whole numbers drop the ".0"."""
    weight = float(weight)
    if weight.is_integer():
        return str(int(weight))
    return repr(weight)


def build_interest_prompt(interests: Iterable[Interest]) -> str:
    """Render active interests as a bulleted list, heaviest first.

    Returns "" when no interest is active so the caller omits the section.
    """
    active = [interest for interest in interests if interest.active]
    if not active:
        return ""
    # sorted() is stable, so equal weights keep declaration order
    ranked = sorted(active, key=lambda interest: -interest.weight)
    lines = [INTEREST_INTRO]
    lines.extend(
        f"- {interest.keyword} (priority: {format_weight(interest.weight)})"
        for interest in ranked
    )
    return "\n".join(lines)


def render_message(message: NormalizedMessage) -> str:
    prefix = THREAD_REPLY_PREFIX if message.is_thread_reply else ""
    timestamp = iso_millis(message.timestamp_datetime)
    return f"{prefix}[{timestamp}] {message.display_name}: {message.text}"


def render_transcript(messages: Sequence[NormalizedMessage]) -> str:
    """One line per message, in the order given."""
    return "\n".join(render_message(message) for message in messages)


def build_context(
    system_prompt: str,
    source_prompt: Optional[str],
    interests: Iterable[Interest],
) -> SummarizeContext:
    return SummarizeContext(
        system_prompt=system_prompt,
        source_prompt=source_prompt or None,
        interest_prompt=build_interest_prompt(interests) or None,
    )


def build_prompt(transcript: str, context: SummarizeContext) -> str:
    """Full model prompt: composed instruction, thread note, conversation, cue."""
    instruction = compose(
        context.system_prompt,
        context.source_prompt,
        context.interest_prompt,
    )
    return (
        f"{instruction}\n\n"
        f"{THREAD_NOTE}\n\n"
        f"Conversation:\n{transcript}\n\n"
        "Summary:"
    )
