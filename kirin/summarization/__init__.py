"""Summarization: prompt assembly and model endpoint clients."""

from kirin.summarization.client import OllamaClient, SummarizationClient
from kirin.summarization.prompts import (
    build_context,
    build_interest_prompt,
    build_prompt,
    compose,
    render_transcript,
)

__all__ = [
    "OllamaClient",
    "SummarizationClient",
    "build_context",
    "build_interest_prompt",
    "build_prompt",
    "compose",
    "render_transcript",
]
