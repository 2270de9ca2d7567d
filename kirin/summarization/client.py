"""Model endpoint clients for summary generation."""
from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Sequence

import httpx

from kirin.errors import ModelUnavailable
from kirin.models import NormalizedMessage, SummarizeContext
from kirin.summarization.prompts import build_prompt, render_transcript

logger = logging.getLogger(__name__)

# Failures worth another attempt: timeouts, transport errors, non-2xx
# responses and bodies without a usable "response" field.
RETRYABLE_ERRORS = (
    httpx.TimeoutException,
    httpx.TransportError,
    httpx.HTTPStatusError,
    ValueError,
    KeyError,
    TypeError,
)


class SummarizationClient(ABC):
    """Abstract base class for summarization model clients."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Model identifier recorded on the summary."""
        pass

    @abstractmethod
    def summarize(
        self,
        transcript: Sequence[NormalizedMessage],
        context: SummarizeContext,
    ) -> str:
        """Summarize a chronologically ordered batch of messages.

        Raises:
            ModelUnavailable: every attempt failed
        """
        pass


class OllamaClient(SummarizationClient):
    """Ollama /api/generate client with a fixed-delay retry loop.

    Each attempt is one non-streaming request bounded by ``timeout``. After
    ``max_attempts`` failures the last error is wrapped in ModelUnavailable.
    Backoff across whole process jobs is the queue's business, not this
    client's.
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        timeout: float = 120.0,
        max_attempts: int = 5,
        retry_delay: float = 5.0,
        temperature: Optional[float] = None,
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the client.

        Args:
            base_url: Ollama server URL
            model: Model name, e.g. "llama3.1:8b"
            timeout: Per-attempt timeout in seconds
            max_attempts: Total attempts before giving up
            retry_delay: Seconds to wait between attempts
            temperature: Sampling temperature forwarded as an option when set
            http_client: Optional pre-built httpx client (tests inject a mock transport)
            sleep: Sleep function used between attempts
        """
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.temperature = temperature
        self._http_client = http_client
        self._sleep = sleep

    @property
    def model_name(self) -> str:
        return self.model

    def summarize(
        self,
        transcript: Sequence[NormalizedMessage],
        context: SummarizeContext,
    ) -> str:
        prompt = build_prompt(render_transcript(transcript), context)
        logger.info(f"Summarizing {len(transcript)} messages with {self.model}")
        return self.generate(prompt)

    def generate(self, prompt: str) -> str:
        """Send one prompt, retrying on failure. Returns the trimmed response."""
        url = f"{self.base_url}/api/generate"
        logger.debug(f"Sending request to Ollama: {url}")

        last_error: Optional[BaseException] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                text = self._post(url, self._payload(prompt))
                logger.info(f"Successfully generated summary on attempt {attempt}")
                return text.strip()
            except RETRYABLE_ERRORS as e:
                last_error = e
                if attempt < self.max_attempts:
                    logger.warning(
                        f"Ollama API call failed (attempt {attempt}/{self.max_attempts}): {e}. "
                        f"Retrying in {self.retry_delay:g}s..."
                    )
                    self._sleep(self.retry_delay)

        logger.error(f"Ollama API call failed after {self.max_attempts} attempts: {last_error}")
        raise ModelUnavailable(
            f"Model endpoint failed after {self.max_attempts} attempts: {last_error}",
            attempts=self.max_attempts,
            last_error=last_error,
        ) from last_error

    def _payload(self, prompt: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
        }
        if self.temperature is not None:
            payload["options"] = {"temperature": self.temperature}
        return payload

    def _post(self, url: str, payload: Dict[str, Any]) -> str:
        if self._http_client is not None:
            response = self._http_client.post(url, json=payload, timeout=self.timeout)
        else:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(url, json=payload)
        response.raise_for_status()

        data = response.json()
        text = data["response"]
        if not isinstance(text, str):
            raise TypeError(f"Unexpected response field type: {type(text).__name__}")
        return text
