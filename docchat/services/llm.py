"""OpenAI LLM service for chat completions."""

import asyncio
from typing import Any, Dict, List, Optional

import httpx
import openai
from openai import AsyncOpenAI

from docchat.core.config import Settings
from docchat.core.exceptions import ErrorKind, LLMError


def classify_openai_error(error: BaseException) -> ErrorKind:
    """
    Map an OpenAI SDK (or transport) exception to an error kind.

    Args:
        error: Exception raised by a provider call.

    Returns:
        The classified error kind.
    """
    if isinstance(error, (openai.APITimeoutError, asyncio.TimeoutError, httpx.TimeoutException)):
        return ErrorKind.TIMEOUT
    if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return ErrorKind.AUTH
    if isinstance(error, openai.RateLimitError):
        return ErrorKind.RATE_LIMITED
    if isinstance(error, (openai.APIConnectionError, httpx.TransportError)):
        return ErrorKind.NETWORK
    return ErrorKind.UNKNOWN


def normalize_content(content: Any) -> str:
    """
    Flatten a completion's content into plain text.

    Content is usually a string, but some providers return a list of
    segments (plain strings, ``{"type": "text", "text": ...}`` dicts or
    objects exposing ``.text``).

    Args:
        content: Raw message content.

    Returns:
        Plain text.
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, (list, tuple)):
        parts = []
        for segment in content:
            if isinstance(segment, str):
                parts.append(segment)
            elif isinstance(segment, dict):
                parts.append(str(segment.get("text") or ""))
            else:
                parts.append(str(getattr(segment, "text", "") or ""))
        return "".join(parts)
    return str(content)


class LLMService:
    """Service for generating chat completions."""

    def __init__(self, settings: Settings, client: Optional[AsyncOpenAI] = None) -> None:
        """
        Initialize the LLM service.

        Args:
            settings: Application settings.
            client: Pre-built OpenAI client, mainly for tests.
        """
        self.client = client or AsyncOpenAI(
            api_key=settings.openai_api_key,
            timeout=settings.llm_timeout_seconds,
            max_retries=settings.llm_max_retries,
        )
        self.model = settings.llm_model
        self.temperature = settings.llm_temperature
        self.max_tokens = settings.llm_max_tokens
        self.timeout = settings.llm_timeout_seconds

    async def complete(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Generate a completion for a list of role/content messages.

        Args:
            messages: Chat messages, typically a system and a user message.
            temperature: Sampling temperature override.
            max_tokens: Completion length override.
            timeout: Per-call timeout override in seconds.

        Returns:
            The completion as plain text.

        Raises:
            LLMError: If the call fails; ``kind`` tells timeouts, auth,
                rate limits and network failures apart.
        """
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature if temperature is None else temperature,
                max_tokens=max_tokens or self.max_tokens,
                timeout=timeout or self.timeout,
            )
        except Exception as e:
            raise LLMError(
                f"Failed to generate response: {str(e)}",
                kind=classify_openai_error(e),
            ) from e

        if not response.choices:
            raise LLMError("Empty response from LLM")

        return normalize_content(response.choices[0].message.content).strip()
