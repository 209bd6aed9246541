"""
Chat completion client.

Wraps the OpenAI async client with a bounded retry on 429/5xx and a
refusal check that allows one retry with a safer prompt.
"""

import asyncio
from typing import Awaitable, Callable, Optional

import openai
from openai import AsyncOpenAI

from shirokuma.agents.prompts import REFUSAL_PHRASES, SAFER_PROMPT_PREFIX, SAFER_SYSTEM_PROMPT
from shirokuma.config import get_settings
from shirokuma.logging_config import bot_logger as logger

MAX_BACKOFF_SECONDS = 30.0


class CompletionError(Exception):
    """Completion request failed (non-retryable error or retries exhausted)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RefusalError(CompletionError):
    """The model declined the request even after the safer retry."""


def is_retryable_status(status_code: Optional[int]) -> bool:
    return status_code is not None and (status_code == 429 or 500 <= status_code < 600)


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Retry-After in seconds; HTTP-date values are ignored."""
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def backoff_delay(
    attempt: int, base: float, retry_after: Optional[str] = None, cap: float = MAX_BACKOFF_SECONDS
) -> float:
    """Delay before retry number attempt+1 (attempt is 0-based)."""
    seconds = parse_retry_after(retry_after)
    if seconds is None:
        seconds = base * (2 ** attempt)
    return min(seconds, cap)


def is_refusal(text: Optional[str]) -> bool:
    """True for empty output or any known refusal phrase."""
    if not text or not text.strip():
        return True
    lowered = text.lower()
    return any(phrase in lowered for phrase in REFUSAL_PHRASES)


class CompletionClient:
    """Sends system + user messages to the chat completion endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o",
        temperature: float = 0.8,
        max_tokens: int = 2000,
        timeout: float = 60.0,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        max_backoff: float = MAX_BACKOFF_SECONDS,
        client=None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        # SDK retries are disabled; retry policy lives in complete()
        self.client = client or AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.max_backoff = max_backoff
        self._sleep = sleep

    async def complete(self, system: str, prompt: str) -> str:
        """
        Send one completion request, retrying on 429 and 5xx.

        Raises:
            CompletionError: on a non-retryable error or when retries run out
        """
        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": system},
                        {"role": "user", "content": prompt},
                    ],
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                )
                return response.choices[0].message.content or ""

            except openai.APIStatusError as e:
                if not is_retryable_status(e.status_code):
                    logger.error(f"Completion request failed with status {e.status_code}: {e}")
                    raise CompletionError(f"Completion request failed: {e}", e.status_code) from e

                if attempt >= self.max_retries:
                    logger.error(f"Completion retries exhausted after {attempt + 1} attempts: {e}")
                    raise CompletionError(
                        f"Completion retries exhausted ({self.max_retries})", e.status_code
                    ) from e

                retry_after = e.response.headers.get("retry-after")
                delay = backoff_delay(attempt, self.backoff_base, retry_after, self.max_backoff)
                requested = parse_retry_after(retry_after)
                if requested is not None and requested > delay:
                    logger.warning(f"Retry-After of {requested:.1f}s capped to {delay:.1f}s")
                logger.warning(
                    f"Completion returned {e.status_code}, retry {attempt + 1}/{self.max_retries} in {delay:.1f}s"
                )
                await self._sleep(delay)

            except openai.APIError as e:
                logger.error(f"Completion request error: {e}")
                raise CompletionError(f"Completion request error: {e}") from e

        # Unreachable: the loop either returns or raises
        raise CompletionError("Completion failed")

    async def complete_with_fallback(self, system: str, prompt: str) -> str:
        """
        Complete, and on refusal retry once with a safer system prompt and a rephrased request.

        Raises:
            RefusalError: if the safer attempt is refused too
        """
        text = await self.complete(system, prompt)
        if not is_refusal(text):
            return text

        logger.warning("Completion looked like a refusal, retrying with safer prompt")
        text = await self.complete(SAFER_SYSTEM_PROMPT, SAFER_PROMPT_PREFIX + prompt)
        if is_refusal(text):
            raise RefusalError("Completion refused after safer retry")
        return text

    async def close(self) -> None:
        close = getattr(self.client, "close", None)
        if close is not None:
            await close()


# Global instance
_completion_client: Optional[CompletionClient] = None


def get_completion_client() -> CompletionClient:
    """Get or create completion client singleton."""
    global _completion_client
    if _completion_client is None:
        settings = get_settings()
        _completion_client = CompletionClient(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            temperature=settings.openai_temperature,
            max_tokens=settings.openai_max_tokens,
            timeout=settings.completion_timeout_seconds,
            max_retries=settings.completion_max_retries,
            backoff_base=settings.completion_backoff_base_seconds,
            max_backoff=settings.completion_max_backoff_seconds,
        )
    return _completion_client


async def close_completion_client() -> None:
    global _completion_client
    if _completion_client is not None:
        await _completion_client.close()
        _completion_client = None
