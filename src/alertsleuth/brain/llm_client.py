"""
brain/llm_client.py — Provider-neutral LLM client contract

GeminiClient and OpenAIClient subclass BaseLLMClient. Each is handed a
ContextLimitMatcher describing how its provider reports an oversized input,
and raises LLMContextError for exactly that failure; the conversation loop
compresses history on that class and nothing else.

ResilientLLMClient layers bounded retry (connection and rate-limit errors)
and ordered provider failover over any set of clients.
"""

from __future__ import annotations

import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from alertsleuth.brain.types import Content, GenerateConfig, GenerateResponse
from alertsleuth.exceptions import (
    LLMConnectionError,
    LLMContextError,
    LLMError,
    LLMInvalidRequestError,
    LLMRateLimitError,
)
from alertsleuth.observability.logger import get_logger

log = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Context-window detection
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ContextLimitMatcher:
    """
    Recognises a provider's "input too long" error from its
    (code, status, message) triple. Unset fields match anything.
    """
    code: Optional[int] = None
    status: Optional[str] = None
    message_prefix: str = ""
    message_contains: str = ""

    def matches(self, code: Optional[int], status: Optional[str], message: str) -> bool:
        if self.code is not None and code != self.code:
            return False
        if self.status is not None and status != self.status:
            return False
        message = message or ""
        if self.message_prefix and not message.startswith(self.message_prefix):
            return False
        if self.message_contains and self.message_contains not in message:
            return False
        return True


GEMINI_CONTEXT_LIMIT = ContextLimitMatcher(
    code=400,
    status="INVALID_ARGUMENT",
    message_prefix="The input token count (",
    message_contains=") exceeds the maximum number of tokens allowed (",
)

OPENAI_CONTEXT_LIMIT = ContextLimitMatcher(
    code=400,
    status="context_length_exceeded",
)


# ─────────────────────────────────────────────────────────────────────────────
# Base client
# ─────────────────────────────────────────────────────────────────────────────


class BaseLLMClient(ABC):
    """
    generate_content() turns a transcript into a GenerateResponse and only
    ever raises LLMError subclasses. health_check() answers whether the
    provider accepts our credentials.
    """

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        self.api_key = api_key
        self.base_url = base_url

    @abstractmethod
    def generate_content(
        self,
        contents: list[Content],
        config: Optional[GenerateConfig] = None,
    ) -> GenerateResponse:
        """Call the model and return a normalised response."""
        ...

    @abstractmethod
    def health_check(self) -> bool:
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"


# ─────────────────────────────────────────────────────────────────────────────
# Retry
# ─────────────────────────────────────────────────────────────────────────────

_TRANSIENT = (LLMConnectionError, LLMRateLimitError)


def _backoff_delay(error: LLMError, attempt: int, base_delay: float, max_delay: float) -> float:
    retry_after = getattr(error, "retry_after", None)
    if retry_after:
        return min(retry_after, max_delay)
    return min(base_delay * (2 ** attempt) + random.uniform(0, 0.5), max_delay)


def _call_with_retry(
    client: BaseLLMClient,
    contents: list[Content],
    config: Optional[GenerateConfig],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    sleep: Callable[[float], None] = time.sleep,
) -> GenerateResponse:
    """
    One generate_content() call, repeated up to max_attempts times while it
    fails with a connection or rate-limit error. Every other LLMError,
    context overflow included, is raised on the first occurrence.

    The wait doubles per attempt (plus up to 0.5s jitter) and never exceeds
    max_delay; a rate-limit error that names retry_after waits that long.
    """
    attempt = 0
    while True:
        try:
            return client.generate_content(contents, config)
        except _TRANSIENT as e:
            if attempt + 1 >= max_attempts:
                raise
            delay = _backoff_delay(e, attempt, base_delay, max_delay)
            log.warning(
                "llm.retrying",
                client=repr(client),
                attempt=attempt + 1,
                max_attempts=max_attempts,
                delay_s=round(delay, 2),
                error_type=type(e).__name__,
                error=str(e),
            )
            sleep(delay)
            attempt += 1


# ─────────────────────────────────────────────────────────────────────────────
# Failover
# ─────────────────────────────────────────────────────────────────────────────


class ResilientLLMClient(BaseLLMClient):
    """
    A primary client plus an ordered list of fallbacks, each called through
    _call_with_retry().

    A client that still fails with a transient (or unclassified) LLMError
    after its retries hands over to the next one. LLMContextError and
    LLMInvalidRequestError are raised straight away: another provider would
    reject the same request, and the conversation loop must see the context
    overflow to compress history.

        client = ResilientLLMClient(gemini_client, fallbacks=[openai_client])
    """

    def __init__(
        self,
        primary: BaseLLMClient,
        fallbacks: Optional[list[BaseLLMClient]] = None,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__()
        self._chain: list[BaseLLMClient] = [primary, *(fallbacks or [])]
        self._retry = {"max_attempts": max_attempts, "base_delay": base_delay, "max_delay": max_delay}
        self._sleep = sleep
        self._active: BaseLLMClient = primary

    @property
    def primary(self) -> BaseLLMClient:
        return self._chain[0]

    def generate_content(
        self,
        contents: list[Content],
        config: Optional[GenerateConfig] = None,
    ) -> GenerateResponse:
        last_error: Optional[LLMError] = None

        for position, client in enumerate(self._chain):
            if last_error is not None:
                log.warning("llm.failing_over", to_client=repr(client), reason=str(last_error))
            try:
                response = _call_with_retry(client, contents, config, sleep=self._sleep, **self._retry)
            except (LLMContextError, LLMInvalidRequestError):
                raise
            except LLMError as e:
                last_error = e
                log.error(
                    "llm.client_exhausted",
                    client=repr(client),
                    error=str(e),
                    has_fallback=position + 1 < len(self._chain),
                )
                continue
            self._active = client
            return response

        if len(self._chain) == 1:
            raise last_error
        raise LLMError(f"All LLM clients failed. Last error: {last_error}", provider="all") from last_error

    def health_check(self) -> bool:
        """Health of the client that served the last successful call."""
        return self._active.health_check()

    def __repr__(self) -> str:
        fallbacks = len(self._chain) - 1
        suffix = f" + {fallbacks} fallback(s)" if fallbacks else ""
        return f"<ResilientLLMClient primary={self.primary!r}{suffix}>"
