"""
brain/__init__.py — AlertSleuth LLM Brain
"""

from __future__ import annotations

from typing import Optional

from alertsleuth.brain.llm_client import (
    GEMINI_CONTEXT_LIMIT,
    OPENAI_CONTEXT_LIMIT,
    BaseLLMClient,
    ContextLimitMatcher,
    ResilientLLMClient,
)
from alertsleuth.brain.types import (
    Candidate,
    Content,
    FinishReason,
    FunctionCall,
    FunctionResponse,
    GenerateConfig,
    GenerateResponse,
    Part,
    Provider,
    Role,
    TokenUsage,
    ToolSchema,
)
from alertsleuth.exceptions import LLMConnectionError
from alertsleuth.observability.logger import get_logger

log = get_logger(__name__)

__all__ = [
    "LLMClientFactory",
    "BaseLLMClient",
    "ResilientLLMClient",
    "ContextLimitMatcher",
    "GEMINI_CONTEXT_LIMIT",
    "OPENAI_CONTEXT_LIMIT",
    "Candidate",
    "Content",
    "FinishReason",
    "FunctionCall",
    "FunctionResponse",
    "GenerateConfig",
    "GenerateResponse",
    "Part",
    "Provider",
    "Role",
    "TokenUsage",
    "ToolSchema",
]

# Default models per provider
_DEFAULT_MODELS: dict[str, str] = {
    "gemini": "gemini-2.5-flash",
    "openai": "gpt-4o",
}


class LLMClientFactory:

    @staticmethod
    def create(
        provider: str,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        **kwargs,
    ) -> BaseLLMClient:

        provider = provider.lower().strip()
        model = model or LLMClientFactory.default_model(provider)

        if provider == "gemini":
            if not api_key:
                raise LLMConnectionError("GEMINI_API_KEY is required", provider="gemini")
            from alertsleuth.brain.gemini_client import GeminiClient
            return GeminiClient(api_key=api_key, model=model, **kwargs)

        elif provider == "openai":
            if not api_key:
                raise LLMConnectionError("OPENAI_API_KEY is required", provider="openai")
            from alertsleuth.brain.openai_client import OpenAIClient
            return OpenAIClient(api_key=api_key, model=model, base_url=base_url, **kwargs)

        else:
            raise ValueError(
                f"Unknown LLM provider: '{provider}'. Valid options: gemini, openai"
            )

    @staticmethod
    def from_settings(settings) -> BaseLLMClient:
        """
        Create an LLM client from Settings, wrapped in ResilientLLMClient.

        Reads settings.llm.retry (max_attempts, base_delay, max_delay) and
        settings.llm.fallback_providers to configure retry behaviour and an
        optional failover chain.

        Example config.yaml:
            llm:
              provider: gemini
              model: gemini-2.5-flash
              retry:
                max_attempts: 3
                base_delay: 1.0
                max_delay: 30.0
              fallback_providers:
                - openai      # tried if gemini exhausts retries
        """
        llm = settings.llm
        common = {"temperature": llm.temperature, "max_tokens": llm.max_tokens}

        primary = LLMClientFactory.create(
            provider=llm.provider,
            api_key=settings.api_key(llm.provider),
            model=llm.model,
            base_url=llm.base_url if llm.provider == "openai" else None,
            **common,
        )

        fallbacks: list[BaseLLMClient] = []
        for fp in llm.fallback_providers:
            fp = fp.lower().strip()
            if fp == llm.provider:
                continue
            try:
                fallbacks.append(LLMClientFactory.create(
                    provider=fp,
                    api_key=settings.api_key(fp),
                    **common,
                ))
            except (LLMConnectionError, ValueError) as e:
                log.warning("llm.fallback_skipped", provider=fp, reason=str(e))

        return ResilientLLMClient(
            primary=primary,
            fallbacks=fallbacks,
            max_attempts=llm.retry.max_attempts,
            base_delay=llm.retry.base_delay,
            max_delay=llm.retry.max_delay,
        )

    @staticmethod
    def default_model(provider: str) -> str:
        return _DEFAULT_MODELS.get(provider.lower().strip(), "")
