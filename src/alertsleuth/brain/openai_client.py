"""
brain/openai_client.py — OpenAI LLM Client

Supports: GPT-4o, GPT-4.1, and any OpenAI-compatible endpoint.
Handles tool calling, structured JSON output, token counting and error
normalisation.

OpenAI needs a tool_call_id on every tool message. Transcripts produced by
other providers may carry calls without IDs, so IDs are synthesised from the
entry position and re-derived for the matching tool entry.
"""

from __future__ import annotations

import json
from typing import Any, Optional

import openai
from openai import OpenAI

from alertsleuth.brain.llm_client import (
    OPENAI_CONTEXT_LIMIT,
    BaseLLMClient,
    ContextLimitMatcher,
)
from alertsleuth.brain.types import (
    Candidate,
    Content,
    FinishReason,
    FunctionCall,
    GenerateConfig,
    GenerateResponse,
    Part,
    Provider,
    Role,
    TokenUsage,
    ToolSchema,
)
from alertsleuth.exceptions import (
    LLMConnectionError,
    LLMContextError,
    LLMError,
    LLMInvalidRequestError,
    LLMRateLimitError,
)
from alertsleuth.observability.logger import get_logger

log = get_logger(__name__)


class OpenAIClient(BaseLLMClient):
    """
    OpenAI API client (also works with any OpenAI-compatible endpoint
    e.g. LiteLLM proxy, local vLLM, etc.).
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        base_url: Optional[str] = None,     # None = official OpenAI endpoint
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout_seconds: float = 120.0,
        context_matcher: ContextLimitMatcher = OPENAI_CONTEXT_LIMIT,
    ):
        super().__init__(api_key=api_key, base_url=base_url)
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._context_matcher = context_matcher
        self._client = OpenAI(api_key=api_key, base_url=base_url, timeout=timeout_seconds)

    # ── Public API ────────────────────────────────────────────────────────────

    def generate_content(
        self,
        contents: list[Content],
        config: Optional[GenerateConfig] = None,
    ) -> GenerateResponse:
        config = config or GenerateConfig()
        messages = self._to_provider_messages(contents, config.system_instruction)

        kwargs: dict[str, Any] = {"model": self.model, "messages": messages}
        if config.tools:
            kwargs["tools"] = self._to_provider_tools(config.tools)
            kwargs["tool_choice"] = "auto"
        temperature = config.temperature if config.temperature is not None else self.temperature
        if temperature is not None:
            kwargs["temperature"] = temperature
        max_tokens = config.max_tokens if config.max_tokens is not None else self.max_tokens
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        if config.response_schema:
            kwargs["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": "response", "schema": config.response_schema},
            }
        elif config.response_mime_type == "application/json":
            kwargs["response_format"] = {"type": "json_object"}

        log.debug(
            "openai.generate.start",
            model=self.model,
            message_count=len(messages),
            has_tools=bool(config.tools),
        )

        try:
            response = self._client.chat.completions.create(**kwargs)
        except openai.AuthenticationError as e:
            raise LLMConnectionError(str(e), provider="openai", status_code=401) from e
        except openai.RateLimitError as e:
            raise LLMRateLimitError(str(e), provider="openai") from e
        except openai.BadRequestError as e:
            if self._context_matcher.matches(e.status_code, getattr(e, "code", None), e.message):
                raise LLMContextError(e.message, provider="openai", status_code=e.status_code) from e
            raise LLMInvalidRequestError(str(e), provider="openai", status_code=e.status_code) from e
        except openai.APIConnectionError as e:
            raise LLMConnectionError(str(e), provider="openai") from e
        except openai.InternalServerError as e:
            raise LLMConnectionError(str(e), provider="openai", status_code=e.status_code) from e
        except openai.APIError as e:
            raise LLMError(str(e), provider="openai", status_code=getattr(e, "status_code", None)) from e

        result = self._from_provider_response(response)
        log.debug(
            "openai.generate.complete",
            model=result.model,
            input_tokens=result.usage.input_tokens,
            output_tokens=result.usage.output_tokens,
            function_calls=len(result.function_calls),
        )
        return result

    def health_check(self) -> bool:
        try:
            self._client.models.list()
            return True
        except openai.OpenAIError as e:
            log.warning("openai.health_check.failed", error=str(e), error_type=type(e).__name__)
            return False

    def __repr__(self) -> str:
        return f"<OpenAIClient model={self.model}>"

    # ── Private helpers ───────────────────────────────────────────────────────

    def _to_provider_messages(
        self, contents: list[Content], system_instruction: Optional[str]
    ) -> list[dict]:
        """Translate transcript entries → OpenAI chat message format."""
        result: list[dict] = []
        if system_instruction:
            result.append({"role": "system", "content": system_instruction})

        pending_ids: list[str] = []
        for index, entry in enumerate(contents):
            if entry.role == Role.USER:
                result.append({"role": "user", "content": "\n".join(entry.texts)})
                pending_ids = []

            elif entry.role == Role.MODEL:
                msg: dict = {"role": "assistant", "content": "\n".join(entry.texts) or None}
                calls = entry.function_calls
                pending_ids = [
                    fc.id or f"call_{index}_{k}" for k, fc in enumerate(calls)
                ]
                if calls:
                    msg["tool_calls"] = [
                        {
                            "id": call_id,
                            "type": "function",
                            "function": {"name": fc.name, "arguments": json.dumps(fc.args)},
                        }
                        for call_id, fc in zip(pending_ids, calls)
                    ]
                result.append(msg)

            elif entry.role == Role.TOOL:
                responses = [p.function_response for p in entry.parts if p.function_response]
                if not pending_ids:
                    # Calls summarised away by compression: OpenAI rejects tool
                    # messages without a preceding tool_calls message.
                    result.append({
                        "role": "user",
                        "content": "\n".join(
                            f"Result of {fr.name}: {json.dumps(fr.response, ensure_ascii=False)}"
                            for fr in responses
                        ),
                    })
                    continue
                for k, fr in enumerate(responses):
                    call_id = fr.id or (pending_ids[k] if k < len(pending_ids) else f"call_{index}_{k}")
                    result.append({
                        "role": "tool",
                        "tool_call_id": call_id,
                        "content": json.dumps(fr.response, ensure_ascii=False),
                    })
                pending_ids = []
        return result

    def _to_provider_tools(self, tools: list[ToolSchema]) -> list[dict]:
        """Translate internal ToolSchema list → OpenAI function tool format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": t.name,
                    "description": t.description,
                    "parameters": t.parameters,
                },
            }
            for t in tools
        ]

    def _from_provider_response(self, response: Any) -> GenerateResponse:
        """Translate OpenAI ChatCompletion → internal GenerateResponse."""
        finish_map = {
            "stop": FinishReason.STOP,
            "tool_calls": FinishReason.TOOL_CALLS,
            "length": FinishReason.LENGTH,
            "content_filter": FinishReason.SAFETY,
        }
        candidates: list[Candidate] = []
        for choice in response.choices:
            msg = choice.message
            parts: list[Part] = []
            if msg.content:
                parts.append(Part(text=msg.content))
            for tc in msg.tool_calls or []:
                try:
                    args = json.loads(tc.function.arguments or "{}")
                except json.JSONDecodeError:
                    args = {"_raw": tc.function.arguments}
                parts.append(Part(function_call=FunctionCall(
                    id=tc.id,
                    name=tc.function.name,
                    args=args,
                )))
            candidates.append(Candidate(
                content=Content(role=Role.MODEL, parts=parts),
                finish_reason=finish_map.get(choice.finish_reason or "stop", FinishReason.STOP),
            ))

        usage = TokenUsage(
            input_tokens=response.usage.prompt_tokens if response.usage else 0,
            output_tokens=response.usage.completion_tokens if response.usage else 0,
        )

        return GenerateResponse(
            candidates=candidates,
            usage=usage,
            model=response.model,
            provider=Provider.OPENAI,
        )
