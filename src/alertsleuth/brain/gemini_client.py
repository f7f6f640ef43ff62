"""
brain/gemini_client.py — Google Gemini LLM Client

Supports: gemini-2.5-flash, gemini-2.5-pro, gemini-2.0-flash, etc.
Uses the `google-genai` SDK (google.genai), NOT the deprecated
`google-generativeai` package.

Gemini's wire shape is the closest to our own transcript model: roles are
user/model, and function responses travel as user-role parts.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from alertsleuth.brain.llm_client import (
    GEMINI_CONTEXT_LIMIT,
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

_TYPE_MAP = {
    "string": genai_types.Type.STRING,
    "integer": genai_types.Type.INTEGER,
    "number": genai_types.Type.NUMBER,
    "boolean": genai_types.Type.BOOLEAN,
    "array": genai_types.Type.ARRAY,
    "object": genai_types.Type.OBJECT,
}


class GeminiClient(BaseLLMClient):
    """
    Google Gemini API client using the google-genai SDK.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        context_matcher: ContextLimitMatcher = GEMINI_CONTEXT_LIMIT,
    ):
        super().__init__(api_key=api_key)
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._context_matcher = context_matcher
        self._client = genai.Client(api_key=api_key)

    def generate_content(
        self,
        contents: list[Content],
        config: Optional[GenerateConfig] = None,
    ) -> GenerateResponse:
        config = config or GenerateConfig()

        log.debug(
            "gemini.generate.start",
            model=self.model,
            content_count=len(contents),
            has_tools=bool(config.tools),
            structured=bool(config.response_schema),
        )

        try:
            response = self._client.models.generate_content(
                model=self.model,
                contents=self._to_provider_contents(contents),
                config=self._to_provider_config(config),
            )
        except Exception as e:
            self._raise_normalised(e)

        result = self._from_provider_response(response)
        log.debug(
            "gemini.generate.complete",
            model=result.model,
            candidates=len(result.candidates),
            function_calls=len(result.function_calls),
            input_tokens=result.usage.input_tokens,
            output_tokens=result.usage.output_tokens,
        )
        return result

    def health_check(self) -> bool:
        try:
            models = self._client.models.list()
            return any(True for _ in models)
        except Exception as e:
            log.warning("gemini.health_check.failed", error=str(e))
            return False

    def __repr__(self) -> str:
        return f"<GeminiClient model={self.model}>"

    # ── Private helpers ───────────────────────────────────────────────────────

    def _to_provider_contents(self, contents: list[Content]) -> list[genai_types.Content]:
        """Translate transcript entries → Gemini Contents."""
        result: list[genai_types.Content] = []
        for entry in contents:
            parts: list[genai_types.Part] = []
            for p in entry.parts:
                if p.text is not None:
                    parts.append(genai_types.Part(text=p.text))
                elif p.function_call is not None:
                    parts.append(genai_types.Part(
                        function_call=genai_types.FunctionCall(
                            id=p.function_call.id,
                            name=p.function_call.name,
                            args=p.function_call.args,
                        )
                    ))
                elif p.function_response is not None:
                    parts.append(genai_types.Part(
                        function_response=genai_types.FunctionResponse(
                            id=p.function_response.id,
                            name=p.function_response.name,
                            response=p.function_response.response,
                        )
                    ))
            role = "model" if entry.role == Role.MODEL else "user"
            result.append(genai_types.Content(role=role, parts=parts))
        return result

    def _to_provider_config(self, config: GenerateConfig) -> genai_types.GenerateContentConfig:
        temperature = config.temperature if config.temperature is not None else self.temperature
        max_tokens = config.max_tokens if config.max_tokens is not None else self.max_tokens
        return genai_types.GenerateContentConfig(
            system_instruction=config.system_instruction or None,
            temperature=temperature,
            max_output_tokens=max_tokens,
            tools=self._to_provider_tools(config.tools) if config.tools else None,
            response_mime_type=config.response_mime_type,
            response_schema=(
                _to_schema(config.response_schema) if config.response_schema else None
            ),
        )

    def _to_provider_tools(self, tools: list[ToolSchema]) -> list[genai_types.Tool]:
        """Translate ToolSchema list → Gemini FunctionDeclaration format."""
        declarations = [
            genai_types.FunctionDeclaration(
                name=t.name,
                description=t.description,
                parameters=_to_schema(t.parameters),
            )
            for t in tools
        ]
        return [genai_types.Tool(function_declarations=declarations)]

    def _from_provider_response(self, response: Any) -> GenerateResponse:
        """Translate Gemini GenerateContentResponse → internal GenerateResponse."""
        candidates: list[Candidate] = []
        for cand in response.candidates or []:
            parts: list[Part] = []
            raw_parts = cand.content.parts if cand.content and cand.content.parts else []
            for part in raw_parts:
                if getattr(part, "thought", False):
                    continue
                if part.function_call:
                    fc = part.function_call
                    parts.append(Part(function_call=FunctionCall(
                        id=fc.id,
                        name=fc.name,
                        args=dict(fc.args) if fc.args else {},
                    )))
                elif part.text:
                    parts.append(Part(text=part.text))
            if not parts:
                # thought-only or blank; Gemini rejects empty model entries on replay
                log.debug("gemini.candidate_skipped", finish_reason=str(cand.finish_reason))
                continue

            finish_reason = FinishReason.STOP
            if cand.finish_reason:
                reason_str = str(cand.finish_reason).upper()
                if "MAX_TOKENS" in reason_str:
                    finish_reason = FinishReason.LENGTH
                elif "SAFETY" in reason_str:
                    finish_reason = FinishReason.SAFETY
            if any(p.function_call for p in parts):
                finish_reason = FinishReason.TOOL_CALLS

            candidates.append(Candidate(
                content=Content(role=Role.MODEL, parts=parts),
                finish_reason=finish_reason,
            ))

        usage = TokenUsage()
        um = getattr(response, "usage_metadata", None)
        if um:
            usage = TokenUsage(
                input_tokens=getattr(um, "prompt_token_count", 0) or 0,
                output_tokens=getattr(um, "candidates_token_count", 0) or 0,
            )

        return GenerateResponse(
            candidates=candidates,
            usage=usage,
            model=self.model,
            provider=Provider.GEMINI,
        )

    def _raise_normalised(self, exc: Exception) -> None:
        if isinstance(exc, genai_errors.APIError):
            code = exc.code
            status = exc.status
            message = exc.message or str(exc)
            if self._context_matcher.matches(code, status, message):
                raise LLMContextError(message, provider="gemini", status_code=code) from exc
            if code == 429:
                raise LLMRateLimitError(message, provider="gemini") from exc
            if code in (401, 403):
                raise LLMConnectionError(message, provider="gemini", status_code=code) from exc
            if isinstance(exc, genai_errors.ServerError):
                raise LLMConnectionError(message, provider="gemini", status_code=code) from exc
            if code == 400:
                raise LLMInvalidRequestError(message, provider="gemini", status_code=code) from exc
            raise LLMError(message, provider="gemini", status_code=code) from exc
        if isinstance(exc, (httpx.TransportError, ConnectionError, TimeoutError)):
            raise LLMConnectionError(str(exc), provider="gemini") from exc
        raise LLMError(str(exc), provider="gemini") from exc


def _to_schema(spec: dict[str, Any]) -> genai_types.Schema:
    """Convert a JSON-schema dict (the subset our tools use) into a Gemini Schema."""
    kwargs: dict[str, Any] = {
        "type": _TYPE_MAP.get(spec.get("type", "string"), genai_types.Type.STRING),
    }
    if spec.get("description"):
        kwargs["description"] = spec["description"]
    if spec.get("enum"):
        kwargs["enum"] = [str(v) for v in spec["enum"]]
    if "properties" in spec:
        kwargs["properties"] = {
            name: _to_schema(sub) for name, sub in spec["properties"].items()
        }
        if spec.get("required"):
            kwargs["required"] = list(spec["required"])
    if "items" in spec:
        kwargs["items"] = _to_schema(spec["items"])
    return genai_types.Schema(**kwargs)
