"""
brain/types.py — AlertSleuth Brain Data Models

All shared types used across LLM clients and the agent loops.
Providers (Gemini, OpenAI) map their native request/response shapes to and
from these types, so the agent never touches an SDK object.

The transcript is a list of Content entries. Each entry has a role and an
ordered list of Parts; every Part carries exactly one of text, a function
call or a function response.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator


# ─────────────────────────────────────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────────────────────────────────────


class Role(str, Enum):
    USER = "user"
    MODEL = "model"
    TOOL = "tool"           # function responses fed back to the model


class Provider(str, Enum):
    GEMINI = "gemini"
    OPENAI = "openai"


class FinishReason(str, Enum):
    STOP = "stop"               # normal completion
    TOOL_CALLS = "tool_calls"   # model wants to call tools
    LENGTH = "length"           # hit max_tokens
    SAFETY = "safety"           # blocked by provider filters
    ERROR = "error"


# ─────────────────────────────────────────────────────────────────────────────
# Tool calling types
# ─────────────────────────────────────────────────────────────────────────────


class FunctionCall(BaseModel):
    """A single tool invocation requested by the model."""
    name: str = Field(..., description="Tool/function name to call")
    args: dict[str, Any] = Field(default_factory=dict, description="Parsed JSON arguments")
    id: Optional[str] = Field(default=None, description="Provider call ID, if any")


class FunctionResponse(BaseModel):
    """The result of executing a FunctionCall, fed back to the model."""
    name: str
    response: dict[str, Any] = Field(default_factory=dict)
    id: Optional[str] = None    # matches FunctionCall.id


class ToolSchema(BaseModel):
    """
    Provider-agnostic function declaration.
    Clients translate this into provider-specific format (Gemini
    FunctionDeclaration, OpenAI function tool, etc.).
    """
    name: str
    description: str
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )


# ─────────────────────────────────────────────────────────────────────────────
# Transcript types
# ─────────────────────────────────────────────────────────────────────────────


class Part(BaseModel):
    text: Optional[str] = None
    function_call: Optional[FunctionCall] = None
    function_response: Optional[FunctionResponse] = None

    @model_validator(mode="after")
    def _exactly_one(self) -> "Part":
        filled = sum(
            x is not None for x in (self.text, self.function_call, self.function_response)
        )
        if filled != 1:
            raise ValueError("a Part must hold exactly one of text, function_call, function_response")
        return self


class Content(BaseModel):
    """
    A single transcript entry.

    A TOOL entry always directly follows the MODEL entry whose function calls
    it answers, and holds every response of that turn in call order. Only a
    compressed transcript may start its kept suffix with a TOOL entry.
    """
    role: Role
    parts: list[Part] = Field(default_factory=list)

    @classmethod
    def user(cls, text: str) -> "Content":
        return cls(role=Role.USER, parts=[Part(text=text)])

    @classmethod
    def model(cls, text: str) -> "Content":
        return cls(role=Role.MODEL, parts=[Part(text=text)])

    @classmethod
    def tool(cls, responses: list[FunctionResponse]) -> "Content":
        return cls(role=Role.TOOL, parts=[Part(function_response=r) for r in responses])

    @property
    def function_calls(self) -> list[FunctionCall]:
        return [p.function_call for p in self.parts if p.function_call is not None]

    @property
    def texts(self) -> list[str]:
        return [p.text for p in self.parts if p.text]

    def first_text(self) -> Optional[str]:
        for p in self.parts:
            if p.text:
                return p.text
        return None


# ─────────────────────────────────────────────────────────────────────────────
# Request config
# ─────────────────────────────────────────────────────────────────────────────


class GenerateConfig(BaseModel):
    """
    Per-request generation options.
    None means "use the client's default" (model-level settings).
    """
    system_instruction: Optional[str] = None
    tools: list[ToolSchema] = Field(default_factory=list)
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    response_mime_type: Optional[str] = None        # "application/json" for structured calls
    response_schema: Optional[dict[str, Any]] = None


# ─────────────────────────────────────────────────────────────────────────────
# Response
# ─────────────────────────────────────────────────────────────────────────────


class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class Candidate(BaseModel):
    content: Content
    finish_reason: FinishReason = FinishReason.STOP


class GenerateResponse(BaseModel):
    """
    Normalised response from any provider.
    Clients translate provider-specific responses into this shape.
    """
    candidates: list[Candidate] = Field(default_factory=list)
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str = ""
    provider: Optional[Provider] = None

    @property
    def function_calls(self) -> list[FunctionCall]:
        """Every function call across every candidate, in emission order."""
        calls: list[FunctionCall] = []
        for c in self.candidates:
            calls.extend(c.content.function_calls)
        return calls

    @property
    def has_function_calls(self) -> bool:
        return bool(self.function_calls)

    def first_text(self) -> Optional[str]:
        """First non-empty text part of the first candidate."""
        if not self.candidates:
            return None
        return self.candidates[0].content.first_text()
