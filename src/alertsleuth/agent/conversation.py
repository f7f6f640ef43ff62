"""
agent/conversation.py — Direct mode conversation loop

One bounded tool-calling loop over the session transcript:

    append user entry
    loop (≤ max_iterations):
        call model with transcript + tool specs + system prompt
        context window exceeded → compress transcript, persist, retry (no budget used)
        no function calls       → append final entry, persist, done
        function calls          → append model entry, run every call in order,
                                  append ONE tool entry with all responses
    budget exhausted → persist, raise IterationLimitError

Tool failures never stop the loop: they go back to the model as
{"error": "<message>"} so it can recover.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from alertsleuth.agent.compressor import HistoryCompressor
from alertsleuth.agent.events import EventCallback, emit
from alertsleuth.agent.history import HistoryStore
from alertsleuth.brain.llm_client import BaseLLMClient
from alertsleuth.brain.types import (
    Content,
    FunctionCall,
    FunctionResponse,
    GenerateConfig,
    GenerateResponse,
    Part,
    Role,
)
from alertsleuth.exceptions import (
    CompressionError,
    EmptyResponseError,
    IterationLimitError,
    LLMContextError,
)
from alertsleuth.observability.logger import get_logger
from alertsleuth.storage.models import History
from alertsleuth.tools.registry import ToolRegistry

DEFAULT_MAX_ITERATIONS = 32
DEFAULT_MAX_COMPRESSIONS = 3


@dataclass
class ConversationResult:
    content: Content        # final model entry
    iterations: int         # model calls that counted against the budget
    compressions: int = 0

    @property
    def text(self) -> str:
        return "\n".join(self.content.texts)


def invoke_tool(
    registry: ToolRegistry,
    call: FunctionCall,
    log,
    on_event: Optional[EventCallback] = None,
) -> tuple[FunctionResponse, Optional[str]]:
    """
    Run one function call. Returns (response, error message or None).

    Any exception from the tool becomes {"error": str(exc)}.
    """
    emit(on_event, "tool_call", name=call.name, args=call.args)
    try:
        response = registry.execute(call.name, call.args)
    except Exception as e:
        log.warning("tool.execute_failed", tool=call.name, error=str(e), error_type=type(e).__name__)
        emit(on_event, "tool_error", name=call.name, error=str(e))
        return FunctionResponse(id=call.id, name=call.name, response={"error": str(e)}), str(e)

    log.debug("tool.execute_done", tool=call.name)
    return FunctionResponse(id=call.id, name=call.name, response=response), None


def merge_candidates(response: GenerateResponse) -> Content:
    """All candidates' parts as one model entry, so a single tool entry can answer it."""
    parts: list[Part] = []
    for candidate in response.candidates:
        parts.extend(candidate.content.parts)
    return Content(role=Role.MODEL, parts=parts)


class ConversationLoop:

    def __init__(
        self,
        llm: BaseLLMClient,
        registry: ToolRegistry,
        compressor: HistoryCompressor,
        store: HistoryStore,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        max_compressions: int = DEFAULT_MAX_COMPRESSIONS,
        logger=None,
        on_event: Optional[EventCallback] = None,
    ):
        self._llm = llm
        self._registry = registry
        self._compressor = compressor
        self._store = store
        self._max_iter = max_iterations
        self._max_compressions = max_compressions
        self._log = logger or get_logger(__name__)
        self._on_event = on_event

    def run(self, history: History, message: str, system_prompt: str) -> ConversationResult:
        history.contents.append(Content.user(message))
        config = GenerateConfig(
            system_instruction=system_prompt,
            tools=self._registry.specs(),
        )

        iteration = 0
        compressions = 0
        while iteration < self._max_iter:
            try:
                response = self._llm.generate_content(history.contents, config)
            except LLMContextError as e:
                if compressions >= self._max_compressions:
                    raise CompressionError(
                        f"context window still exceeded after {compressions} compression(s)"
                    ) from e
                compressions += 1
                self._compress(history)
                continue

            iteration += 1
            if not response.candidates:
                raise EmptyResponseError("model returned no candidates")

            calls = response.function_calls
            if not calls:
                final = response.candidates[0].content
                if not final.parts:
                    raise EmptyResponseError("model returned an empty answer")
                history.contents.append(final)
                self._store.save(history)
                self._log.info(
                    "conversation.done",
                    iterations=iteration,
                    compressions=compressions,
                    entries=len(history.contents),
                )
                return ConversationResult(content=final, iterations=iteration, compressions=compressions)

            history.contents.append(merge_candidates(response))
            self._log.info(
                "conversation.tool_calls",
                iteration=iteration,
                tools=[c.name for c in calls],
            )
            responses = [
                invoke_tool(self._registry, call, self._log, self._on_event)[0]
                for call in calls
            ]
            history.contents.append(Content.tool(responses))

        self._store.save(history)
        self._log.warning("conversation.iteration_limit", max_iterations=self._max_iter)
        raise IterationLimitError(
            f"reached max iterations ({self._max_iter}) without a final answer"
        )

    def _compress(self, history: History) -> None:
        before = len(history.contents)
        self._log.warning("conversation.context_exceeded", entries=before)
        history.contents = self._compressor.compress(history.contents)
        self._store.save(history)
        emit(self._on_event, "compressed", entries_before=before, entries_after=len(history.contents))
