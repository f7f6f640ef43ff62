"""
agent/step_executor.py — Single plan step execution

Runs one Step in its own short transcript, seeded with
"Execute this step: <description>". The system instruction carries the plan
objective, the step, earlier results and the tool list, plus an iteration
counter the model can see.

Same call / function-call / continue loop as Direct mode, but:
  - no compression and no persistence (contexts are small)
  - a model error ends the step immediately with success=False
"""

from __future__ import annotations

import json
from typing import Optional

from alertsleuth.agent.conversation import invoke_tool, merge_candidates
from alertsleuth.agent.events import EventCallback
from alertsleuth.agent.plan import Plan, Step, StepResult, ToolCallRecord
from alertsleuth.brain.llm_client import BaseLLMClient
from alertsleuth.brain.types import Content, FunctionResponse, GenerateConfig
from alertsleuth.exceptions import LLMError
from alertsleuth.observability.logger import get_logger
from alertsleuth.tools.registry import ToolRegistry

DEFAULT_STEP_MAX_ITERATIONS = 8

_EXECUTE_PROMPT = """\
You are a security analyst executing one step of an investigation plan.

## Objective
{objective}

## Current step
- ID: {step_id}
- Description: {description}
- Expected outcome: {expected}

## Results of previous steps
{previous}

## Tools
{tools}

## Instructions
Use the tools to carry out ONLY the current step. When the step is done, reply
with a concise factual summary of what you found, without calling more tools.
You may call tools at most {max_iterations} times."""


def format_previous_results(results: list[StepResult]) -> str:
    if not results:
        return "(none yet)"
    blocks = []
    for r in results:
        status = "succeeded" if r.success else "failed"
        blocks.append(f"### {r.step_id} ({status})\n{r.findings.strip() or '(no findings)'}")
    return "\n\n".join(blocks)


def record_result(response: FunctionResponse, error: Optional[str]) -> str:
    """String kept in ToolCallRecord.result."""
    if error is not None:
        return f"Error: {error}"
    result = response.response.get("result")
    if isinstance(result, str):
        return result
    return json.dumps(response.response, ensure_ascii=False, default=str)


class StepExecutor:

    def __init__(
        self,
        llm: BaseLLMClient,
        registry: ToolRegistry,
        max_iterations: int = DEFAULT_STEP_MAX_ITERATIONS,
        logger=None,
        on_event: Optional[EventCallback] = None,
    ):
        self._llm = llm
        self._registry = registry
        self._max_iter = max_iterations
        self._log = logger or get_logger(__name__)
        self._on_event = on_event

    def _system_prompt(self, plan: Plan, step: Step, previous_results: list[StepResult]) -> str:
        tool_names = self._registry.enabled_names()
        tools = (
            "The following tools are available:\n" + "\n".join(f"- {n}" for n in tool_names)
            if tool_names else "No tools are available."
        )
        return _EXECUTE_PROMPT.format(
            objective=plan.objective,
            step_id=step.id,
            description=step.description,
            expected=step.expected or "(not specified)",
            previous=format_previous_results(previous_results),
            tools=tools,
            max_iterations=self._max_iter,
        )

    def execute(self, plan: Plan, step: Step, previous_results: list[StepResult]) -> StepResult:
        base_prompt = self._system_prompt(plan, step, previous_results)
        specs = self._registry.specs()
        contents = [Content.user(f"Execute this step: {step.description}")]

        findings: list[str] = []
        tool_calls: list[ToolCallRecord] = []

        for i in range(self._max_iter):
            config = GenerateConfig(
                system_instruction=(
                    f"{base_prompt}\n\n**Current Status**: Tool call iteration {i + 1}/{self._max_iter}"
                ),
                tools=specs,
            )
            try:
                response = self._llm.generate_content(contents, config)
            except LLMError as e:
                self._log.warning("step_executor.model_error", step_id=step.id, error=str(e))
                return StepResult(
                    step_id=step.id,
                    success=False,
                    findings=f"Step execution error: {e}",
                    tool_calls=tuple(tool_calls),
                )

            for candidate in response.candidates:
                findings.extend(candidate.content.texts)

            calls = response.function_calls
            if not calls:
                break

            contents.append(merge_candidates(response))
            responses: list[FunctionResponse] = []
            for call in calls:
                fr, error = invoke_tool(self._registry, call, self._log, self._on_event)
                responses.append(fr)
                tool_calls.append(ToolCallRecord(
                    name=call.name,
                    args=call.args,
                    result=record_result(fr, error),
                ))
            contents.append(Content.tool(responses))
        else:
            self._log.warning("step_executor.iteration_limit", step_id=step.id, max_iterations=self._max_iter)

        self._log.info(
            "step_executor.done",
            step_id=step.id,
            tool_calls=len(tool_calls),
            findings_chars=sum(len(f) for f in findings),
        )
        return StepResult(
            step_id=step.id,
            success=True,
            findings="\n".join(findings),
            tool_calls=tuple(tool_calls),
        )
