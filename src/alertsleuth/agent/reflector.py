"""
agent/reflector.py — Per-step reflection + plan mutation

After every executed step one structured model call judges whether the step
achieved its goal and proposes plan updates:

    add_step     append a new step (always PENDING)
    update_step  replace the first step with the same ID (always PENDING)
    cancel_step  mark the first step with step_id CANCELED

apply_updates() applies them in order and is all-or-nothing: if any update
targets an unknown step, StepNotFoundError is raised and the plan is left
exactly as it was.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from alertsleuth.agent.plan import (
    Plan,
    PlanUpdate,
    Reflection,
    Step,
    StepResult,
    StepStatus,
    UpdateType,
)
from alertsleuth.agent.planner import STEP_SCHEMA, response_json
from alertsleuth.brain.llm_client import BaseLLMClient
from alertsleuth.brain.types import Content, GenerateConfig
from alertsleuth.exceptions import StepNotFoundError, StructuredOutputError
from alertsleuth.observability.logger import get_logger
from alertsleuth.tools.registry import ToolRegistry

REFLECTION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "achieved": {
            "type": "boolean",
            "description": "Whether the step objective was achieved",
        },
        "insights": {
            "type": "array",
            "description": "New insights or discoveries",
            "items": {"type": "string"},
        },
        "plan_updates": {
            "type": "array",
            "description": "List of plan updates",
            "items": {
                "type": "object",
                "properties": {
                    "type": {
                        "type": "string",
                        "description": (
                            "Update type: add_step (add new step), update_step "
                            "(update existing step), or cancel_step (cancel step)"
                        ),
                        "enum": [t.value for t in UpdateType],
                    },
                    "step": {**STEP_SCHEMA, "description": "Step information (for add_step/update_step)"},
                    "step_id": {"type": "string", "description": "Step ID to cancel (for cancel_step)"},
                    "reason": {"type": "string", "description": "Reason for cancellation (for cancel_step)"},
                },
                "required": ["type"],
            },
        },
    },
    "required": ["achieved", "insights", "plan_updates"],
}

_REFLECT_PROMPT = """\
You are reviewing one step of a security alert investigation.

## Step
- ID: {step_id}
- Description: {description}
- Expected outcome: {expected}

## Execution result
- Success: {success}
- Findings:
{findings}

## Tool calls
{tool_calls}

## Available tools
{tools}

## Completed steps
{completed}

## Pending steps
{pending}

## Instructions
Decide whether the step achieved its expected outcome and list any new
insights. Then decide whether the remaining plan should change:
- add_step: a new investigation step is needed (give a new unique ID)
- update_step: a pending step should be rewritten (reuse its ID)
- cancel_step: a pending step is no longer useful (give step_id and reason)
Return an empty plan_updates list when the plan is still right.
Respond with JSON only."""


class _UpdateOut(BaseModel):
    type: UpdateType
    step: Optional[Step] = None
    step_id: str = ""
    reason: str = ""


class _ReflectionOut(BaseModel):
    achieved: bool
    insights: list[str] = Field(default_factory=list)
    plan_updates: list[_UpdateOut] = Field(default_factory=list)


def _bullets(items: list[str]) -> str:
    return "\n".join(f"- {x}" for x in items) if items else "(none)"


def _format_tool_calls(result: StepResult) -> str:
    if not result.tool_calls:
        return "(none)"
    blocks = []
    for i, call in enumerate(result.tool_calls, start=1):
        blocks.append(f"{i}. {call.name}({call.args})\n   Result: {call.result}")
    return "\n".join(blocks)


class Reflector:

    def __init__(self, llm: BaseLLMClient, registry: ToolRegistry, logger=None):
        self._llm = llm
        self._registry = registry
        self._log = logger or get_logger(__name__)

    def reflect(self, step: Step, result: StepResult, plan: Plan) -> Reflection:
        prompt = _REFLECT_PROMPT.format(
            step_id=step.id,
            description=step.description,
            expected=step.expected or "(not specified)",
            success=result.success,
            findings=result.findings or "(no findings)",
            tool_calls=_format_tool_calls(result),
            tools=_bullets(self._registry.enabled_names()),
            completed=_bullets(plan.descriptions(StepStatus.COMPLETED)),
            pending=_bullets(plan.descriptions(StepStatus.PENDING)),
        )
        config = GenerateConfig(
            response_mime_type="application/json",
            response_schema=REFLECTION_SCHEMA,
        )

        response = self._llm.generate_content([Content.user(prompt)], config)
        raw = response_json(response, "reflection")
        try:
            parsed = _ReflectionOut.model_validate_json(raw)
        except ValidationError as e:
            raise StructuredOutputError(f"failed to parse reflection JSON: {e}", raw=raw) from e

        updates = []
        for u in parsed.plan_updates:
            step_out = u.step.model_copy(update={"status": StepStatus.PENDING}) if u.step else None
            updates.append(PlanUpdate(type=u.type, step=step_out, step_id=u.step_id, reason=u.reason))

        reflection = Reflection(
            step_id=step.id,
            achieved=parsed.achieved,
            insights=parsed.insights,
            plan_updates=updates,
        )
        self._log.info(
            "reflector.reflected",
            step_id=step.id,
            achieved=reflection.achieved,
            updates=[u.type.value for u in updates],
        )
        return reflection


def apply_updates(plan: Plan, updates: list[PlanUpdate]) -> None:
    """Apply plan updates in order, atomically. Mutates plan.steps on success only."""
    steps = [s.model_copy(deep=True) for s in plan.steps]

    for update in updates:
        if update.type == UpdateType.ADD_STEP:
            steps.append(_pending_step(update))

        elif update.type == UpdateType.UPDATE_STEP:
            new_step = _pending_step(update)
            index = _find(steps, new_step.id)
            if index < 0:
                raise StepNotFoundError(new_step.id, update.type.value)
            steps[index] = new_step

        elif update.type == UpdateType.CANCEL_STEP:
            index = _find(steps, update.step_id)
            if index < 0:
                raise StepNotFoundError(update.step_id, update.type.value)
            steps[index].status = StepStatus.CANCELED

    plan.steps = steps


def _pending_step(update: PlanUpdate) -> Step:
    if update.step is None:
        raise StructuredOutputError(f"{update.type.value} update has no step")
    return update.step.model_copy(update={"status": StepStatus.PENDING})


def _find(steps: list[Step], step_id: str) -> int:
    for i, step in enumerate(steps):
        if step.id == step_id:
            return i
    return -1
