"""
agent/planner.py — Investigation plan generator

Turns an analyst request + alert + available tools into an ordered Plan with
one structured (JSON schema) model call. Every step starts PENDING.

Malformed output is fatal (StructuredOutputError); there is no retry.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from alertsleuth.agent.plan import Plan, Step, StepStatus
from alertsleuth.brain.llm_client import BaseLLMClient
from alertsleuth.brain.types import Content, GenerateConfig, GenerateResponse
from alertsleuth.exceptions import StructuredOutputError
from alertsleuth.observability.logger import get_logger
from alertsleuth.storage.models import Alert
from alertsleuth.tools.registry import ToolRegistry

STEP_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": {"type": "string", "description": "Step ID (e.g., step_1)"},
        "description": {"type": "string", "description": "Step description"},
        "tools": {
            "type": "array",
            "description": "List of tools to use",
            "items": {"type": "string"},
        },
        "expected": {"type": "string", "description": "Expected outcome"},
    },
    "required": ["id", "description", "tools", "expected"],
}

PLAN_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "objective": {"type": "string", "description": "Investigation objective"},
        "steps": {
            "type": "array",
            "description": "List of investigation steps",
            "items": STEP_SCHEMA,
        },
    },
    "required": ["objective", "steps"],
}

_PLAN_PROMPT = """\
You are a security analyst planning an investigation of a security alert.

## Analyst request
{request}

## Alert
- ID: {alert_id}
- Title: {alert_title}
- Description: {alert_description}
{attributes}
### Raw alert data
```json
{alert_data}
```

## Available tools
{tools}
{history_note}
## Instructions
Break the request down into a short sequence of concrete investigation steps
(usually 2 to 5). Each step must be executable with the tools above and must
state what outcome it expects. Use IDs step_1, step_2, ... in order.
Respond with JSON only: {{"objective": ..., "steps": [{{"id", "description", "tools", "expected"}}]}}.
"""


class _StepOut(BaseModel):
    id: str
    description: str
    tools: list[str] = Field(default_factory=list)
    expected: str = ""


class _PlanOut(BaseModel):
    objective: str
    steps: list[_StepOut]


def response_json(response: GenerateResponse, what: str) -> str:
    """First text part of the first candidate, or StructuredOutputError."""
    text = response.first_text()
    if not text:
        raise StructuredOutputError(f"empty {what} response from model")
    return text


def format_attributes(alert: Alert) -> str:
    if not alert.attributes:
        return ""
    lines = ["### Attributes"]
    lines.extend(f"- {a.key} ({a.type.value}): {a.value}" for a in alert.attributes)
    return "\n".join(lines) + "\n"


class PlanGenerator:

    def __init__(self, llm: BaseLLMClient, registry: ToolRegistry, logger=None):
        self._llm = llm
        self._registry = registry
        self._log = logger or get_logger(__name__)

    def generate(
        self,
        request: str,
        alert: Alert,
        history: Optional[list[Content]] = None,
    ) -> Plan:
        history = list(history or [])
        prompt = _PLAN_PROMPT.format(
            request=request,
            alert_id=alert.id,
            alert_title=alert.title,
            alert_description=alert.description,
            attributes=format_attributes(alert),
            alert_data=json.dumps(alert.data, indent=2, ensure_ascii=False, default=str),
            tools=self._registry.catalog() or "(no tools available)",
            history_note=(
                "\nThe conversation so far is included above; build on what is already known.\n"
                if history else ""
            ),
        )
        config = GenerateConfig(
            response_mime_type="application/json",
            response_schema=PLAN_SCHEMA,
        )

        response = self._llm.generate_content(history + [Content.user(prompt)], config)
        raw = response_json(response, "plan")
        try:
            parsed = _PlanOut.model_validate_json(raw)
        except ValidationError as e:
            raise StructuredOutputError(f"failed to parse plan JSON: {e}", raw=raw) from e
        if not parsed.steps:
            raise StructuredOutputError("plan has no steps", raw=raw)

        plan = Plan(
            objective=parsed.objective,
            steps=[
                Step(
                    id=s.id,
                    description=s.description,
                    tools=s.tools,
                    expected=s.expected,
                    status=StepStatus.PENDING,
                )
                for s in parsed.steps
            ],
        )
        self._log.info(
            "planner.plan_created",
            objective=plan.objective[:120],
            steps=len(plan.steps),
        )
        return plan
