"""
agent/plan.py — Plan & Execute data models

Plan, Step, StepResult, Reflection and friends. All are pydantic models so
they round-trip through model_dump(mode="json") / model_validate unchanged.

Plan.steps is append-only in spirit: steps are added at the end, replaced in
place or marked CANCELED, never removed or reordered. Step IDs are expected
to be unique within a plan, but nothing enforces it; lookups use the first
match.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StepStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELED = "canceled"


class Step(BaseModel):
    id: str
    description: str
    tools: list[str] = Field(default_factory=list)     # hints only
    expected: str = ""
    status: StepStatus = StepStatus.PENDING


class Plan(BaseModel):
    objective: str
    steps: list[Step] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=_utcnow)

    def first_pending(self) -> Optional[Step]:
        for step in self.steps:
            if step.status == StepStatus.PENDING:
                return step
        return None

    def descriptions(self, status: StepStatus) -> list[str]:
        return [s.description for s in self.steps if s.status == status]


class ToolCallRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    result: str = ""


class StepResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    step_id: str
    success: bool
    findings: str = ""
    tool_calls: tuple[ToolCallRecord, ...] = ()
    executed_at: datetime = Field(default_factory=_utcnow)


class UpdateType(str, Enum):
    ADD_STEP = "add_step"
    UPDATE_STEP = "update_step"
    CANCEL_STEP = "cancel_step"


class PlanUpdate(BaseModel):
    type: UpdateType
    step: Optional[Step] = None         # add_step / update_step
    step_id: str = ""                   # cancel_step
    reason: str = ""


class Reflection(BaseModel):
    step_id: str
    achieved: bool
    insights: list[str] = Field(default_factory=list)
    plan_updates: list[PlanUpdate] = Field(default_factory=list)
    reflected_at: datetime = Field(default_factory=_utcnow)


class Conclusion(BaseModel):
    content: str
    generated_at: datetime = Field(default_factory=_utcnow)


class PlanExecuteResult(BaseModel):
    plan: Plan
    results: list[StepResult] = Field(default_factory=list)
    reflections: list[Reflection] = Field(default_factory=list)
    conclusion: Optional[Conclusion] = None
