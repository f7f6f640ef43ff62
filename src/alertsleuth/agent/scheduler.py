"""
agent/scheduler.py — Plan-Execute-Reflect scheduler

    while plan has a PENDING step:
        step = first PENDING step (index order)
        IN_PROGRESS → StepExecutor → COMPLETED (even when the step failed)
        Reflector → apply_updates

add_step appends, so a new step always runs after every step that existed
when it was added. The loop ends when no PENDING step remains, or after
max_step_executions as a guard against update_step ping-pong.
"""

from __future__ import annotations

from typing import Optional

from alertsleuth.agent.events import EventCallback, emit
from alertsleuth.agent.plan import Plan, Reflection, StepResult, StepStatus
from alertsleuth.agent.reflector import Reflector, apply_updates
from alertsleuth.agent.step_executor import StepExecutor
from alertsleuth.observability.logger import get_logger

DEFAULT_MAX_STEP_EXECUTIONS = 32


class PlanScheduler:

    def __init__(
        self,
        executor: StepExecutor,
        reflector: Reflector,
        max_step_executions: int = DEFAULT_MAX_STEP_EXECUTIONS,
        logger=None,
        on_event: Optional[EventCallback] = None,
    ):
        self._executor = executor
        self._reflector = reflector
        self._max_executions = max_step_executions
        self._log = logger or get_logger(__name__)
        self._on_event = on_event

    def run(self, plan: Plan) -> tuple[list[StepResult], list[Reflection]]:
        """Drive the plan to completion. The plan is mutated in place."""
        results: list[StepResult] = []
        reflections: list[Reflection] = []

        while True:
            step = plan.first_pending()
            if step is None:
                break
            if len(results) >= self._max_executions:
                self._log.warning(
                    "scheduler.execution_limit",
                    max_step_executions=self._max_executions,
                    pending=len(plan.descriptions(StepStatus.PENDING)),
                )
                break

            self._log.info("scheduler.step_start", step_id=step.id, description=step.description[:80])
            step.status = StepStatus.IN_PROGRESS
            emit(self._on_event, "step_start", step=step)

            result = self._executor.execute(plan, step, list(results))
            step.status = StepStatus.COMPLETED
            results.append(result)
            emit(self._on_event, "step_done", step=step, result=result)

            reflection = self._reflector.reflect(step, result, plan)
            reflections.append(reflection)
            emit(self._on_event, "reflection", step=step, reflection=reflection)

            if reflection.plan_updates:
                apply_updates(plan, reflection.plan_updates)
                emit(self._on_event, "plan_updated", plan=plan)

            self._log.info(
                "scheduler.step_done",
                step_id=step.id,
                success=result.success,
                achieved=reflection.achieved,
                updates=len(reflection.plan_updates),
            )

        self._log.info("scheduler.done", executed=len(results), total_steps=len(plan.steps))
        return results, reflections
