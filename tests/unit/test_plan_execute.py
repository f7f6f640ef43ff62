"""
tests/unit/test_plan_execute.py — Plan & Execute components

Covers:
  - PlanGenerator: parse, forced PENDING status, structured output errors
  - StepExecutor: tool loop, records, iteration counter, model errors
  - Reflector: parse, forced PENDING updates, structured output errors
  - apply_updates: add / update / cancel, unknown step aborts atomically
  - PlanScheduler: add_step ordering, failed steps still complete, execution cap
  - ConclusionGenerator: first text, empty response
  - Plan JSON round trip
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from alertsleuth.agent.conclusion import ConclusionGenerator
from alertsleuth.agent.plan import (
    Plan,
    PlanUpdate,
    Reflection,
    Step,
    StepResult,
    StepStatus,
    ToolCallRecord,
    UpdateType,
)
from alertsleuth.agent.planner import PLAN_SCHEMA, PlanGenerator
from alertsleuth.agent.reflector import REFLECTION_SCHEMA, Reflector, apply_updates
from alertsleuth.agent.scheduler import PlanScheduler
from alertsleuth.agent.step_executor import StepExecutor, record_result
from alertsleuth.brain.types import Content, FunctionCall, FunctionResponse
from alertsleuth.exceptions import (
    EmptyResponseError,
    LLMConnectionError,
    StepNotFoundError,
    StructuredOutputError,
)

from fakes import (
    ScriptedLLM,
    call_response,
    empty_response,
    json_response,
    text_response,
)


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _plan(*step_ids: str, statuses: dict[str, StepStatus] | None = None) -> Plan:
    statuses = statuses or {}
    return Plan(
        objective="Determine whether the connection is malicious",
        steps=[
            Step(
                id=sid,
                description=f"do {sid}",
                tools=["lookup"],
                expected=f"{sid} done",
                status=statuses.get(sid, StepStatus.PENDING),
            )
            for sid in step_ids
        ],
    )


def _reflection_json(achieved=True, insights=None, updates=None) -> dict:
    return {
        "achieved": achieved,
        "insights": insights or [],
        "plan_updates": updates or [],
    }


def _step_json(sid: str, description: str = "") -> dict:
    return {"id": sid, "description": description or f"do {sid}", "tools": [], "expected": ""}


# ─────────────────────────────────────────────────────────────────────────────
# PlanGenerator
# ─────────────────────────────────────────────────────────────────────────────

class TestPlanGenerator:

    def test_generates_pending_steps(self, registry, alert):
        llm = ScriptedLLM(json_response({
            "objective": "Check the C2 address",
            "steps": [_step_json("step_1"), _step_json("step_2")],
        }))

        plan = PlanGenerator(llm, registry, logger=MagicMock()).generate("is this bad?", alert)

        assert plan.objective == "Check the C2 address"
        assert [s.id for s in plan.steps] == ["step_1", "step_2"]
        assert all(s.status == StepStatus.PENDING for s in plan.steps)

    def test_structured_output_requested(self, registry, alert):
        llm = ScriptedLLM(json_response({"objective": "o", "steps": [_step_json("s1")]}))
        PlanGenerator(llm, registry, logger=MagicMock()).generate("req", alert)

        contents, config = llm.requests[0]
        assert config.response_mime_type == "application/json"
        assert config.response_schema == PLAN_SCHEMA
        prompt = contents[-1].first_text()
        assert "req" in prompt
        assert alert.id in prompt
        assert "**lookup**" in prompt

    def test_prior_transcript_is_prepended(self, registry, alert):
        llm = ScriptedLLM(json_response({"objective": "o", "steps": [_step_json("s1")]}))
        history = [Content.user("earlier"), Content.model("earlier answer")]

        PlanGenerator(llm, registry, logger=MagicMock()).generate("req", alert, history)

        contents, _ = llm.requests[0]
        assert contents[:2] == history
        assert len(contents) == 3

    def test_invalid_json_is_fatal(self, registry, alert):
        llm = ScriptedLLM(text_response("not json at all"))
        with pytest.raises(StructuredOutputError) as exc:
            PlanGenerator(llm, registry, logger=MagicMock()).generate("req", alert)
        assert exc.value.raw == "not json at all"

    def test_empty_response_is_fatal(self, registry, alert):
        with pytest.raises(StructuredOutputError):
            PlanGenerator(ScriptedLLM(empty_response()), registry, logger=MagicMock()).generate("req", alert)

    def test_zero_steps_is_fatal(self, registry, alert):
        llm = ScriptedLLM(json_response({"objective": "o", "steps": []}))
        with pytest.raises(StructuredOutputError, match="no steps"):
            PlanGenerator(llm, registry, logger=MagicMock()).generate("req", alert)


# ─────────────────────────────────────────────────────────────────────────────
# StepExecutor
# ─────────────────────────────────────────────────────────────────────────────

class TestStepExecutor:

    def test_tool_calls_recorded_and_findings_collected(self, registry, tool):
        llm = ScriptedLLM(
            call_response(FunctionCall(name="lookup", args={"ip": "198.51.100.7"})),
            text_response("The IP is listed in 3 pulses."),
        )
        plan = _plan("s1")

        result = StepExecutor(llm, registry, logger=MagicMock()).execute(plan, plan.steps[0], [])

        assert result.success is True
        assert result.step_id == "s1"
        assert result.findings == "The IP is listed in 3 pulses."
        assert result.tool_calls == (
            ToolCallRecord(name="lookup", args={"ip": "198.51.100.7"}, result="lookup ok"),
        )
        assert tool.calls == [("lookup", {"ip": "198.51.100.7"})]

    def test_isolated_transcript_and_iteration_counter(self, registry):
        llm = ScriptedLLM(
            call_response(FunctionCall(name="lookup", args={})),
            text_response("done"),
        )
        plan = _plan("s1")

        StepExecutor(llm, registry, max_iterations=4, logger=MagicMock()).execute(plan, plan.steps[0], [])

        first_contents, first_config = llm.requests[0]
        assert len(first_contents) == 1
        assert first_contents[0].first_text() == "Execute this step: do s1"
        assert first_config.system_instruction.endswith("**Current Status**: Tool call iteration 1/4")
        _, second_config = llm.requests[1]
        assert second_config.system_instruction.endswith("**Current Status**: Tool call iteration 2/4")

    def test_previous_results_in_system_prompt(self, registry):
        llm = ScriptedLLM(text_response("ok"))
        plan = _plan("s1", "s2")
        previous = [StepResult(step_id="s1", success=True, findings="found beacon every 60s")]

        StepExecutor(llm, registry, logger=MagicMock()).execute(plan, plan.steps[1], previous)

        _, config = llm.requests[0]
        assert "found beacon every 60s" in config.system_instruction
        assert plan.objective in config.system_instruction

    def test_model_error_ends_step_unsuccessfully(self, registry):
        llm = ScriptedLLM(
            call_response(FunctionCall(name="lookup", args={})),
            LLMConnectionError("connection reset"),
        )
        plan = _plan("s1")

        result = StepExecutor(llm, registry, logger=MagicMock()).execute(plan, plan.steps[0], [])

        assert result.success is False
        assert result.findings == "Step execution error: connection reset"
        assert len(result.tool_calls) == 1

    def test_iteration_budget_ends_step(self, registry):
        llm = ScriptedLLM(*[call_response(FunctionCall(name="lookup", args={})) for _ in range(2)])
        plan = _plan("s1")

        result = StepExecutor(llm, registry, max_iterations=2, logger=MagicMock()).execute(
            plan, plan.steps[0], []
        )

        assert result.success is True
        assert len(result.tool_calls) == 2
        assert llm.remaining == 0

    def test_unknown_tool_recorded_as_error(self, registry):
        llm = ScriptedLLM(
            call_response(FunctionCall(name="nope", args={})),
            text_response("tool missing"),
        )
        plan = _plan("s1")

        result = StepExecutor(llm, registry, logger=MagicMock()).execute(plan, plan.steps[0], [])

        assert result.tool_calls[0].result == "Error: tool not found"


class TestRecordResult:

    def test_string_result_kept_verbatim(self):
        assert record_result(FunctionResponse(name="t", response={"result": "abc"}), None) == "abc"

    def test_other_payload_serialized(self):
        text = record_result(FunctionResponse(name="t", response={"count": 3}), None)
        assert json.loads(text) == {"count": 3}

    def test_error(self):
        assert record_result(FunctionResponse(name="t", response={}), "boom") == "Error: boom"


# ─────────────────────────────────────────────────────────────────────────────
# Reflector
# ─────────────────────────────────────────────────────────────────────────────

class TestReflector:

    def test_parses_reflection_and_forces_pending(self, registry):
        llm = ScriptedLLM(json_response(_reflection_json(
            achieved=False,
            insights=["host beacons every 60s"],
            updates=[
                {"type": "add_step", "step": {**_step_json("s2"), "status": "completed"}},
                {"type": "cancel_step", "step_id": "s1", "reason": "redundant"},
            ],
        )))
        plan = _plan("s1")
        result = StepResult(step_id="s1", success=True, findings="f")

        reflection = Reflector(llm, registry, logger=MagicMock()).reflect(plan.steps[0], result, plan)

        assert reflection.step_id == "s1"
        assert reflection.achieved is False
        assert reflection.insights == ["host beacons every 60s"]
        assert [u.type for u in reflection.plan_updates] == [UpdateType.ADD_STEP, UpdateType.CANCEL_STEP]
        assert reflection.plan_updates[0].step.status == StepStatus.PENDING
        assert reflection.plan_updates[1].reason == "redundant"

    def test_structured_output_requested(self, registry):
        llm = ScriptedLLM(json_response(_reflection_json()))
        plan = _plan("s1")
        Reflector(llm, registry, logger=MagicMock()).reflect(
            plan.steps[0], StepResult(step_id="s1", success=True), plan
        )
        _, config = llm.requests[0]
        assert config.response_schema == REFLECTION_SCHEMA

    def test_invalid_json_is_fatal(self, registry):
        llm = ScriptedLLM(text_response("{broken"))
        plan = _plan("s1")
        with pytest.raises(StructuredOutputError):
            Reflector(llm, registry, logger=MagicMock()).reflect(
                plan.steps[0], StepResult(step_id="s1", success=True), plan
            )

    def test_unknown_update_type_is_fatal(self, registry):
        llm = ScriptedLLM(json_response(_reflection_json(updates=[{"type": "delete_step", "step_id": "s1"}])))
        plan = _plan("s1")
        with pytest.raises(StructuredOutputError):
            Reflector(llm, registry, logger=MagicMock()).reflect(
                plan.steps[0], StepResult(step_id="s1", success=True), plan
            )


# ─────────────────────────────────────────────────────────────────────────────
# apply_updates
# ─────────────────────────────────────────────────────────────────────────────

class TestApplyUpdates:

    def test_add_appends_pending(self):
        plan = _plan("s1", statuses={"s1": StepStatus.COMPLETED})
        apply_updates(plan, [PlanUpdate(type=UpdateType.ADD_STEP, step=Step(id="s2", description="d"))])
        assert [s.id for s in plan.steps] == ["s1", "s2"]
        assert plan.steps[1].status == StepStatus.PENDING

    def test_update_replaces_first_match_wholesale(self):
        plan = _plan("s1", "s2")
        new = Step(id="s2", description="rewritten", tools=["other"], status=StepStatus.COMPLETED)
        apply_updates(plan, [PlanUpdate(type=UpdateType.UPDATE_STEP, step=new)])
        assert plan.steps[1].description == "rewritten"
        assert plan.steps[1].tools == ["other"]
        assert plan.steps[1].status == StepStatus.PENDING

    def test_cancel_marks_in_place(self):
        plan = _plan("s1", "s2")
        apply_updates(plan, [PlanUpdate(type=UpdateType.CANCEL_STEP, step_id="s2", reason="r")])
        assert [s.status for s in plan.steps] == [StepStatus.PENDING, StepStatus.CANCELED]

    def test_updates_applied_in_order(self):
        plan = _plan("s1")
        apply_updates(plan, [
            PlanUpdate(type=UpdateType.ADD_STEP, step=Step(id="s2", description="d")),
            PlanUpdate(type=UpdateType.CANCEL_STEP, step_id="s2"),
        ])
        assert plan.steps[1].status == StepStatus.CANCELED

    @pytest.mark.parametrize("update", [
        PlanUpdate(type=UpdateType.CANCEL_STEP, step_id="missing"),
        PlanUpdate(type=UpdateType.UPDATE_STEP, step=Step(id="missing", description="d")),
    ])
    def test_unknown_step_aborts_and_leaves_plan_unchanged(self, update):
        plan = _plan("s1", "s2")
        before = plan.model_dump()

        with pytest.raises(StepNotFoundError, match="target step not found"):
            apply_updates(plan, [
                PlanUpdate(type=UpdateType.ADD_STEP, step=Step(id="s3", description="d")),
                PlanUpdate(type=UpdateType.CANCEL_STEP, step_id="s1"),
                update,
            ])

        assert plan.model_dump() == before

    def test_step_bearing_update_without_step(self):
        plan = _plan("s1")
        with pytest.raises(StructuredOutputError):
            apply_updates(plan, [PlanUpdate(type=UpdateType.ADD_STEP)])
        assert len(plan.steps) == 1


# ─────────────────────────────────────────────────────────────────────────────
# PlanScheduler
# ─────────────────────────────────────────────────────────────────────────────

def _executor_stub():
    executor = MagicMock()
    executor.execute.side_effect = lambda plan, step, previous: StepResult(
        step_id=step.id, success=True, findings=f"{step.id} findings"
    )
    return executor


def _reflector_stub(*update_lists):
    """Reflector returning the given update lists in order, then none."""
    queue = list(update_lists)
    reflector = MagicMock()

    def reflect(step, result, plan):
        updates = queue.pop(0) if queue else []
        return Reflection(step_id=step.id, achieved=True, plan_updates=updates)

    reflector.reflect.side_effect = reflect
    return reflector


class TestPlanScheduler:

    def test_added_step_runs_next_then_stops(self):
        executor = _executor_stub()
        reflector = _reflector_stub(
            [PlanUpdate(type=UpdateType.ADD_STEP, step=Step(id="s2", description="follow up"))],
        )
        plan = _plan("s1")

        results, reflections = PlanScheduler(executor, reflector, logger=MagicMock()).run(plan)

        assert [r.step_id for r in results] == ["s1", "s2"]
        assert [r.step_id for r in reflections] == ["s1", "s2"]
        assert [s.status for s in plan.steps] == [StepStatus.COMPLETED, StepStatus.COMPLETED]

    def test_new_steps_run_after_existing_ones(self):
        executor = _executor_stub()
        reflector = _reflector_stub(
            [PlanUpdate(type=UpdateType.ADD_STEP, step=Step(id="s9", description="late"))],
        )
        plan = _plan("s1", "s2", "s3")

        results, _ = PlanScheduler(executor, reflector, logger=MagicMock()).run(plan)

        assert [r.step_id for r in results] == ["s1", "s2", "s3", "s9"]

    def test_canceled_steps_are_skipped(self):
        executor = _executor_stub()
        reflector = _reflector_stub([PlanUpdate(type=UpdateType.CANCEL_STEP, step_id="s2")])
        plan = _plan("s1", "s2", "s3")

        results, _ = PlanScheduler(executor, reflector, logger=MagicMock()).run(plan)

        assert [r.step_id for r in results] == ["s1", "s3"]
        assert plan.steps[1].status == StepStatus.CANCELED

    def test_failed_step_is_still_completed(self):
        executor = MagicMock()
        executor.execute.return_value = StepResult(step_id="s1", success=False, findings="error")
        plan = _plan("s1")

        results, _ = PlanScheduler(executor, _reflector_stub(), logger=MagicMock()).run(plan)

        assert results[0].success is False
        assert plan.steps[0].status == StepStatus.COMPLETED

    def test_step_in_progress_during_execution(self):
        seen = []
        executor = MagicMock()

        def execute(plan, step, previous):
            seen.append(step.status)
            return StepResult(step_id=step.id, success=True)

        executor.execute.side_effect = execute
        PlanScheduler(executor, _reflector_stub(), logger=MagicMock()).run(_plan("s1"))
        assert seen == [StepStatus.IN_PROGRESS]

    def test_previous_results_passed_to_executor(self):
        executor = _executor_stub()
        PlanScheduler(executor, _reflector_stub(), logger=MagicMock()).run(_plan("s1", "s2"))
        second_call = executor.execute.call_args_list[1]
        previous = second_call.args[2]
        assert [r.step_id for r in previous] == ["s1"]

    def test_unknown_step_update_aborts_run(self):
        reflector = _reflector_stub([PlanUpdate(type=UpdateType.CANCEL_STEP, step_id="ghost")])
        with pytest.raises(StepNotFoundError):
            PlanScheduler(_executor_stub(), reflector, logger=MagicMock()).run(_plan("s1", "s2"))

    def test_execution_cap_bounds_update_ping_pong(self):
        executor = _executor_stub()
        reflector = MagicMock()
        reflector.reflect.side_effect = lambda step, result, plan: Reflection(
            step_id=step.id,
            achieved=False,
            plan_updates=[PlanUpdate(type=UpdateType.UPDATE_STEP, step=Step(id=step.id, description="again"))],
        )
        plan = _plan("s1")

        results, _ = PlanScheduler(executor, reflector, max_step_executions=5, logger=MagicMock()).run(plan)

        assert len(results) == 5
        assert plan.steps[0].status == StepStatus.PENDING

    def test_events_emitted(self):
        events = []
        reflector = _reflector_stub(
            [PlanUpdate(type=UpdateType.ADD_STEP, step=Step(id="s2", description="d"))],
        )
        PlanScheduler(
            _executor_stub(), reflector, logger=MagicMock(),
            on_event=lambda kind, data: events.append(kind),
        ).run(_plan("s1"))

        assert events == [
            "step_start", "step_done", "reflection", "plan_updated",
            "step_start", "step_done", "reflection",
        ]


# ─────────────────────────────────────────────────────────────────────────────
# ConclusionGenerator
# ─────────────────────────────────────────────────────────────────────────────

class TestConclusionGenerator:

    def test_uses_first_text(self):
        llm = ScriptedLLM(text_response("## Verdict\nTrue positive."))
        plan = _plan("s1", statuses={"s1": StepStatus.COMPLETED})
        results = [StepResult(step_id="s1", success=True, findings="bad IP")]
        reflections = [Reflection(step_id="s1", achieved=True, insights=["known C2"])]

        conclusion = ConclusionGenerator(llm, logger=MagicMock()).generate(plan, results, reflections)

        assert conclusion.content == "## Verdict\nTrue positive."
        prompt = llm.requests[0][0][0].first_text()
        assert plan.objective in prompt
        assert "bad IP" in prompt
        assert "known C2" in prompt

    def test_no_candidates(self):
        with pytest.raises(EmptyResponseError):
            ConclusionGenerator(ScriptedLLM(empty_response()), logger=MagicMock()).generate(_plan("s1"), [], [])

    def test_no_text(self):
        with pytest.raises(EmptyResponseError):
            ConclusionGenerator(ScriptedLLM(text_response("")), logger=MagicMock()).generate(_plan("s1"), [], [])


# ─────────────────────────────────────────────────────────────────────────────
# JSON shape
# ─────────────────────────────────────────────────────────────────────────────

class TestPlanJson:

    def test_plan_round_trip_keeps_ids_status_and_order(self):
        plan = _plan("s1", "s2", "s3", statuses={
            "s1": StepStatus.COMPLETED, "s2": StepStatus.CANCELED,
        })
        restored = Plan.model_validate_json(plan.model_dump_json())
        assert [(s.id, s.status) for s in restored.steps] == [
            ("s1", StepStatus.COMPLETED), ("s2", StepStatus.CANCELED), ("s3", StepStatus.PENDING),
        ]

    def test_status_wire_values(self):
        doc = json.loads(_plan("s1").model_dump_json())
        assert doc["steps"][0]["status"] == "pending"

    def test_reflection_round_trip(self):
        reflection = Reflection(
            step_id="s1",
            achieved=True,
            insights=["a", "b"],
            plan_updates=[
                PlanUpdate(type=UpdateType.ADD_STEP, step=Step(id="s2", description="d")),
                PlanUpdate(type=UpdateType.CANCEL_STEP, step_id="s3", reason="r"),
            ],
        )
        restored = Reflection.model_validate_json(reflection.model_dump_json())
        assert restored == reflection

    def test_step_result_round_trip(self):
        result = StepResult(
            step_id="s1",
            success=False,
            findings="x",
            tool_calls=(ToolCallRecord(name="lookup", args={"a": 1}, result="r"),),
        )
        assert StepResult.model_validate_json(result.model_dump_json()) == result
