"""
agent/conclusion.py — Final investigation narrative

One free-form model call over the objective, the final plan, every step
result and every reflection. The conclusion is the first non-empty text part
of the first candidate.
"""

from __future__ import annotations

from alertsleuth.agent.plan import Conclusion, Plan, Reflection, StepResult
from alertsleuth.brain.llm_client import BaseLLMClient
from alertsleuth.brain.types import Content
from alertsleuth.exceptions import EmptyResponseError
from alertsleuth.observability.logger import get_logger

_CONCLUDE_PROMPT = """\
You are a security analyst writing the conclusion of an alert investigation.

## Objective
{objective}

## Plan
{steps}

## Step results
{results}

## Reflections
{reflections}

## Instructions
Write the final answer to the analyst in markdown:
1. A one-paragraph summary answering the objective.
2. Key evidence, citing the step it came from.
3. Your assessment (e.g. true positive / false positive / needs more data) and why.
4. Recommended next actions.
Only use facts present in the results above."""


def _format_steps(plan: Plan) -> str:
    return "\n".join(
        f"{i}. [{s.status.value}] {s.id}: {s.description}"
        for i, s in enumerate(plan.steps, start=1)
    ) or "(no steps)"


def _format_results(results: list[StepResult]) -> str:
    blocks = []
    for r in results:
        tools = ", ".join(c.name for c in r.tool_calls) or "none"
        blocks.append(
            f"### {r.step_id} (success: {r.success}, tools: {tools})\n"
            f"{r.findings.strip() or '(no findings)'}"
        )
    return "\n\n".join(blocks) or "(no results)"


def _format_reflections(reflections: list[Reflection]) -> str:
    blocks = []
    for r in reflections:
        insights = "\n".join(f"  - {i}" for i in r.insights) or "  - (none)"
        blocks.append(f"- {r.step_id}: achieved={r.achieved}\n{insights}")
    return "\n".join(blocks) or "(no reflections)"


class ConclusionGenerator:

    def __init__(self, llm: BaseLLMClient, logger=None):
        self._llm = llm
        self._log = logger or get_logger(__name__)

    def generate(
        self,
        plan: Plan,
        results: list[StepResult],
        reflections: list[Reflection],
    ) -> Conclusion:
        prompt = _CONCLUDE_PROMPT.format(
            objective=plan.objective,
            steps=_format_steps(plan),
            results=_format_results(results),
            reflections=_format_reflections(reflections),
        )
        response = self._llm.generate_content([Content.user(prompt)])

        if not response.candidates:
            raise EmptyResponseError("model returned no candidates for the conclusion")
        content = response.first_text()
        if not content:
            raise EmptyResponseError("model returned no text for the conclusion")

        self._log.info("conclusion.generated", chars=len(content))
        return Conclusion(content=content)
