"""
agent/mode_selector.py — Direct vs Plan & Execute routing

A cheap classifier call decides whether a new message needs a multi-step
investigation. Only an explicit "yes" selects Plan & Execute; any error or
unexpected answer falls back to Direct mode.
"""

from __future__ import annotations

from typing import Optional

from alertsleuth.brain.llm_client import BaseLLMClient
from alertsleuth.brain.types import Content, GenerateConfig
from alertsleuth.exceptions import LLMError
from alertsleuth.observability.logger import get_logger

MODE_RUBRIC = """\
You route security analyst requests. After the conversation below you will
see a new request. Decide whether it needs a multi-step investigation plan.

Answer "yes" when the request needs several tool calls whose results build
on each other, e.g. correlating related alerts, enriching several indicators
with threat intelligence, or reconstructing a timeline.

Answer "no" when the request is a question about the alert or the
conversation so far, needs at most one or two lookups, or is small talk.

Reply with exactly one word: yes or no."""


class ModeSelector:

    def __init__(self, llm: BaseLLMClient, logger=None):
        self._llm = llm
        self._log = logger or get_logger(__name__)

    def should_plan(self, message: str, history: Optional[list[Content]] = None) -> bool:
        contents = [Content.user(MODE_RUBRIC)] + list(history or []) + [Content.user(message)]
        try:
            response = self._llm.generate_content(contents, GenerateConfig(temperature=0.0))
        except LLMError as e:
            self._log.warning("mode_selector.failed", error=str(e))
            return False

        answer = (response.first_text() or "").strip().lower()
        use_plan = answer == "yes"
        self._log.info("mode_selector.decided", answer=answer[:20], plan_execute=use_plan)
        return use_plan
