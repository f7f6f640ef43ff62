"""
agent/session.py — One investigation chat over one alert

ChatSession owns the alert, its History and every agent component, and
routes each analyst message to one of two modes:

    Direct            ConversationLoop over the persisted transcript
    Plan & Execute    PlanGenerator → PlanScheduler → ConclusionGenerator,
                      then the request and the conclusion are appended to
                      the transcript

Any fatal error leaves send() as InvestigationError with the original as
__cause__. Whatever was persisted before the failure stays as it is.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Optional

from alertsleuth.agent.compressor import HistoryCompressor
from alertsleuth.agent.conclusion import ConclusionGenerator
from alertsleuth.agent.conversation import ConversationLoop
from alertsleuth.agent.events import EventCallback, emit
from alertsleuth.agent.history import HistoryStore, generate_title
from alertsleuth.agent.mode_selector import ModeSelector
from alertsleuth.agent.plan import PlanExecuteResult
from alertsleuth.agent.planner import PlanGenerator, format_attributes
from alertsleuth.agent.reflector import Reflector
from alertsleuth.agent.scheduler import PlanScheduler
from alertsleuth.agent.step_executor import StepExecutor
from alertsleuth.brain.llm_client import BaseLLMClient
from alertsleuth.brain.types import Content
from alertsleuth.config.settings import AgentConfig
from alertsleuth.exceptions import InvestigationError, StorageError
from alertsleuth.observability.logger import bind_session, clear_session, get_logger
from alertsleuth.storage.blob import Storage
from alertsleuth.storage.models import Alert, History
from alertsleuth.storage.repository import Repository
from alertsleuth.tools.registry import ToolRegistry

_SESSION_PROMPT = """\
You are an experienced security analyst helping to investigate a security alert.
Answer the analyst's questions about this alert. Use the available tools to
gather evidence before drawing conclusions, and say clearly when the
evidence is insufficient.

## Alert
- ID: {alert_id}
- Title: {alert_title}
- Description: {alert_description}
{attributes}
### Raw alert data
```json
{alert_data}
```
{environment}{tool_prompts}"""


@dataclass
class ChatReply:
    text: str
    plan_execute: bool
    result: Optional[PlanExecuteResult] = None     # Plan & Execute only


def build_system_prompt(alert: Alert, environment_info: str, tool_prompts: str) -> str:
    environment = (
        f"\n## Environment\n{environment_info.strip()}\n" if environment_info.strip() else ""
    )
    return _SESSION_PROMPT.format(
        alert_id=alert.id,
        alert_title=alert.title,
        alert_description=alert.description,
        attributes=format_attributes(alert),
        alert_data=json.dumps(alert.data, indent=2, ensure_ascii=False, default=str),
        environment=environment,
        tool_prompts=f"\n{tool_prompts}\n" if tool_prompts else "",
    )


def completed_entry(objective: str, conclusion: str) -> str:
    return f"## Completed\n\n**Objective**: {objective}\n\n{conclusion}"


class ChatSession:

    def __init__(
        self,
        alert: Alert,
        history: History,
        llm: BaseLLMClient,
        registry: ToolRegistry,
        store: HistoryStore,
        config: Optional[AgentConfig] = None,
        logger=None,
        on_event: Optional[EventCallback] = None,
    ):
        self.alert = alert
        self.history = history
        self._llm = llm
        self._registry = registry
        self._store = store
        self._config = config or AgentConfig()
        self._log = logger or get_logger(__name__)
        self._on_event = on_event

    @classmethod
    def create(
        cls,
        repository: Repository,
        storage: Storage,
        llm: BaseLLMClient,
        registry: ToolRegistry,
        alert_id: str,
        history_id: Optional[str] = None,
        config: Optional[AgentConfig] = None,
        logger=None,
        on_event: Optional[EventCallback] = None,
    ) -> "ChatSession":
        """Load the alert and either resume history_id or start a fresh history."""
        log = logger or get_logger(__name__)
        alert = repository.get_alert(alert_id)
        store = HistoryStore(repository, storage, logger=log)

        if history_id:
            history = store.load(history_id)
            if history.alert_id != alert_id:
                log.warning(
                    "session.history_alert_mismatch",
                    history_id=history_id,
                    history_alert=history.alert_id,
                    alert_id=alert_id,
                )
        else:
            history = History(alert_id=alert_id)

        log.info(
            "session.created",
            alert_id=alert_id,
            history_id=history.id,
            resumed=bool(history_id),
            entries=len(history.contents),
        )
        return cls(alert, history, llm, registry, store, config=config, logger=log, on_event=on_event)

    # ─────────────────────────────────────────────────────────────────────────

    def send(self, message: str) -> ChatReply:
        bind_session(self.history.id, self.alert.id)
        try:
            plan_execute = ModeSelector(self._llm, logger=self._log).should_plan(
                message, self.history.contents
            )
            emit(self._on_event, "mode_selected", plan_execute=plan_execute)

            if not self.history.title:
                self.history.title = generate_title(self._llm, message)

            if plan_execute:
                return self._plan_execute(message)
            return self._direct(message)
        except Exception as e:
            self._log.error("session.send_failed", error=str(e), error_type=type(e).__name__)
            raise InvestigationError(f"investigation failed: {e}") from e
        finally:
            clear_session()

    def _direct(self, message: str) -> ChatReply:
        loop = ConversationLoop(
            self._llm,
            self._registry,
            HistoryCompressor(self._llm, ratio=self._config.compression_ratio, logger=self._log),
            self._store,
            max_iterations=self._config.max_iterations,
            max_compressions=self._config.max_compressions,
            logger=self._log,
            on_event=self._on_event,
        )
        system_prompt = build_system_prompt(
            self.alert, self._config.environment_info, self._registry.prompts()
        )
        result = loop.run(self.history, message, system_prompt)
        return ChatReply(text=result.text, plan_execute=False)

    def _plan_execute(self, message: str) -> ChatReply:
        plan = PlanGenerator(self._llm, self._registry, logger=self._log).generate(
            message, self.alert, self.history.contents
        )
        emit(self._on_event, "plan_created", plan=plan)

        scheduler = PlanScheduler(
            StepExecutor(
                self._llm,
                self._registry,
                max_iterations=self._config.step_max_iterations,
                logger=self._log,
                on_event=self._on_event,
            ),
            Reflector(self._llm, self._registry, logger=self._log),
            max_step_executions=self._config.max_step_executions,
            logger=self._log,
            on_event=self._on_event,
        )
        results, reflections = scheduler.run(plan)
        conclusion = ConclusionGenerator(self._llm, logger=self._log).generate(
            plan, results, reflections
        )

        text = completed_entry(plan.objective, conclusion.content)
        self.history.contents.append(Content.user(message))
        self.history.contents.append(Content.model(text))
        try:
            self._store.save(self.history)
        except StorageError as e:
            self._log.warning("session.save_failed", history_id=self.history.id, error=str(e))

        return ChatReply(
            text=text,
            plan_execute=True,
            result=PlanExecuteResult(
                plan=plan,
                results=results,
                reflections=reflections,
                conclusion=conclusion,
            ),
        )
