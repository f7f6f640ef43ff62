"""
agent/ — AlertSleuth Investigation Agent

Public API:
    from alertsleuth.agent import ChatSession, ChatReply

Component overview:
    ChatSession          One alert + one history; routes messages by mode
    ModeSelector         Direct vs Plan & Execute classifier
    ConversationLoop     Direct mode tool-calling loop with overflow recovery
    HistoryCompressor    Summarises the oldest part of a transcript
    PlanGenerator        Request + alert → Plan
    StepExecutor         Runs one plan step in an isolated loop
    Reflector            Judges a step and proposes plan updates
    PlanScheduler        Plan → execute → reflect until nothing is pending
    ConclusionGenerator  Final markdown narrative
"""

from alertsleuth.agent.compressor import HistoryCompressor
from alertsleuth.agent.conclusion import ConclusionGenerator
from alertsleuth.agent.conversation import ConversationLoop, ConversationResult
from alertsleuth.agent.history import HistoryStore, generate_title
from alertsleuth.agent.mode_selector import ModeSelector
from alertsleuth.agent.plan import (
    Conclusion,
    Plan,
    PlanExecuteResult,
    PlanUpdate,
    Reflection,
    Step,
    StepResult,
    StepStatus,
    ToolCallRecord,
    UpdateType,
)
from alertsleuth.agent.planner import PlanGenerator
from alertsleuth.agent.reflector import Reflector, apply_updates
from alertsleuth.agent.scheduler import PlanScheduler
from alertsleuth.agent.session import ChatReply, ChatSession
from alertsleuth.agent.step_executor import StepExecutor

__all__ = [
    "ChatSession",
    "ChatReply",
    "ModeSelector",
    "ConversationLoop",
    "ConversationResult",
    "HistoryCompressor",
    "HistoryStore",
    "generate_title",
    "PlanGenerator",
    "StepExecutor",
    "Reflector",
    "apply_updates",
    "PlanScheduler",
    "ConclusionGenerator",
    "Plan",
    "Step",
    "StepStatus",
    "StepResult",
    "ToolCallRecord",
    "PlanUpdate",
    "UpdateType",
    "Reflection",
    "Conclusion",
    "PlanExecuteResult",
]
