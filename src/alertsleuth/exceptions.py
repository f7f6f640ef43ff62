"""
exceptions.py — AlertSleuth Unified Error Hierarchy

All AlertSleuth-specific exceptions live here. Every layer of the stack
raises typed subclasses of AlertSleuthError — never bare Exception.

Import from here, not from individual modules:
    from alertsleuth.exceptions import StepNotFoundError, LLMContextError

Hierarchy:
    AlertSleuthError
    ├── AgentError
    │   ├── InvestigationError
    │   ├── IterationLimitError
    │   ├── CompressionError
    │   ├── StructuredOutputError
    │   ├── EmptyResponseError
    │   └── SchedulerInvariantError
    │       └── StepNotFoundError
    ├── ToolError
    │   └── ToolNotFoundError
    ├── SummaryValidationError
    ├── AlertMergeError
    ├── StorageError
    │   ├── AlertNotFoundError
    │   └── HistoryNotFoundError
    └── LLMError
        ├── LLMConnectionError
        ├── LLMRateLimitError
        ├── LLMContextError
        └── LLMInvalidRequestError
"""

from __future__ import annotations

from typing import Optional


# ─────────────────────────────────────────────────────────────────────────────
# Root
# ─────────────────────────────────────────────────────────────────────────────

class AlertSleuthError(Exception):
    """Base class for all AlertSleuth exceptions."""


# ─────────────────────────────────────────────────────────────────────────────
# Agent layer
# ─────────────────────────────────────────────────────────────────────────────

class AgentError(AlertSleuthError):
    """Base for agent control-loop errors."""


class InvestigationError(AgentError):
    """A chat turn failed. The original error is kept as __cause__."""


class IterationLimitError(AgentError):
    """The tool-calling loop hit max_iterations without a final answer."""


class CompressionError(AgentError):
    """History compression could not produce a smaller transcript."""


class StructuredOutputError(AgentError):
    """The model returned malformed or empty JSON for a structured call."""

    def __init__(self, message: str, raw: str = "") -> None:
        super().__init__(message)
        self.raw = raw


class EmptyResponseError(AgentError):
    """The model returned no candidate or no text where text was required."""


class SchedulerInvariantError(AgentError):
    """A plan mutation violated a scheduler invariant."""


class StepNotFoundError(SchedulerInvariantError):
    """A plan update referenced a step ID that is not in the plan."""

    def __init__(self, step_id: str, update_type: str) -> None:
        self.step_id = step_id
        self.update_type = update_type
        super().__init__(f"target step not found for {update_type}: '{step_id}'")


# ─────────────────────────────────────────────────────────────────────────────
# Tool layer
# ─────────────────────────────────────────────────────────────────────────────

class ToolError(AlertSleuthError):
    """A tool failed to execute. Always recorded as data, never fatal."""


class ToolNotFoundError(ToolError):
    """Requested function name is not registered in the ToolRegistry."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__("tool not found")


# ─────────────────────────────────────────────────────────────────────────────
# Validation
# ─────────────────────────────────────────────────────────────────────────────

class SummaryValidationError(AlertSleuthError):
    """Generated alert summary violates a length or content bound."""


class AlertMergeError(AlertSleuthError):
    """An alert cannot be merged into the requested target."""


# ─────────────────────────────────────────────────────────────────────────────
# Storage layer
# ─────────────────────────────────────────────────────────────────────────────

class StorageError(AlertSleuthError):
    """Base for repository / blob storage errors."""


class AlertNotFoundError(StorageError):
    def __init__(self, alert_id: str) -> None:
        self.alert_id = alert_id
        super().__init__(f"alert not found: '{alert_id}'")


class HistoryNotFoundError(StorageError):
    def __init__(self, history_id: str) -> None:
        self.history_id = history_id
        super().__init__(f"history not found: '{history_id}'")


# ─────────────────────────────────────────────────────────────────────────────
# LLM layer
# ─────────────────────────────────────────────────────────────────────────────

class LLMError(AlertSleuthError):
    """Base exception for all LLM client errors."""

    def __init__(self, message: str, provider: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class LLMConnectionError(LLMError):
    """Provider unreachable or authentication failed."""


class LLMRateLimitError(LLMError):
    """Rate limit hit — retry with exponential backoff."""

    def __init__(self, message: str, provider: str = "", retry_after: Optional[float] = None):
        super().__init__(message, provider)
        self.retry_after = retry_after


class LLMContextError(LLMError):
    """Input exceeds the model context window."""


class LLMInvalidRequestError(LLMError):
    """Bad request — invalid parameters or unsupported feature."""


__all__ = [
    "AlertSleuthError",
    # Agent
    "AgentError",
    "InvestigationError",
    "IterationLimitError",
    "CompressionError",
    "StructuredOutputError",
    "EmptyResponseError",
    "SchedulerInvariantError",
    "StepNotFoundError",
    # Tool
    "ToolError",
    "ToolNotFoundError",
    # Validation
    "SummaryValidationError",
    # Storage
    "StorageError",
    "AlertNotFoundError",
    "HistoryNotFoundError",
    # LLM
    "LLMError",
    "LLMConnectionError",
    "LLMRateLimitError",
    "LLMContextError",
    "LLMInvalidRequestError",
]
