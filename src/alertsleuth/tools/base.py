"""
tools/base.py — Tool capability interface

Every tool the model can call subclasses BaseTool. One tool may declare
several functions; the ToolRegistry indexes them by function name.

Lifecycle:
    tool = OTXTool()
    enabled = tool.init(ToolContext(...))   # once, before use
    tool.specs()                            # function declarations for the model
    tool.prompt()                           # extra system-prompt text ("" = none)
    tool.execute("query_otx", {...})        # -> {"result": ...}; raises on failure
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from alertsleuth.brain.types import ToolSchema

if TYPE_CHECKING:
    from alertsleuth.config.settings import Settings
    from alertsleuth.storage.repository import Repository


@dataclass
class ToolContext:
    """Shared resources handed to every tool at init time."""
    repository: Optional["Repository"] = None
    otx_api_key: Optional[str] = None
    otx_base_url: str = "https://otx.alienvault.com/api/v1"
    http_timeout: float = 30.0

    @classmethod
    def from_settings(cls, settings: "Settings", repository: Optional["Repository"] = None) -> "ToolContext":
        return cls(
            repository=repository,
            otx_api_key=settings.otx_api_key,
            otx_base_url=settings.tools.otx.base_url,
            http_timeout=settings.tools.otx.timeout_seconds,
        )


class BaseTool(ABC):
    """Abstract base for model-callable tools."""

    def init(self, context: ToolContext) -> bool:
        """Prepare the tool. Return False to leave it disabled."""
        return True

    @abstractmethod
    def specs(self) -> list[ToolSchema]:
        ...

    def prompt(self) -> str:
        return ""

    @abstractmethod
    def execute(self, name: str, args: dict[str, Any]) -> dict[str, Any]:
        """Run function `name`. Raise on failure; the caller records the error."""
        ...

    def close(self) -> None:
        """Release clients opened in init()."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"
