"""
tools/registry.py — Tool Registry

Central registry for all tools available to the agent.

The registry is built once from an ordered list of tools. init() asks each
tool whether it is enabled and indexes every function it declares:

  - name → tool (a later tool silently wins a name collision)
  - name → ToolSchema (the declaration sent to the model)

Usage:
    registry = ToolRegistry([AlertSearchTool(), OTXTool()])
    registry.init(ToolContext(repository=repo, otx_api_key=key))

    registry.specs()                  # function declarations for the model
    registry.prompts()                # tool prompts for the system instruction
    registry.execute("search_alerts", {"field": "Severity", ...})
"""

from __future__ import annotations

from typing import Any, Optional

from alertsleuth.brain.types import ToolSchema
from alertsleuth.exceptions import ToolNotFoundError
from alertsleuth.observability.logger import get_logger
from alertsleuth.tools.base import BaseTool, ToolContext


class ToolRegistry:
    """
    Registry that maps function names to the tool that serves them.

    Not designed for concurrent writes; init() is called once at startup.
    """

    def __init__(self, tools: Optional[list[BaseTool]] = None, logger=None):
        self._all_tools: list[BaseTool] = list(tools or [])
        self._enabled: list[BaseTool] = []
        self._by_name: dict[str, BaseTool] = {}
        self._schemas: dict[str, ToolSchema] = {}
        self._log = logger or get_logger(__name__)

    def add_tool(self, tool: BaseTool) -> None:
        """Add a tool before init()."""
        self._all_tools.append(tool)

    def init(self, context: ToolContext) -> None:
        """Initialise every tool and index the enabled ones."""
        self._enabled = []
        self._by_name = {}
        self._schemas = {}

        for tool in self._all_tools:
            if not tool.init(context):
                self._log.debug("tool.disabled", tool=repr(tool))
                continue
            self._enabled.append(tool)
            for schema in tool.specs():
                previous = self._by_name.get(schema.name)
                if previous is not None and previous is not tool:
                    self._log.debug(
                        "tool.name_overridden",
                        function=schema.name,
                        previous=repr(previous),
                        winner=repr(tool),
                    )
                self._by_name[schema.name] = tool
                self._schemas[schema.name] = schema
                self._log.debug("tool.registered", function=schema.name, tool=repr(tool))

    # ── Queries ───────────────────────────────────────────────────────────────

    def specs(self) -> list[ToolSchema]:
        """De-duplicated function declarations of every enabled tool."""
        return list(self._schemas.values())

    def prompts(self) -> str:
        """Non-empty prompts of enabled tools, in registration order."""
        parts = [p for p in (t.prompt() for t in self._enabled) if p]
        return "\n\n".join(parts)

    def enabled_names(self) -> list[str]:
        return list(self._by_name.keys())

    def tools(self) -> list[BaseTool]:
        """Enabled tools that still serve at least one function name."""
        seen: list[BaseTool] = []
        for tool in self._by_name.values():
            if not any(tool is s for s in seen):
                seen.append(tool)
        return seen

    def catalog(self) -> str:
        """Markdown bullet list of available functions, used by planning prompts."""
        lines = []
        for schema in self._schemas.values():
            desc = schema.description or "(no description)"
            lines.append(f"- **{schema.name}**: {desc}")
        return "\n".join(lines)

    def is_registered(self, name: str) -> bool:
        return name in self._by_name

    # ── Dispatch ──────────────────────────────────────────────────────────────

    def execute(self, name: str, args: dict[str, Any]) -> dict[str, Any]:
        """Run a function by name. No retry, no timeout."""
        tool = self._by_name.get(name)
        if tool is None:
            raise ToolNotFoundError(name)
        return tool.execute(name, args)

    def close(self) -> None:
        for tool in self._enabled:
            tool.close()

    def __len__(self) -> int:
        return len(self._by_name)

    def __repr__(self) -> str:
        return f"<ToolRegistry functions={list(self._by_name.keys())}>"
