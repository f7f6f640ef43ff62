"""
tools/__init__.py — AlertSleuth Tool System

Public interface for the tool system.

Usage:
    from alertsleuth.tools import ToolContext, default_registry

    registry = default_registry()
    registry.init(ToolContext.from_settings(settings, repository=repo))
    result = registry.execute("search_alerts", {...})
"""

from __future__ import annotations

from alertsleuth.tools.alert_search import AlertSearchTool
from alertsleuth.tools.base import BaseTool, ToolContext
from alertsleuth.tools.otx import OTXTool
from alertsleuth.tools.registry import ToolRegistry

__all__ = [
    "AlertSearchTool",
    "BaseTool",
    "OTXTool",
    "ToolContext",
    "ToolRegistry",
    "default_registry",
]


def default_registry(
    enable_alert_search: bool = True,
    enable_otx: bool = True,
) -> ToolRegistry:
    """
    Build a registry holding every built-in tool.

    Tools still decide in init() whether they are enabled (OTX needs an
    API key, alert search needs a repository).
    """
    tools: list[BaseTool] = []
    if enable_alert_search:
        tools.append(AlertSearchTool())
    if enable_otx:
        tools.append(OTXTool())
    return ToolRegistry(tools)
