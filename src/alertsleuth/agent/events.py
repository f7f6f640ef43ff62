"""
agent/events.py — Progress events

Agent components report progress through an optional callback so the CLI can
render it. Event kinds:

    mode_selected      {"plan_execute": bool}
    tool_call          {"name", "args"}
    tool_error         {"name", "error"}
    compressed         {"entries_before", "entries_after"}
    plan_created       {"plan"}
    step_start         {"step"}
    step_done          {"step", "result"}
    reflection         {"step", "reflection"}
    plan_updated       {"plan"}
"""

from __future__ import annotations

from typing import Any, Callable, Optional

EventCallback = Callable[[str, dict[str, Any]], None]


def emit(callback: Optional[EventCallback], kind: str, **data: Any) -> None:
    if callback is not None:
        callback(kind, data)
