"""
tools/alert_search.py — Alert Search Tool

Lets the model look for related alerts by querying fields of the raw alert
data stored in the repository.

Registered functions:
  - search_alerts → field/operator/value query, paginated
"""

from __future__ import annotations

import json
from typing import Any, Optional

from alertsleuth.brain.types import ToolSchema
from alertsleuth.observability.logger import get_logger
from alertsleuth.storage.models import Alert
from alertsleuth.storage.repository import (
    DEFAULT_SEARCH_LIMIT,
    SEARCH_OPERATORS,
    Repository,
    SearchQuery,
)
from alertsleuth.tools.base import BaseTool, ToolContext

log = get_logger(__name__)

_VALUE_TYPES = ("string", "number", "boolean", "array")


class AlertSearchTool(BaseTool):

    def __init__(self, repository: Optional[Repository] = None):
        self._repo = repository

    def init(self, context: ToolContext) -> bool:
        if self._repo is None:
            self._repo = context.repository
        return self._repo is not None

    def specs(self) -> list[ToolSchema]:
        return [ToolSchema(
            name="search_alerts",
            description=(
                'Search alerts by querying fields in the original alert data. '
                'Field paths are automatically prefixed with "Data."'
            ),
            parameters={
                "type": "object",
                "properties": {
                    "field": {
                        "type": "string",
                        "description": (
                            'Field path in alert data (auto-prefixed with "Data."). '
                            "Use dot notation for nested fields. The path must exactly "
                            "match the structure of the alert data. Examples: \"Type\", "
                            '"Severity", "Service.Action.ActionType"'
                        ),
                    },
                    "operator": {
                        "type": "string",
                        "description": "Comparison operator",
                        "enum": list(SEARCH_OPERATORS),
                    },
                    "value": {
                        "type": "string",
                        "description": "Value to compare",
                    },
                    "value_type": {
                        "type": "string",
                        "description": "Type of the value (default: string)",
                        "enum": list(_VALUE_TYPES),
                    },
                    "limit": {
                        "type": "integer",
                        "description": "Max results (default: 10, max: 100)",
                    },
                    "offset": {
                        "type": "integer",
                        "description": "Skip count for pagination (default: 0)",
                    },
                },
                "required": ["field", "operator", "value"],
            },
        )]

    def execute(self, name: str, args: dict[str, Any]) -> dict[str, Any]:
        field = str(args.get("field", "")).strip()
        if not field:
            raise ValueError("field is required")

        value = convert_value(str(args.get("value", "")), args.get("value_type") or "string")
        query = SearchQuery(
            field=f"Data.{field}",
            operator=args.get("operator", "=="),
            value=value,
            limit=int(args.get("limit") or DEFAULT_SEARCH_LIMIT),
            offset=int(args.get("offset") or 0),
        )

        alerts = self._repo.search_alerts(query)
        log.info("tool.search_alerts", field=query.field, operator=query.operator, hits=len(alerts))
        return {"result": format_result(alerts)}


def convert_value(value: str, value_type: str) -> Any:
    """Convert the model's string argument into the requested type."""
    if value_type == "string":
        return value
    if value_type == "number":
        return float(value)
    if value_type == "boolean":
        lowered = value.strip().lower()
        if lowered in ("true", "1", "t"):
            return True
        if lowered in ("false", "0", "f"):
            return False
        raise ValueError(f"failed to parse boolean: '{value}'")
    if value_type == "array":
        parsed = json.loads(value)
        if not isinstance(parsed, list):
            raise ValueError(f"failed to parse array: '{value}'")
        return parsed
    raise ValueError(f"unsupported value_type: '{value_type}'")


def format_result(alerts: list[Alert]) -> str:
    if not alerts:
        return "No alerts found matching the criteria."

    lines = [f"Found {len(alerts)} alert(s):", ""]
    for i, alert in enumerate(alerts, start=1):
        lines.append(f"{i}. ID: {alert.id}")
        lines.append(f"   Title: {alert.title}")
        lines.append(f"   Created: {alert.created_at.strftime('%Y-%m-%d %H:%M:%S')}")
        if alert.description:
            lines.append(f"   Description: {alert.description}")
        lines.append("")
    return "\n".join(lines) + "\n"
