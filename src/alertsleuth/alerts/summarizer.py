"""
alerts/summarizer.py — Alert title / description / attribute extraction

One structured model call turns raw alert JSON into a short title, a 2-3
sentence description and the key attributes (IOCs and context). The result
is validated locally; a rejected summary is retried with the rejection
reasons listed in the prompt, up to MAX_ATTEMPTS times.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from alertsleuth.brain.llm_client import BaseLLMClient
from alertsleuth.brain.types import Content, GenerateConfig
from alertsleuth.exceptions import StructuredOutputError, SummaryValidationError
from alertsleuth.observability.logger import get_logger
from alertsleuth.storage.models import Attribute, AttributeType

MAX_TITLE_LENGTH = 100
MAX_ATTEMPTS = 3

SUMMARY_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "title": {
            "type": "string",
            "description": "Short title for the alert",
            "maxLength": MAX_TITLE_LENGTH,
        },
        "description": {
            "type": "string",
            "description": "Detailed description (2-3 sentences) for the alert",
        },
        "attributes": {
            "type": "array",
            "description": (
                "Most critical attributes essential for investigation: "
                "IOCs and key contextual information only"
            ),
            "items": {
                "type": "object",
                "properties": {
                    "key": {
                        "type": "string",
                        "description": "Attribute name in snake_case (e.g., 'source_ip', 'user_name')",
                    },
                    "value": {"type": "string", "description": "Attribute value as a string"},
                    "type": {
                        "type": "string",
                        "description": (
                            "Most specific attribute type: 'ip_address', 'domain', 'hash', "
                            "'url', 'number', or 'string' for general text"
                        ),
                        "enum": [t.value for t in AttributeType],
                    },
                },
                "required": ["key", "value", "type"],
            },
        },
    },
    "required": ["title", "description", "attributes"],
}

_SUMMARY_PROMPT = """\
You are a security analyst triaging a new alert. Summarise the alert below.

- title: at most {max_title} characters, specific enough to tell this alert apart
- description: 2-3 sentences explaining what happened and why it matters
- attributes: only the indicators and context an investigator needs
  (IP addresses, domains, hashes, URLs, user names, counts)

## Alert data
```json
{alert_data}
```
{failed}"""


class AlertSummary(BaseModel):
    title: str = ""
    description: str = ""
    attributes: list[Attribute] = Field(default_factory=list)

    def validate_content(self) -> None:
        """Raise SummaryValidationError on the first violated bound."""
        if not self.title.strip():
            raise SummaryValidationError("title is empty")
        if len(self.title) > MAX_TITLE_LENGTH:
            raise SummaryValidationError(
                f"title too long ({len(self.title)} > {MAX_TITLE_LENGTH} characters): {self.title!r}"
            )
        if not self.description.strip():
            raise SummaryValidationError("description is empty")
        for attr in self.attributes:
            try:
                attr.validate_content()
            except ValueError as e:
                raise SummaryValidationError(f"invalid attribute: {e}") from e


def _failed_section(failures: list[str]) -> str:
    if not failures:
        return ""
    lines = "\n".join(f"- {f}" for f in failures)
    return (
        "\n## Previous attempts were rejected\n"
        "Do not repeat these mistakes:\n" + lines + "\n"
    )


class AlertSummarizer:

    def __init__(self, llm: BaseLLMClient, max_attempts: int = MAX_ATTEMPTS, logger=None):
        self._llm = llm
        self._max_attempts = max_attempts
        self._log = logger or get_logger(__name__)

    def summarize(self, data: Any) -> AlertSummary:
        alert_data = json.dumps(data, indent=2, ensure_ascii=False, default=str)
        config = GenerateConfig(
            response_mime_type="application/json",
            response_schema=SUMMARY_SCHEMA,
        )
        failures: list[str] = []

        for attempt in range(1, self._max_attempts + 1):
            prompt = _SUMMARY_PROMPT.format(
                max_title=MAX_TITLE_LENGTH,
                alert_data=alert_data,
                failed=_failed_section(failures),
            )
            response = self._llm.generate_content([Content.user(prompt)], config)
            raw = response.first_text()
            if not raw:
                raise StructuredOutputError("empty summary response from model")
            try:
                summary = AlertSummary.model_validate_json(raw)
            except ValidationError as e:
                raise StructuredOutputError(f"failed to parse summary JSON: {e}", raw=raw) from e

            try:
                summary.validate_content()
            except SummaryValidationError as e:
                self._log.warning("summarizer.rejected", attempt=attempt, error=str(e))
                failures.append(str(e))
                continue

            self._log.info(
                "summarizer.accepted",
                attempt=attempt,
                title=summary.title,
                attributes=len(summary.attributes),
            )
            return summary

        raise SummaryValidationError(
            f"failed to generate a valid summary after {self._max_attempts} attempts: "
            + "; ".join(failures)
        )
