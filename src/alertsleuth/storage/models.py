"""
storage/models.py — Persisted domain models

Alerts and conversation histories. Both are pydantic models; their wire JSON
is model_dump(mode="json").
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from alertsleuth.brain.types import Content


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_alert_id() -> str:
    return str(uuid.uuid4())


def new_history_id() -> str:
    return str(uuid.uuid4())


# ─────────────────────────────────────────────────────────────────────────────
# Alerts
# ─────────────────────────────────────────────────────────────────────────────


class AttributeType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    IP_ADDRESS = "ip_address"
    DOMAIN = "domain"
    HASH = "hash"
    URL = "url"


class AlertConclusion(str, Enum):
    UNAFFECTED = "unaffected"
    FALSE_POSITIVE = "false_positive"
    TRUE_POSITIVE = "true_positive"
    INCONCLUSIVE = "inconclusive"


class Attribute(BaseModel):
    """A key indicator extracted from the raw alert (IOC or context)."""
    key: str
    value: str
    type: AttributeType = AttributeType.STRING

    def validate_content(self) -> None:
        """Raise ValueError when key or value is blank."""
        if not self.key.strip():
            raise ValueError("attribute key is empty")
        if not self.value.strip():
            raise ValueError(f"attribute '{self.key}' has an empty value")


class Alert(BaseModel):
    id: str = Field(default_factory=new_alert_id)
    title: str = ""
    description: str = ""
    data: Any = None
    attributes: list[Attribute] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    resolved_at: Optional[datetime] = None
    conclusion: str = ""
    note: str = ""
    merged_to: str = ""

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None

    @property
    def is_merged(self) -> bool:
        return bool(self.merged_to)


# ─────────────────────────────────────────────────────────────────────────────
# Conversation history
# ─────────────────────────────────────────────────────────────────────────────


class History(BaseModel):
    """
    One analyst conversation about one alert.

    Metadata is stored in the Repository; `contents` is stored separately as a
    single blob under histories/<id>.json.
    """
    id: str = Field(default_factory=new_history_id)
    title: str = ""
    alert_id: str
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    contents: list[Content] = Field(default_factory=list)

    def metadata(self) -> "History":
        """Copy without the transcript, as stored in the repository."""
        return self.model_copy(update={"contents": []})

    @property
    def blob_key(self) -> str:
        return f"histories/{self.id}.json"
