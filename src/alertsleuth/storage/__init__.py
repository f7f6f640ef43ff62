"""
storage/__init__.py — Alert, history and blob persistence
"""

from __future__ import annotations

from alertsleuth.storage.blob import FileStorage, MemoryStorage, Storage
from alertsleuth.storage.models import Alert, AlertConclusion, Attribute, AttributeType, History
from alertsleuth.storage.repository import (
    InMemoryRepository,
    JsonFileRepository,
    Repository,
    SearchQuery,
)

__all__ = [
    "Alert",
    "AlertConclusion",
    "Attribute",
    "AttributeType",
    "History",
    "Repository",
    "JsonFileRepository",
    "InMemoryRepository",
    "SearchQuery",
    "Storage",
    "FileStorage",
    "MemoryStorage",
]
