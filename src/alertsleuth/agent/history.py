"""
agent/history.py — Conversation history persistence + titles

A History is split across two stores:
  - metadata (id, title, alert_id, timestamps) → Repository
  - transcript (list of Content)               → Storage blob histories/<id>.json

The blob is written first, so a repository record never points at a
transcript that was not stored.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import TypeAdapter, ValidationError

from alertsleuth.brain.llm_client import BaseLLMClient
from alertsleuth.brain.types import Content
from alertsleuth.exceptions import StorageError
from alertsleuth.observability.logger import get_logger
from alertsleuth.storage.blob import Storage
from alertsleuth.storage.models import History
from alertsleuth.storage.repository import Repository

MAX_TITLE_LENGTH = 50

_contents_adapter = TypeAdapter(list[Content])


class HistoryStore:

    def __init__(self, repository: Repository, storage: Storage, logger=None):
        self._repo = repository
        self._storage = storage
        self._log = logger or get_logger(__name__)

    def save(self, history: History) -> None:
        history.updated_at = datetime.now(timezone.utc)
        data = _contents_adapter.dump_json(history.contents, exclude_none=True)

        with self._storage.put(history.blob_key) as writer:
            writer.write(data)
        self._repo.put_history(history)

        self._log.debug(
            "history.saved",
            history_id=history.id,
            entries=len(history.contents),
            bytes=len(data),
        )

    def load(self, history_id: str) -> History:
        history = self._repo.get_history(history_id)
        with self._storage.get(history.blob_key) as reader:
            data = reader.read()
        try:
            history.contents = _contents_adapter.validate_json(data)
        except ValidationError as e:
            raise StorageError(f"corrupt transcript for history '{history_id}': {e}") from e

        self._log.debug("history.loaded", history_id=history_id, entries=len(history.contents))
        return history


def generate_title(llm: BaseLLMClient, message: str) -> str:
    """Short (<= 50 chars) title for a new conversation, from its first message."""
    prompt = (
        f"Generate a short title (max {MAX_TITLE_LENGTH} characters) that summarizes the "
        "following question or topic. Return only the title, nothing else:\n\n" + message
    )
    response = llm.generate_content([Content.user(prompt)])
    if not response.candidates:
        return _fallback_title(message)

    title = "".join(response.candidates[0].content.texts).strip().strip('"')
    if not title:
        return _fallback_title(message)
    return title[:MAX_TITLE_LENGTH]


def _fallback_title(message: str) -> str:
    first_line = message.strip().splitlines()[0] if message.strip() else "Untitled"
    return first_line[:MAX_TITLE_LENGTH]

