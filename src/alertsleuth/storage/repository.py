"""
storage/repository.py — Alert & history metadata repository

Repository is the persistence port for alerts and history metadata.
Transcripts are NOT stored here (see storage/blob.py).

Implementations:
  - JsonFileRepository  one JSON document per record under a data directory
  - InMemoryRepository  dict-backed, for tests and embedding

Both share the same field-path query engine used by search_alerts:
    SearchQuery(field="Data.Severity", operator=">=", value=7)
Documents that lack the field never match, whatever the operator.
"""

from __future__ import annotations

import json
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from alertsleuth.exceptions import AlertNotFoundError, HistoryNotFoundError, StorageError
from alertsleuth.observability.logger import get_logger
from alertsleuth.storage.models import Alert, History

log = get_logger(__name__)

SEARCH_OPERATORS = (
    "==", "!=", "<", "<=", ">", ">=",
    "array-contains", "array-contains-any", "in", "not-in",
)
DEFAULT_SEARCH_LIMIT = 10
MAX_SEARCH_LIMIT = 100

_MISSING = object()


class SearchQuery(BaseModel):
    field: str
    operator: str
    value: Any = None
    limit: int = DEFAULT_SEARCH_LIMIT
    offset: int = 0

    @field_validator("operator")
    @classmethod
    def _known_operator(cls, v: str) -> str:
        if v not in SEARCH_OPERATORS:
            raise ValueError(f"unsupported operator '{v}'. Supported: {list(SEARCH_OPERATORS)}")
        return v

    @field_validator("limit")
    @classmethod
    def _clamp_limit(cls, v: int) -> int:
        if v <= 0:
            return DEFAULT_SEARCH_LIMIT
        return min(v, MAX_SEARCH_LIMIT)

    @field_validator("offset")
    @classmethod
    def _non_negative_offset(cls, v: int) -> int:
        return max(v, 0)


# ─────────────────────────────────────────────────────────────────────────────
# Query engine
# ─────────────────────────────────────────────────────────────────────────────


def _lookup(doc: Any, path: str) -> Any:
    current = doc
    for segment in path.split("."):
        if isinstance(current, dict) and segment in current:
            current = current[segment]
        else:
            return _MISSING
    return current


def _alert_document(alert: Alert) -> dict[str, Any]:
    """Field-path view of an alert. Raw alert data lives under 'Data'."""
    return {
        "ID": alert.id,
        "Title": alert.title,
        "Description": alert.description,
        "Data": alert.data,
    }


def matches(alert: Alert, query: SearchQuery) -> bool:
    actual = _lookup(_alert_document(alert), query.field)
    if actual is _MISSING:
        return False

    op, expected = query.operator, query.value
    try:
        if op == "==":
            return actual == expected
        if op == "!=":
            return actual != expected
        if op == "<":
            return actual < expected
        if op == "<=":
            return actual <= expected
        if op == ">":
            return actual > expected
        if op == ">=":
            return actual >= expected
        if op == "array-contains":
            return isinstance(actual, list) and expected in actual
        if op == "array-contains-any":
            return isinstance(actual, list) and any(v in actual for v in _as_list(expected))
        if op == "in":
            return actual in _as_list(expected)
        if op == "not-in":
            return actual not in _as_list(expected)
    except TypeError:
        # incomparable types never match
        return False
    return False


def _as_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, (list, tuple)) else [value]


def _page(items: list, offset: int, limit: int) -> list:
    return items[offset:offset + limit] if limit > 0 else items[offset:]


# ─────────────────────────────────────────────────────────────────────────────
# Port
# ─────────────────────────────────────────────────────────────────────────────


class Repository(ABC):

    @abstractmethod
    def put_alert(self, alert: Alert) -> None: ...

    @abstractmethod
    def get_alert(self, alert_id: str) -> Alert:
        """Raise AlertNotFoundError when absent."""

    @abstractmethod
    def list_alerts(self, offset: int = 0, limit: int = 0, include_resolved: bool = True) -> list[Alert]:
        """Newest first. limit=0 means no limit."""

    @abstractmethod
    def search_alerts(self, query: SearchQuery) -> list[Alert]: ...

    @abstractmethod
    def put_history(self, history: History) -> None:
        """Store history metadata. The transcript is ignored."""

    @abstractmethod
    def get_history(self, history_id: str) -> History:
        """Raise HistoryNotFoundError when absent. Returned contents are empty."""

    @abstractmethod
    def list_histories(
        self, alert_id: Optional[str] = None, offset: int = 0, limit: int = 0
    ) -> list[History]:
        """Most recently updated first."""


class _DictBackedRepository(Repository):
    """Shared query logic over a full scan of alerts / histories."""

    @abstractmethod
    def _all_alerts(self) -> list[Alert]: ...

    @abstractmethod
    def _all_histories(self) -> list[History]: ...

    def list_alerts(self, offset: int = 0, limit: int = 0, include_resolved: bool = True) -> list[Alert]:
        alerts = sorted(self._all_alerts(), key=lambda a: a.created_at, reverse=True)
        if not include_resolved:
            alerts = [a for a in alerts if not a.is_resolved]
        return _page(alerts, offset, limit)

    def search_alerts(self, query: SearchQuery) -> list[Alert]:
        alerts = sorted(self._all_alerts(), key=lambda a: a.created_at, reverse=True)
        hits = [a for a in alerts if matches(a, query)]
        log.debug(
            "repository.search_alerts",
            field=query.field,
            operator=query.operator,
            hits=len(hits),
        )
        return _page(hits, query.offset, query.limit)

    def list_histories(
        self, alert_id: Optional[str] = None, offset: int = 0, limit: int = 0
    ) -> list[History]:
        histories = sorted(self._all_histories(), key=lambda h: h.updated_at, reverse=True)
        if alert_id is not None:
            histories = [h for h in histories if h.alert_id == alert_id]
        return _page(histories, offset, limit)


# ─────────────────────────────────────────────────────────────────────────────
# Implementations
# ─────────────────────────────────────────────────────────────────────────────


class InMemoryRepository(_DictBackedRepository):

    def __init__(self):
        self._alerts: dict[str, Alert] = {}
        self._histories: dict[str, History] = {}
        self._lock = threading.Lock()

    def put_alert(self, alert: Alert) -> None:
        with self._lock:
            self._alerts[alert.id] = alert.model_copy(deep=True)

    def get_alert(self, alert_id: str) -> Alert:
        with self._lock:
            alert = self._alerts.get(alert_id)
        if alert is None:
            raise AlertNotFoundError(alert_id)
        return alert.model_copy(deep=True)

    def put_history(self, history: History) -> None:
        with self._lock:
            self._histories[history.id] = history.metadata()

    def get_history(self, history_id: str) -> History:
        with self._lock:
            history = self._histories.get(history_id)
        if history is None:
            raise HistoryNotFoundError(history_id)
        return history.model_copy(deep=True)

    def _all_alerts(self) -> list[Alert]:
        with self._lock:
            return [a.model_copy(deep=True) for a in self._alerts.values()]

    def _all_histories(self) -> list[History]:
        with self._lock:
            return [h.model_copy(deep=True) for h in self._histories.values()]


class JsonFileRepository(_DictBackedRepository):
    """
    One JSON document per record:
        <data_dir>/alerts/<id>.json
        <data_dir>/history_meta/<id>.json
    """

    def __init__(self, data_dir: str | Path):
        self._alerts_dir = Path(data_dir) / "alerts"
        self._histories_dir = Path(data_dir) / "history_meta"
        self._alerts_dir.mkdir(parents=True, exist_ok=True)
        self._histories_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    # ── Alerts ────────────────────────────────────────────────────────────────

    def put_alert(self, alert: Alert) -> None:
        self._write(self._record_path(self._alerts_dir, alert.id), alert.model_dump(mode="json"))

    def get_alert(self, alert_id: str) -> Alert:
        path = self._record_path(self._alerts_dir, alert_id)
        if not path.is_file():
            raise AlertNotFoundError(alert_id)
        return self._read(path, Alert)

    def _all_alerts(self) -> list[Alert]:
        return [self._read(p, Alert) for p in sorted(self._alerts_dir.glob("*.json"))]

    # ── Histories ─────────────────────────────────────────────────────────────

    def put_history(self, history: History) -> None:
        meta = history.model_dump(mode="json", exclude={"contents"})
        self._write(self._record_path(self._histories_dir, history.id), meta)

    def get_history(self, history_id: str) -> History:
        path = self._record_path(self._histories_dir, history_id)
        if not path.is_file():
            raise HistoryNotFoundError(history_id)
        return self._read(path, History)

    def _all_histories(self) -> list[History]:
        return [self._read(p, History) for p in sorted(self._histories_dir.glob("*.json"))]

    # ── IO ────────────────────────────────────────────────────────────────────

    @staticmethod
    def _record_path(directory: Path, record_id: str) -> Path:
        """<directory>/<id>.json; ids that resolve outside directory are rejected."""
        path = (directory / f"{record_id}.json").resolve()
        if path.parent != directory.resolve():
            raise StorageError(f"invalid record id: '{record_id}'")
        return path

    def _write(self, path: Path, doc: dict) -> None:
        tmp = path.with_suffix(".json.tmp")
        with self._lock:
            try:
                tmp.write_text(json.dumps(doc, ensure_ascii=False, indent=2), encoding="utf-8")
                tmp.replace(path)
            except OSError as e:
                raise StorageError(f"failed to write {path.name}: {e}") from e

    def _read(self, path: Path, model: type[BaseModel]):
        try:
            return model.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            raise StorageError(f"failed to read {path.name}: {e}") from e

    def __repr__(self) -> str:
        return f"<JsonFileRepository dir={self._alerts_dir.parent}>"
