"""
tests/unit/test_storage.py — Repository, blob storage and history persistence

Covers:
  - SearchQuery validation and the field-path query engine
  - InMemoryRepository / JsonFileRepository: CRUD, ordering, not-found errors,
    record ids confined to their directory
  - FileStorage: atomic writes, key escape protection
  - HistoryStore: save / load round trip, corrupt transcript
  - generate_title: quotes stripped, truncated, fallback
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from alertsleuth.agent.history import MAX_TITLE_LENGTH, HistoryStore, generate_title
from alertsleuth.brain.types import Content, FunctionCall, FunctionResponse, Part, Role
from alertsleuth.exceptions import AlertNotFoundError, HistoryNotFoundError, StorageError
from alertsleuth.storage.blob import FileStorage, MemoryStorage
from alertsleuth.storage.models import Alert, Attribute, History
from alertsleuth.storage.repository import (
    DEFAULT_SEARCH_LIMIT,
    MAX_SEARCH_LIMIT,
    InMemoryRepository,
    JsonFileRepository,
    SearchQuery,
    matches,
    _DictBackedRepository,
)

from fakes import ScriptedLLM, empty_response, text_response


def _alert(data, minutes_ago: int = 0, **kwargs) -> Alert:
    return Alert(
        title=kwargs.pop("title", "t"),
        data=data,
        created_at=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
        **kwargs,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Query engine
# ─────────────────────────────────────────────────────────────────────────────

class TestSearchQuery:

    def test_limit_defaults_and_clamps(self):
        assert SearchQuery(field="Data.x", operator="==", limit=0).limit == DEFAULT_SEARCH_LIMIT
        assert SearchQuery(field="Data.x", operator="==", limit=-3).limit == DEFAULT_SEARCH_LIMIT
        assert SearchQuery(field="Data.x", operator="==", limit=500).limit == MAX_SEARCH_LIMIT

    def test_unknown_operator_rejected(self):
        with pytest.raises(ValidationError):
            SearchQuery(field="Data.x", operator="~=", value=1)


class TestMatches:

    alert = _alert({"severity": 7, "tags": ["c2", "beacon"], "src": {"ip": "10.0.0.5"}})

    @pytest.mark.parametrize("field, op, value, expected", [
        ("Data.severity", "==", 7, True),
        ("Data.severity", "!=", 7, False),
        ("Data.severity", ">=", 7, True),
        ("Data.severity", ">", 7, False),
        ("Data.severity", "<", 10, True),
        ("Data.src.ip", "==", "10.0.0.5", True),
        ("Data.tags", "array-contains", "c2", True),
        ("Data.tags", "array-contains-any", ["x", "beacon"], True),
        ("Data.severity", "in", [1, 7], True),
        ("Data.severity", "not-in", [1, 7], False),
        ("Title", "==", "t", True),
    ])
    def test_operators(self, field, op, value, expected):
        assert matches(self.alert, SearchQuery(field=field, operator=op, value=value)) is expected

    def test_missing_field_never_matches(self):
        assert matches(self.alert, SearchQuery(field="Data.nope", operator="!=", value=1)) is False
        assert matches(self.alert, SearchQuery(field="Data.nope", operator="not-in", value=[1])) is False

    def test_incomparable_types_do_not_match(self):
        assert matches(self.alert, SearchQuery(field="Data.severity", operator=">", value="high")) is False


# ─────────────────────────────────────────────────────────────────────────────
# Repositories
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture(params=["memory", "json"])
def any_repo(request, tmp_path):
    if request.param == "memory":
        return InMemoryRepository()
    return JsonFileRepository(tmp_path / "data")


class TestRepository:

    def test_scan_methods_are_abstract(self):
        class NoScan(_DictBackedRepository):
            put_alert = get_alert = put_history = get_history = lambda self, *a: None

        with pytest.raises(TypeError, match="_all_alerts"):
            NoScan()

    def test_alert_round_trip(self, any_repo):
        alert = _alert({"k": "v"}, attributes=[Attribute(key="ip", value="1.2.3.4", type="ip_address")])
        any_repo.put_alert(alert)
        assert any_repo.get_alert(alert.id) == alert

    def test_missing_alert(self, any_repo):
        with pytest.raises(AlertNotFoundError):
            any_repo.get_alert("missing")

    def test_list_newest_first_and_resolved_filter(self, any_repo):
        old = _alert({}, minutes_ago=10, title="old")
        new = _alert({}, minutes_ago=1, title="new")
        resolved = _alert({}, minutes_ago=5, title="resolved", resolved_at=datetime.now(timezone.utc))
        for a in (old, new, resolved):
            any_repo.put_alert(a)

        assert [a.title for a in any_repo.list_alerts()] == ["new", "resolved", "old"]
        assert [a.title for a in any_repo.list_alerts(include_resolved=False)] == ["new", "old"]
        assert [a.title for a in any_repo.list_alerts(offset=1, limit=1)] == ["resolved"]

    def test_search_paged_newest_first(self, any_repo):
        for i in range(5):
            any_repo.put_alert(_alert({"severity": i}, minutes_ago=i, title=f"a{i}"))

        hits = any_repo.search_alerts(SearchQuery(field="Data.severity", operator=">=", value=1, limit=2, offset=1))

        assert [a.title for a in hits] == ["a2", "a3"]

    def test_history_metadata_only(self, any_repo):
        history = History(alert_id="a1", title="x", contents=[Content.user("hello")])
        any_repo.put_history(history)

        loaded = any_repo.get_history(history.id)
        assert loaded.title == "x"
        assert loaded.contents == []

    def test_missing_history(self, any_repo):
        with pytest.raises(HistoryNotFoundError):
            any_repo.get_history("missing")

    def test_list_histories_by_alert(self, any_repo):
        now = datetime.now(timezone.utc)
        h1 = History(alert_id="a1", title="older", updated_at=now - timedelta(minutes=5))
        h2 = History(alert_id="a1", title="newer", updated_at=now)
        h3 = History(alert_id="a2", title="other")
        for h in (h1, h2, h3):
            any_repo.put_history(h)

        assert [h.title for h in any_repo.list_histories(alert_id="a1")] == ["newer", "older"]
        assert len(any_repo.list_histories()) == 3


class TestJsonFileRepository:

    def test_layout(self, tmp_path):
        repo = JsonFileRepository(tmp_path)
        alert = _alert({})
        repo.put_alert(alert)
        assert (tmp_path / "alerts" / f"{alert.id}.json").is_file()
        assert not list((tmp_path / "alerts").glob("*.tmp"))

    def test_corrupt_record(self, tmp_path):
        repo = JsonFileRepository(tmp_path)
        (tmp_path / "alerts" / "bad.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(StorageError):
            repo.get_alert("bad")

    @pytest.mark.parametrize("record_id", ["../outside", "../../etc/passwd", "nested/id"])
    def test_ids_cannot_leave_their_directory(self, tmp_path, record_id):
        data = tmp_path / "data"
        repo = JsonFileRepository(data)
        (data / "outside.json").write_text(_alert({}).model_dump_json(), encoding="utf-8")

        with pytest.raises(StorageError, match="invalid record id"):
            repo.get_alert(record_id)
        with pytest.raises(StorageError, match="invalid record id"):
            repo.get_history(record_id)
        with pytest.raises(StorageError, match="invalid record id"):
            repo.put_alert(_alert({}, id=record_id))

    def test_merged_to_persisted(self, tmp_path):
        repo = JsonFileRepository(tmp_path)
        alert = _alert({}, merged_to="target-1")
        repo.put_alert(alert)
        assert JsonFileRepository(tmp_path).get_alert(alert.id).merged_to == "target-1"


# ─────────────────────────────────────────────────────────────────────────────
# Blob storage
# ─────────────────────────────────────────────────────────────────────────────

class TestFileStorage:

    def test_put_get(self, tmp_path):
        storage = FileStorage(tmp_path)
        with storage.put("histories/a.json") as w:
            w.write(b"payload")
        with storage.get("histories/a.json") as r:
            assert r.read() == b"payload"
        assert storage.exists("histories/a.json")

    def test_failed_write_leaves_nothing(self, tmp_path):
        storage = FileStorage(tmp_path)
        with pytest.raises(RuntimeError):
            with storage.put("histories/a.json") as w:
                w.write(b"partial")
                raise RuntimeError("interrupted")
        assert not storage.exists("histories/a.json")
        assert list((tmp_path / "histories").iterdir()) == []

    def test_missing_object(self, tmp_path):
        with pytest.raises(StorageError, match="object not found"):
            with FileStorage(tmp_path).get("nope"):
                pass

    def test_key_cannot_escape_root(self, tmp_path):
        with pytest.raises(StorageError, match="invalid storage key"):
            with FileStorage(tmp_path / "root").put("../outside.json"):
                pass


# ─────────────────────────────────────────────────────────────────────────────
# History persistence
# ─────────────────────────────────────────────────────────────────────────────

class TestHistoryStore:

    def test_round_trip_keeps_tool_entries(self, repo, storage):
        store = HistoryStore(repo, storage)
        history = History(alert_id="a1", title="t", contents=[
            Content.user("check"),
            Content(role=Role.MODEL, parts=[Part(function_call=FunctionCall(name="lookup", args={"x": 1}, id="c1"))]),
            Content.tool([FunctionResponse(name="lookup", response={"result": "ok"}, id="c1")]),
            Content.model("done"),
        ])

        store.save(history)
        loaded = store.load(history.id)

        assert loaded.contents == history.contents
        assert loaded.title == "t"
        assert storage.exists(history.blob_key)

    def test_save_updates_timestamp(self, repo, storage):
        history = History(alert_id="a1", updated_at=datetime(2020, 1, 1, tzinfo=timezone.utc))
        HistoryStore(repo, storage).save(history)
        assert history.updated_at.year > 2020

    def test_missing_transcript(self, repo):
        history = History(alert_id="a1")
        repo.put_history(history)
        with pytest.raises(StorageError):
            HistoryStore(repo, MemoryStorage()).load(history.id)

    def test_corrupt_transcript(self, repo, storage):
        history = History(alert_id="a1")
        repo.put_history(history)
        with storage.put(history.blob_key) as w:
            w.write(b'[{"role": "nobody"}]')
        with pytest.raises(StorageError, match="corrupt transcript"):
            HistoryStore(repo, storage).load(history.id)


class TestGenerateTitle:

    def test_quotes_and_whitespace_stripped(self):
        assert generate_title(ScriptedLLM(text_response('  "Beacon to C2"  ')), "msg") == "Beacon to C2"

    def test_truncated(self):
        title = generate_title(ScriptedLLM(text_response("x" * 80)), "msg")
        assert len(title) == MAX_TITLE_LENGTH

    def test_fallback_to_first_line(self):
        title = generate_title(ScriptedLLM(empty_response()), "first line\nsecond line")
        assert title == "first line"

    def test_prompt_contains_message(self):
        llm = ScriptedLLM(text_response("t"))
        generate_title(llm, "why is 10.0.0.5 talking to that host?")
        assert "why is 10.0.0.5 talking to that host?" in llm.requests[0][0][0].first_text()
