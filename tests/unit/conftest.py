"""
Unit test fixtures shared across modules.
"""

from __future__ import annotations

import pytest

from alertsleuth.agent.history import HistoryStore
from alertsleuth.storage.blob import MemoryStorage
from alertsleuth.storage.models import Alert, Attribute, AttributeType
from alertsleuth.storage.repository import InMemoryRepository
from alertsleuth.tools.base import ToolContext
from alertsleuth.tools.registry import ToolRegistry

from fakes import RecordingTool


@pytest.fixture
def repo():
    return InMemoryRepository()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(repo, storage):
    return HistoryStore(repo, storage)


@pytest.fixture
def alert(repo):
    a = Alert(
        title="Suspicious outbound connection",
        description="Host web-01 connected to a known C2 address.",
        data={"Severity": "high", "src_ip": "10.0.0.5", "dst_ip": "198.51.100.7"},
        attributes=[Attribute(key="dst_ip", value="198.51.100.7", type=AttributeType.IP_ADDRESS)],
    )
    repo.put_alert(a)
    return a


@pytest.fixture
def tool():
    return RecordingTool(names=("lookup",))


@pytest.fixture
def registry(tool):
    r = ToolRegistry([tool])
    r.init(ToolContext())
    return r
