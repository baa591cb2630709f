"""Shared test fixtures for the task board tests."""

import pytest

from taskboard.config import BoardConfig
from taskboard.repository import TaskRepository
from taskboard.schema import Task, Tier
from taskboard.service import BoardService
from taskboard.store import MemoryKeyValueStore

COLUMNS = ["ToDo", "InProgress", "Done"]


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Keep a developer's TASKBOARD_* settings out of the tests."""
    monkeypatch.delenv("TASKBOARD_DB", raising=False)
    monkeypatch.delenv("TASKBOARD_CONFIG", raising=False)


def make_task(task_id: str, title: str = "", tier: Tier = Tier.LOW, **kwargs) -> Task:
    return Task(id=task_id, title=title or task_id, tier=tier, **kwargs)


@pytest.fixture
def config():
    return BoardConfig(db_path=":memory:").resolve()


@pytest.fixture
def kv_store():
    return MemoryKeyValueStore()


@pytest.fixture
def service(config, kv_store):
    return BoardService.open(config, store=kv_store)


@pytest.fixture
def repo():
    return TaskRepository(COLUMNS)


@pytest.fixture
def abc_repo():
    """ToDo = [A, B, C], other columns empty."""
    return TaskRepository(COLUMNS, {"ToDo": [make_task("A"), make_task("B"), make_task("C")]})


def ids(tasks):
    return [t.id for t in tasks]
