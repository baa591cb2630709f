"""
Tests for persistence: key-value backends and the board save/load bridge.
"""
import json
from datetime import date

import pytest

from conftest import COLUMNS, ids, make_task
from taskboard.errors import PersistenceError, QuotaExceeded
from taskboard.schema import BoardSnapshot, Preferences, TaskVariant, Tier
from taskboard.store import (
    BoardPersistence,
    KeyValueStore,
    MemoryKeyValueStore,
    SqliteKeyValueStore,
    open_store,
)


def sample_snapshot() -> BoardSnapshot:
    return BoardSnapshot({
        "ToDo": [
            make_task("task-1", "Write proposal", Tier.MEDIUM, description="draft v1",
                      deadline=date(2026, 1, 15), tags=("docs", "q1")),
            make_task("task-2", "Ünïcode ✓", Tier.HIGH, description="multi\nline"),
        ],
        "InProgress": [],
        "Done": [make_task("task-3", "Ship it", Tier.LOW, tags=("release",))],
    })


class FailingStore(KeyValueStore):
    """Backend that is always unreachable."""

    def get(self, key):
        raise PersistenceError("store offline")

    def set(self, key, value):
        raise PersistenceError("store offline")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Key-value backends
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_memory_store_get_set_delete():
    store = MemoryKeyValueStore()
    assert store.get("tasks") is None
    store.set("tasks", "{}")
    assert store.get("tasks") == "{}"
    store.delete("tasks")
    assert store.get("tasks") is None


def test_memory_store_quota():
    store = MemoryKeyValueStore(max_value_bytes=8)
    store.set("k", "12345678")
    with pytest.raises(QuotaExceeded) as exc:
        store.set("k", "123456789")
    assert exc.value.limit == 8
    assert store.get("k") == "12345678"


def test_sqlite_store_persists_across_instances(tmp_path):
    db_path = str(tmp_path / "nested" / "board.db")
    store = SqliteKeyValueStore(db_path)
    store.set("tasks", "first")
    store.set("tasks", "second")

    reopened = SqliteKeyValueStore(db_path)
    assert reopened.get("tasks") == "second"
    assert reopened.get("other") is None
    reopened.delete("tasks")
    assert SqliteKeyValueStore(db_path).get("tasks") is None


def test_sqlite_store_quota_counts_bytes(tmp_path):
    store = SqliteKeyValueStore(str(tmp_path / "board.db"), max_value_bytes=4)
    with pytest.raises(QuotaExceeded):
        store.set("k", "✓✓")  # 6 bytes in UTF-8
    assert store.get("k") is None


def test_open_store_memory_sentinel(tmp_path):
    assert isinstance(open_store(":memory:"), MemoryKeyValueStore)
    assert isinstance(open_store(str(tmp_path / "b.db")), SqliteKeyValueStore)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Board persistence bridge
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_round_trip_exact():
    persistence = BoardPersistence(MemoryKeyValueStore(), COLUMNS)
    snapshot = sample_snapshot()
    prefs = Preferences(dark_mode=True)

    assert persistence.save(snapshot, prefs)
    state = persistence.load()
    assert state.snapshot == snapshot
    assert state.preferences == prefs
    assert ids(state.columns["ToDo"]) == ["task-1", "task-2"]


def test_round_trip_sqlite_difficulty_variant(tmp_path):
    variant = TaskVariant(tier_field="difficulty", tag_mode="single", require_description=False)
    snapshot = BoardSnapshot({
        "ToDo": [make_task("task-9", "Solo tag", Tier.HIGH, tags=("infra",))],
        "InProgress": [make_task("task-8", "No tag")],
        "Done": [],
    })
    db_path = str(tmp_path / "board.db")
    BoardPersistence(SqliteKeyValueStore(db_path), COLUMNS, variant).save(snapshot, Preferences())

    state = BoardPersistence(SqliteKeyValueStore(db_path), COLUMNS, variant).load()
    assert state.snapshot == snapshot
    assert state.preferences == Preferences()


def test_record_format():
    store = MemoryKeyValueStore()
    BoardPersistence(store, COLUMNS, key="board").save(sample_snapshot(), Preferences())
    record = json.loads(store.get("board"))
    assert set(record) == {"columns", "preferences"}
    assert record["preferences"] == {"darkMode": False}
    assert list(record["columns"]) == COLUMNS
    first = record["columns"]["ToDo"][0]
    assert first == {
        "id": "task-1",
        "title": "Write proposal",
        "description": "draft v1",
        "deadline": "2026-01-15",
        "tags": ["docs", "q1"],
        "priority": "Medium",
    }
    assert "deadline" not in record["columns"]["ToDo"][1]


def test_load_without_record_gives_empty_board():
    state = BoardPersistence(MemoryKeyValueStore(), COLUMNS).load()
    assert state.snapshot.column_names == tuple(COLUMNS)
    assert len(state.snapshot) == 0
    assert state.preferences == Preferences()


@pytest.mark.parametrize("raw", ["not json", "[1, 2]", "42", '{"preferences": {}}'])
def test_load_corrupt_record_falls_back_to_empty(raw):
    statuses = []
    persistence = BoardPersistence(MemoryKeyValueStore(initial={"tasks": raw}), COLUMNS)
    persistence.subscribe(statuses.append)

    state = persistence.load()
    assert len(state.snapshot) == 0
    assert isinstance(persistence.last_error, PersistenceError)
    assert statuses[-1].ok is False
    assert statuses[-1].operation == "load"


def test_load_legacy_bare_column_mapping():
    """Records written as a bare {column: [tasks]} mapping still load"""
    legacy = {
        "ToDo": [{"id": "task-1700000000000", "title": "Old", "description": "d",
                  "deadline": "2024-02-02", "tags": ["a", ""], "difficulty": "Hard"}],
        "InProgress": [],
        "Done": [],
    }
    store = MemoryKeyValueStore(initial={"tasks": json.dumps(legacy)})
    state = BoardPersistence(store, COLUMNS).load()
    task = state.columns["ToDo"][0]
    assert task.tier is Tier.HIGH
    assert task.deadline == date(2024, 2, 2)
    assert task.tags == ("a",)
    assert state.preferences == Preferences()


def test_load_drops_unknown_columns_bad_records_and_duplicates():
    record = {
        "columns": {
            "ToDo": [
                {"id": "a", "title": "Keep"},
                {"id": "b"},
                "garbage",
                {"id": "a", "title": "Duplicate"},
            ],
            "Backlog": [{"id": "c", "title": "Unknown column"}],
            "Done": {"not": "a list"},
        },
        "preferences": {"darkMode": True},
    }
    store = MemoryKeyValueStore(initial={"tasks": json.dumps(record)})
    state = BoardPersistence(store, COLUMNS).load()
    assert ids(state.columns["ToDo"]) == ["a"]
    assert state.columns["ToDo"][0].title == "Keep"
    assert state.columns["InProgress"] == []
    assert state.columns["Done"] == []
    assert "Backlog" not in state.columns
    assert state.preferences.dark_mode is True


def test_save_failure_is_reported_not_raised():
    statuses = []
    persistence = BoardPersistence(FailingStore(), COLUMNS)
    persistence.subscribe(statuses.append)

    assert persistence.save(sample_snapshot(), Preferences()) is False
    assert str(persistence.last_error) == "store offline"
    assert [s.ok for s in statuses] == [False]


def test_save_over_quota_is_reported():
    persistence = BoardPersistence(MemoryKeyValueStore(max_value_bytes=32), COLUMNS)
    assert persistence.save(sample_snapshot(), Preferences()) is False
    assert isinstance(persistence.last_error, QuotaExceeded)


def test_successful_save_clears_last_error():
    store = MemoryKeyValueStore(max_value_bytes=32)
    persistence = BoardPersistence(store, COLUMNS)
    persistence.save(sample_snapshot(), Preferences())
    assert persistence.last_error is not None

    store.max_value_bytes = 0  # unlimited
    assert persistence.save(sample_snapshot(), Preferences())
    assert persistence.last_error is None


def test_load_failure_from_unreachable_store():
    state = BoardPersistence(FailingStore(), COLUMNS).load()
    assert len(state.snapshot) == 0
