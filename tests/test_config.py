"""Tests for BoardConfig loading and validation."""
from pathlib import Path

import pytest

from taskboard.config import BoardConfig, DEFAULT_COLUMNS
from taskboard.errors import ConfigError
from taskboard.schema import TaskVariant


def write_yaml(tmp_path, text: str) -> str:
    path = tmp_path / "taskboard.yaml"
    path.write_text(text)
    return str(path)


def test_defaults(tmp_path):
    cfg = BoardConfig.load(str(tmp_path / "missing.yaml"))
    assert cfg.columns == DEFAULT_COLUMNS
    assert cfg.intake_column == "ToDo"
    assert cfg.storage_key == "tasks"
    assert cfg.variant == TaskVariant()
    assert cfg.db_path == str(Path("~/.local/share/taskboard/board.db").expanduser())


def test_load_yaml(tmp_path):
    path = write_yaml(tmp_path, """
columns: [Backlog, Doing, Shipped]
intake_column: Backlog
tier_field: difficulty
tag_mode: single
require_description: false
db_path: ":memory:"
storage_key: board
""")
    cfg = BoardConfig.load(path)
    assert cfg.columns == ["Backlog", "Doing", "Shipped"]
    assert cfg.intake_column == "Backlog"
    assert cfg.db_path == ":memory:"
    assert cfg.storage_key == "board"
    assert cfg.variant == TaskVariant(tier_field="difficulty", tag_mode="single", require_description=False)


def test_unknown_keys_ignored(tmp_path):
    path = write_yaml(tmp_path, "columns: [A, B]\ntheme: solarized\n")
    cfg = BoardConfig.load(path)
    assert cfg.columns == ["A", "B"]
    assert cfg.intake_column == "A"


def test_config_path_from_env(tmp_path, monkeypatch):
    monkeypatch.setenv("TASKBOARD_CONFIG", write_yaml(tmp_path, "storage_key: from-env\n"))
    assert BoardConfig.load().storage_key == "from-env"


def test_db_env_override(tmp_path, monkeypatch):
    monkeypatch.setenv("TASKBOARD_DB", str(tmp_path / "env.db"))
    path = write_yaml(tmp_path, "db_path: /somewhere/else.db\n")
    assert BoardConfig.load(path).db_path == str(tmp_path / "env.db")


@pytest.mark.parametrize("text", ["columns: [A, B\n", "- just\n- a list\n"])
def test_unreadable_yaml_falls_back_to_defaults(tmp_path, text):
    cfg = BoardConfig.load(write_yaml(tmp_path, text))
    assert cfg.columns == DEFAULT_COLUMNS


@pytest.mark.parametrize("overrides", [
    {"columns": []},
    {"columns": ["A", "A"]},
    {"intake_column": "Backlog"},
    {"tier_field": "urgency"},
    {"tag_mode": "many"},
])
def test_invalid_config_rejected(overrides):
    with pytest.raises(ConfigError):
        BoardConfig(db_path=":memory:", **overrides).resolve()


def test_invalid_yaml_values_are_not_silently_replaced(tmp_path):
    path = write_yaml(tmp_path, "columns: [A, B]\nintake_column: C\n")
    with pytest.raises(ConfigError):
        BoardConfig.load(path)
