# Task board: configuration
# Override columns, task variant and storage via taskboard.yaml or env vars.

import os
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import List, Optional

import yaml

from .errors import ConfigError
from .schema import TaskVariant, TIER_FIELDS, TAG_MODES

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).parent.parent / "taskboard.yaml"
DEFAULT_COLUMNS = ["ToDo", "InProgress", "Done"]


@dataclass
class BoardConfig:
    """Runtime configuration for a board."""

    # Columns are fixed for the life of the process
    columns: List[str] = field(default_factory=lambda: list(DEFAULT_COLUMNS))
    intake_column: str = ""          # defaults to the first column

    # Task variant
    tier_field: str = "priority"     # "priority" (Low/Medium/High) | "difficulty" (Easy/Medium/Hard)
    tag_mode: str = "list"           # "list" | "single"
    require_description: bool = True
    require_deadline: bool = False

    # Storage
    db_path: str = "~/.local/share/taskboard/board.db"   # ":memory:" for a throwaway board
    storage_key: str = "tasks"
    max_record_bytes: int = 5 * 1024 * 1024

    log_level: str = "INFO"

    def resolve(self) -> "BoardConfig":
        """Apply env overrides, expand paths, and check consistency."""
        env_db = os.environ.get("TASKBOARD_DB")
        if env_db:
            self.db_path = env_db
        if self.db_path != ":memory:":
            self.db_path = str(Path(self.db_path).expanduser())

        self.columns = [str(c) for c in self.columns]
        if not self.columns:
            raise ConfigError("At least one column is required")
        if len(set(self.columns)) != len(self.columns):
            raise ConfigError(f"Duplicate column names: {self.columns}")
        if not self.intake_column:
            self.intake_column = self.columns[0]
        if self.intake_column not in self.columns:
            raise ConfigError(
                f"intake_column '{self.intake_column}' is not a column. "
                f"Available: {self.columns}"
            )
        if self.tier_field not in TIER_FIELDS:
            raise ConfigError(f"tier_field must be one of {TIER_FIELDS}, got '{self.tier_field}'")
        if self.tag_mode not in TAG_MODES:
            raise ConfigError(f"tag_mode must be one of {TAG_MODES}, got '{self.tag_mode}'")
        return self

    @property
    def variant(self) -> TaskVariant:
        return TaskVariant(
            tier_field=self.tier_field,
            tag_mode=self.tag_mode,
            require_description=self.require_description,
            require_deadline=self.require_deadline,
        )

    @classmethod
    def load(cls, path: Optional[str] = None) -> "BoardConfig":
        """Load config from YAML, falling back to defaults when absent or unreadable."""
        path = path or os.environ.get("TASKBOARD_CONFIG")
        cfg_path = Path(path) if path else CONFIG_PATH
        known = {f.name for f in fields(cls)}
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
                cfg = cls(**{k: v for k, v in data.items() if k in known})
            except (OSError, yaml.YAMLError, AttributeError, TypeError) as e:
                logger.warning(f"Ignoring unreadable config {cfg_path}: {e}")
                cfg = cls()
        else:
            cfg = cls()
        return cfg.resolve()
