"""
Board persistence: key-value backends and the save/load bridge.

The whole board plus preferences is one JSON record under a fixed key:

    {"columns": {"ToDo": [TaskRecord, ...], ...},
     "preferences": {"darkMode": false}}

Saving is best-effort: failures are logged and reported to status
listeners, never raised, and never undo the in-memory board.
"""
import json
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from .errors import PersistenceError, QuotaExceeded
from .schema import BoardSnapshot, Preferences, Task, TaskVariant

logger = logging.getLogger(__name__)

DEFAULT_KEY = "tasks"
DEFAULT_MAX_VALUE_BYTES = 5 * 1024 * 1024


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Key-value backends
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class KeyValueStore:
    """String get/set by key, with a per-value size limit and no transactions."""

    def __init__(self, max_value_bytes: int = DEFAULT_MAX_VALUE_BYTES):
        self.max_value_bytes = max_value_bytes

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def _check_quota(self, key: str, value: str) -> None:
        size = len(value.encode("utf-8"))
        if self.max_value_bytes and size > self.max_value_bytes:
            raise QuotaExceeded(key, size, self.max_value_bytes)


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store; nothing survives the process."""

    def __init__(self, max_value_bytes: int = DEFAULT_MAX_VALUE_BYTES, initial: Optional[Dict[str, str]] = None):
        super().__init__(max_value_bytes)
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._check_quota(key, value)
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection in WAL mode."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


class SqliteKeyValueStore(KeyValueStore):
    """Key-value rows in a local SQLite `system_state` table."""

    def __init__(self, db_path: Optional[str] = None, max_value_bytes: int = DEFAULT_MAX_VALUE_BYTES):
        super().__init__(max_value_bytes)
        if db_path is None:
            db_path = str(Path.home() / ".local" / "share" / "taskboard" / "board.db")
        self.db_path = db_path
        try:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            self._init_schema()
        except (OSError, sqlite3.Error) as e:
            raise PersistenceError(f"Cannot open store at {db_path}: {e}") from e

    def _init_schema(self):
        with _connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS system_state (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.commit()

    def get(self, key: str) -> Optional[str]:
        try:
            with _connect(self.db_path) as conn:
                row = conn.execute(
                    "SELECT value FROM system_state WHERE key = ? LIMIT 1", (key,)
                ).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Error reading {key!r}: {e}") from e
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        self._check_quota(key, value)
        now = datetime.now(timezone.utc).isoformat()
        try:
            with _connect(self.db_path) as conn:
                conn.execute("""
                    INSERT INTO system_state (key, value, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
                """, (key, value, now))
                conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Error writing {key!r}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            with _connect(self.db_path) as conn:
                conn.execute("DELETE FROM system_state WHERE key = ?", (key,))
                conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Error deleting {key!r}: {e}") from e


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Persistence bridge
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


@dataclass
class LoadedState:
    """Board columns and preferences read at startup."""
    columns: Dict[str, List[Task]]
    preferences: Preferences = field(default_factory=Preferences)

    @property
    def snapshot(self) -> BoardSnapshot:
        return BoardSnapshot(self.columns)


@dataclass(frozen=True)
class PersistenceStatus:
    ok: bool
    operation: str                       # "save" | "load"
    error: Optional[PersistenceError] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


StatusListener = Callable[[PersistenceStatus], None]


class BoardPersistence:
    """Serializes the full board and preferences to one record in a KeyValueStore."""

    def __init__(
        self,
        store: KeyValueStore,
        column_names: Iterable[str],
        variant: Optional[TaskVariant] = None,
        key: str = DEFAULT_KEY,
    ):
        self.store = store
        self.column_names: Tuple[str, ...] = tuple(column_names)
        self.variant = variant or TaskVariant()
        self.key = key
        self.last_error: Optional[PersistenceError] = None
        self._listeners: List[StatusListener] = []

    def subscribe(self, callback: StatusListener) -> None:
        """Register a listener on the save/load status channel."""
        self._listeners.append(callback)

    def _report(self, status: PersistenceStatus) -> None:
        self.last_error = status.error
        for callback in self._listeners:
            try:
                callback(status)
            except Exception as e:
                logger.warning(f"Persistence status listener failed: {e}")

    def empty_state(self) -> LoadedState:
        return LoadedState(columns={name: [] for name in self.column_names})

    # -------------------- encoding --------------------
    def encode(self, snapshot: BoardSnapshot, preferences: Preferences) -> str:
        record = {
            "columns": {
                name: [task.to_record(self.variant) for task in tasks]
                for name, tasks in snapshot.columns.items()
            },
            "preferences": preferences.to_dict(),
        }
        return json.dumps(record)

    def decode(self, raw: str) -> LoadedState:
        """Parse a stored record. Raises PersistenceError if it is not a board record."""
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            raise PersistenceError(f"Corrupt board record: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceError(f"Corrupt board record: expected object, got {type(data).__name__}")

        if isinstance(data.get("columns"), dict):
            columns_raw = data["columns"]
            preferences = Preferences.from_dict(data.get("preferences"))
        else:
            # Legacy shape: a bare {column: [task, ...]} mapping
            columns_raw = {k: v for k, v in data.items() if isinstance(v, list)}
            if not columns_raw:
                raise PersistenceError("Corrupt board record: no columns")
            preferences = Preferences()

        state = self.empty_state()
        state.preferences = preferences
        seen: Set[str] = set()
        for name, records in columns_raw.items():
            if name not in state.columns:
                logger.warning(f"Dropping unknown column {name!r} from stored board")
                continue
            if not isinstance(records, list):
                logger.warning(f"Dropping column {name!r}: not a list")
                continue
            for raw_task in records:
                if not isinstance(raw_task, Mapping):
                    logger.warning(f"Skipping malformed task record in {name!r}")
                    continue
                try:
                    task = Task.from_record(raw_task)
                except (ValueError, TypeError) as e:
                    logger.warning(f"Skipping task record in {name!r}: {e}")
                    continue
                if task.id in seen:
                    logger.warning(f"Skipping duplicate task id {task.id} in {name!r}")
                    continue
                seen.add(task.id)
                state.columns[name].append(task)
        return state

    # -------------------- save / load --------------------
    def save(self, snapshot: BoardSnapshot, preferences: Preferences) -> bool:
        """Write the record. Returns False (and reports) on failure; never raises."""
        try:
            payload = self.encode(snapshot, preferences)
            self.store.set(self.key, payload)
        except PersistenceError as e:
            logger.error(f"Failed to save board: {e}")
            self._report(PersistenceStatus(ok=False, operation="save", error=e))
            return False
        except (TypeError, ValueError) as e:
            err = PersistenceError(f"Cannot serialize board: {e}")
            logger.error(f"Failed to save board: {err}")
            self._report(PersistenceStatus(ok=False, operation="save", error=err))
            return False
        logger.debug(f"Saved board ({len(snapshot)} tasks, {len(payload)} chars) under {self.key!r}")
        self._report(PersistenceStatus(ok=True, operation="save"))
        return True

    def load(self) -> LoadedState:
        """Read the record, falling back to an empty board on any failure."""
        try:
            raw = self.store.get(self.key)
            if raw is None:
                logger.info(f"No stored board under {self.key!r}; starting empty")
                return self.empty_state()
            state = self.decode(raw)
        except PersistenceError as e:
            logger.warning(f"Failed to load board, starting empty: {e}")
            self._report(PersistenceStatus(ok=False, operation="load", error=e))
            return self.empty_state()
        logger.info(f"Loaded board with {len(state.snapshot)} tasks")
        self._report(PersistenceStatus(ok=True, operation="load"))
        return state


def open_store(db_path: Optional[str], max_value_bytes: int = DEFAULT_MAX_VALUE_BYTES) -> KeyValueStore:
    """SQLite store at db_path, or an in-memory store for ":memory:"."""
    if db_path == ":memory:":
        return MemoryKeyValueStore(max_value_bytes)
    return SqliteKeyValueStore(db_path, max_value_bytes)
