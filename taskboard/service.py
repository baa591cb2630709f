"""
Board service: the mutation facade the presentation layer calls.

Validates form bags, stamps task identity, and routes every change
through the repository. Persistence is wired as a repository observer,
so the in-memory commit always happens first and a failed save only
shows up on the status channel.
"""
import logging
import threading
import time
from typing import Any, Callable, Iterable, Mapping, Optional, Set, Tuple, Union

from .config import BoardConfig
from .errors import ConfigError, PersistenceError, TaskNotFound
from .projection import Projection, SortKey, project, translate_drag
from .reorder import DragEvent, Move, apply_drag
from .repository import BoardChange, TaskRepository
from .schema import BoardSnapshot, Preferences, Task, validate_form
from .store import BoardPersistence, MemoryKeyValueStore, KeyValueStore, open_store

logger = logging.getLogger(__name__)

ID_PREFIX = "task-"


class IdAllocator:
    """
    Issues `task-<ms>` ids from a monotonic millisecond stamp.

    The stamp never goes backwards within a process (two creations in the
    same millisecond get consecutive stamps) and is seeded past every id
    already on the board, so deleted ids are not handed out again.
    """

    def __init__(self, clock: Optional[Callable[[], int]] = None):
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._last = 0

    def seed(self, ids: Iterable[str]) -> None:
        for task_id in ids:
            if task_id.startswith(ID_PREFIX):
                try:
                    self._last = max(self._last, int(task_id[len(ID_PREFIX):]))
                except ValueError:
                    continue

    def next_id(self, taken: Set[str]) -> str:
        stamp = max(self._clock(), self._last + 1)
        while f"{ID_PREFIX}{stamp}" in taken:
            stamp += 1
        self._last = stamp
        return f"{ID_PREFIX}{stamp}"


class BoardService:
    """Create/edit/delete/move entry points over a single owned repository."""

    def __init__(
        self,
        repository: TaskRepository,
        persistence: Optional[BoardPersistence] = None,
        config: Optional[BoardConfig] = None,
        preferences: Optional[Preferences] = None,
        allocator: Optional[IdAllocator] = None,
    ):
        self.config = config or BoardConfig().resolve()
        self.repository = repository
        self.persistence = persistence
        self.variant = self.config.variant
        self.intake_column = self.config.intake_column
        if self.intake_column not in repository.column_names:
            raise ConfigError(
                f"Intake column '{self.intake_column}' not on board {list(repository.column_names)}"
            )
        self.preferences = preferences or Preferences()
        self.ids = allocator or IdAllocator()
        self.ids.seed(repository.known_ids())
        # Mutations run one at a time even when the HTTP adapter is threaded
        self._lock = threading.RLock()
        if persistence is not None:
            repository.subscribe(self._persist_change)

    @classmethod
    def open(cls, config: Optional[BoardConfig] = None, store: Optional[KeyValueStore] = None) -> "BoardService":
        """Build the board from persisted state (or empty columns). Loads exactly once."""
        config = config or BoardConfig.load()
        if store is None:
            try:
                store = open_store(config.db_path, config.max_record_bytes)
            except PersistenceError as e:
                logger.error(f"{e}; board changes will not survive this session")
                store = MemoryKeyValueStore(config.max_record_bytes)
        persistence = BoardPersistence(store, config.columns, config.variant, config.storage_key)
        state = persistence.load()
        repository = TaskRepository(config.columns, state.columns)
        logger.info(f"Board ready: {repository.snapshot()!r}")
        return cls(repository, persistence, config, state.preferences)

    # ──────────────────────────────────────────
    # Persistence wiring
    # ──────────────────────────────────────────

    def _persist_change(self, change: BoardChange) -> None:
        self.persistence.save(change.snapshot, self.preferences)

    def save(self) -> bool:
        """Persist the current board and preferences explicitly."""
        if self.persistence is None:
            return True
        return self.persistence.save(self.repository.snapshot(), self.preferences)

    @property
    def persistence_ok(self) -> bool:
        return self.persistence is None or self.persistence.last_error is None

    @property
    def last_persistence_error(self) -> Optional[PersistenceError]:
        return self.persistence.last_error if self.persistence else None

    # ──────────────────────────────────────────
    # Queries
    # ──────────────────────────────────────────

    def snapshot(self) -> BoardSnapshot:
        return self.repository.snapshot()

    def view(self, query: str = "", sort_key: Union[SortKey, str, None] = None) -> Projection:
        return project(self.repository.snapshot(), query, sort_key)

    def get_task(self, task_id: str) -> Optional[Task]:
        return self.repository.snapshot().get(task_id)

    def _address(self, column: str, index: int, task_id: Optional[str]) -> Tuple[str, int]:
        """
        Resolve the position to mutate. When the caller also names the task,
        its identity wins over a stale column/index.
        """
        if task_id is None:
            return column, index
        found = self.repository.locate(task_id)
        if found is None:
            raise TaskNotFound(task_id)
        if found != (column, index):
            logger.info(f"Stale address {column}[{index}] for {task_id}; using {found[0]}[{found[1]}]")
        return found

    # ──────────────────────────────────────────
    # Mutations
    # ──────────────────────────────────────────

    def create_task(self, fields: Mapping[str, Any]) -> Task:
        """Validate a form bag and append a new task to the intake column."""
        attrs = validate_form(fields, self.variant)
        with self._lock:
            task = Task(id=self.ids.next_id(self.repository.known_ids()), **attrs)
            self.repository.insert(self.intake_column, task)
        logger.info(f"Created {task.id} in {self.intake_column}: {task.title!r}")
        return task

    def edit_task(self, column: str, index: int, fields: Mapping[str, Any], task_id: Optional[str] = None) -> Task:
        """Replace the attributes of the task at column/index; id and column are kept."""
        attrs = validate_form(fields, self.variant)
        with self._lock:
            column, index = self._address(column, index, task_id)
            task = self.repository.update_at(column, index, attrs)
        logger.info(f"Edited {task.id} in {column}")
        return task

    def edit_task_by_id(self, task_id: str, fields: Mapping[str, Any]) -> Task:
        attrs = validate_form(fields, self.variant)
        with self._lock:
            found = self.repository.locate(task_id)
            if found is None:
                raise TaskNotFound(task_id)
            task = self.repository.update_at(found[0], found[1], attrs)
        logger.info(f"Edited {task.id} in {found[0]}")
        return task

    def delete_task(self, column: str, index: int, task_id: Optional[str] = None) -> Task:
        with self._lock:
            column, index = self._address(column, index, task_id)
            task = self.repository.remove_at(column, index)
        logger.info(f"Deleted {task.id} from {column}")
        return task

    def delete_task_by_id(self, task_id: str) -> bool:
        """Remove the task with this id. Absent ids are a no-op (returns False)."""
        with self._lock:
            found = self.repository.locate(task_id)
            if found is None:
                logger.debug(f"Delete of absent task {task_id} ignored")
                return False
            self.repository.remove_at(*found)
        logger.info(f"Deleted {task_id} from {found[0]}")
        return True

    def move(
        self,
        event: Union[DragEvent, Mapping[str, Any]],
        query: str = "",
        sort_key: Union[SortKey, str, None] = None,
    ) -> Optional[Move]:
        """
        Apply a drag-resolution event. Indices are taken as displayed
        indices under the given query/sort and mapped to stored order first.
        """
        if not isinstance(event, DragEvent):
            event = DragEvent.from_dict(event)
        with self._lock:
            stored = translate_drag(self.repository.snapshot(), event, query, sort_key)
            move = apply_drag(self.repository, stored)
        if move is not None and not move.is_noop:
            logger.info(
                f"Moved {move.source_column}[{move.source_index}] -> {move.dest_column}[{move.dest_index}]"
            )
        return move

    # ──────────────────────────────────────────
    # Preferences
    # ──────────────────────────────────────────

    def set_dark_mode(self, enabled: bool) -> Preferences:
        with self._lock:
            self.preferences = Preferences(dark_mode=bool(enabled))
            self.save()
        return self.preferences

    def toggle_dark_mode(self) -> Preferences:
        with self._lock:
            return self.set_dark_mode(not self.preferences.dark_mode)
