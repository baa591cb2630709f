"""
Task repository: sole owner of the column -> task sequence mapping.

Every primitive validates before touching state, so a rejected call
leaves the board exactly as it was. Accepted mutations notify observers
with a BoardChange carrying the new snapshot.
"""
import logging
from dataclasses import dataclass, fields, replace
from typing import Callable, Dict, List, Mapping, Any, Optional, Iterable, Set, Tuple

from .errors import InvalidColumn, IndexOutOfRange, DuplicateTask, ValidationError
from .schema import Task, BoardSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoardChange:
    """Notification emitted after an accepted mutation."""
    kind: str                 # "insert" | "remove" | "move" | "update"
    task_id: str
    column: str               # column holding the task afterwards (source column for removals)
    index: int
    snapshot: BoardSnapshot
    source_column: Optional[str] = None
    source_index: Optional[int] = None


Observer = Callable[[BoardChange], None]

_TASK_FIELDS = {f.name for f in fields(Task)}


class TaskRepository:
    """In-memory board with index-checked mutation primitives."""

    def __init__(self, column_names: Iterable[str], initial: Optional[Mapping[str, Iterable[Task]]] = None):
        self._columns: Dict[str, List[Task]] = {name: [] for name in column_names}
        if not self._columns:
            raise ValueError("A board needs at least one column")
        self._retired: Set[str] = set()
        self._observers: List[Observer] = []
        if initial:
            self._seed(initial)

    def _seed(self, initial: Mapping[str, Iterable[Task]]) -> None:
        seen: Set[str] = set()
        for name, tasks in initial.items():
            if name not in self._columns:
                raise InvalidColumn(name)
            for task in tasks:
                if task.id in seen:
                    raise DuplicateTask(task.id)
                seen.add(task.id)
                self._columns[name].append(task)

    # -------------------- observers --------------------
    def subscribe(self, callback: Observer) -> Callable[[], None]:
        """Register a change observer. Returns a function that unsubscribes it."""
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def _emit(self, change: BoardChange) -> None:
        for callback in list(self._observers):
            try:
                callback(change)
            except Exception as e:
                logger.warning(f"Observer {callback!r} failed on {change.kind} {change.task_id}: {e}")

    # -------------------- queries --------------------
    @property
    def column_names(self) -> Tuple[str, ...]:
        return tuple(self._columns)

    def snapshot(self) -> BoardSnapshot:
        return BoardSnapshot(self._columns)

    def locate(self, task_id: str) -> Optional[Tuple[str, int]]:
        for name, tasks in self._columns.items():
            for index, task in enumerate(tasks):
                if task.id == task_id:
                    return name, index
        return None

    def known_ids(self) -> Set[str]:
        """Live and retired ids; neither may be issued again."""
        live = {task.id for tasks in self._columns.values() for task in tasks}
        return live | self._retired

    def _column(self, name: str) -> List[Task]:
        try:
            return self._columns[name]
        except KeyError:
            raise InvalidColumn(name) from None

    # -------------------- mutation primitives --------------------
    def insert(self, column: str, task: Task, position: Optional[int] = None) -> int:
        """Insert task at position (None = tail). Returns the final index."""
        tasks = self._column(column)
        if position is None:
            position = len(tasks)
        if not 0 <= position <= len(tasks):
            raise IndexOutOfRange(column, position, len(tasks))
        if task.id in self._retired or self.locate(task.id) is not None:
            raise DuplicateTask(task.id)

        tasks.insert(position, task)
        logger.debug(f"insert {task.id} -> {column}[{position}]")
        self._emit(BoardChange("insert", task.id, column, position, self.snapshot()))
        return position

    def remove_at(self, column: str, index: int) -> Task:
        tasks = self._column(column)
        if not 0 <= index < len(tasks):
            raise IndexOutOfRange(column, index, len(tasks) - 1)

        task = tasks.pop(index)
        self._retired.add(task.id)
        logger.debug(f"remove {task.id} <- {column}[{index}]")
        self._emit(BoardChange("remove", task.id, column, index, self.snapshot()))
        return task

    def move_at(self, source_column: str, source_index: int, dest_column: str, dest_index: int) -> Task:
        """
        Atomic remove-then-insert.

        The destination index is checked against the destination length
        after the source removal (same column: one shorter).
        """
        source = self._column(source_column)
        dest = self._column(dest_column)
        if not 0 <= source_index < len(source):
            raise IndexOutOfRange(source_column, source_index, len(source) - 1)
        dest_len = len(dest) - 1 if source is dest else len(dest)
        if not 0 <= dest_index <= dest_len:
            raise IndexOutOfRange(dest_column, dest_index, dest_len)

        task = source.pop(source_index)
        dest.insert(dest_index, task)
        logger.debug(f"move {task.id} {source_column}[{source_index}] -> {dest_column}[{dest_index}]")
        self._emit(BoardChange(
            "move", task.id, dest_column, dest_index, self.snapshot(),
            source_column=source_column, source_index=source_index,
        ))
        return task

    def update_at(self, column: str, index: int, patch: Mapping[str, Any]) -> Task:
        """Replace the task at a position with a patched value carrying the same id."""
        tasks = self._column(column)
        if not 0 <= index < len(tasks):
            raise IndexOutOfRange(column, index, len(tasks) - 1)
        changes = {k: v for k, v in patch.items() if k != "id"}
        unknown = sorted(set(changes) - _TASK_FIELDS)
        if unknown:
            raise ValidationError(unknown, f"Unknown task fields: {', '.join(unknown)}")
        updated = replace(tasks[index], **changes)

        tasks[index] = updated
        logger.debug(f"update {updated.id} at {column}[{index}]: {sorted(changes)}")
        self._emit(BoardChange("update", updated.id, column, index, self.snapshot()))
        return updated
