"""
Reorder engine: turns a resolved drag gesture into a repository move.

Drag events arrive as
    {"source": {"columnId": ..., "index": ...},
     "destination": {"columnId": ..., "index": ...} | null}
("droppableId" is accepted in place of "columnId").
A missing destination is a cancelled gesture and a no-op.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from .errors import IndexOutOfRange
from .repository import TaskRepository
from .schema import BoardSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DragLocation:
    column_id: str
    index: int

    def to_dict(self) -> Dict[str, Any]:
        return {"columnId": self.column_id, "index": self.index}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DragLocation":
        column_id = data.get("columnId", data.get("droppableId"))
        if not isinstance(column_id, str) or not column_id:
            raise ValueError(f"Drag location without column: {dict(data)!r}")
        index = data.get("index")
        if isinstance(index, bool) or not isinstance(index, int):
            raise ValueError(f"Drag location without integer index: {dict(data)!r}")
        return cls(column_id=column_id, index=index)


@dataclass(frozen=True)
class DragEvent:
    source: DragLocation
    destination: Optional[DragLocation] = None

    @property
    def cancelled(self) -> bool:
        return self.destination is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source.to_dict(),
            "destination": self.destination.to_dict() if self.destination else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DragEvent":
        """Parse a drag-resolution payload. Raises ValueError on malformed input."""
        source = data.get("source")
        if not isinstance(source, Mapping):
            raise ValueError("Drag event without source")
        destination = data.get("destination")
        return cls(
            source=DragLocation.from_dict(source),
            destination=DragLocation.from_dict(destination) if isinstance(destination, Mapping) else None,
        )


@dataclass(frozen=True)
class Move:
    """A fully resolved, in-range move against a specific snapshot."""
    source_column: str
    source_index: int
    dest_column: str
    dest_index: int

    @property
    def is_noop(self) -> bool:
        return self.source_column == self.dest_column and self.source_index == self.dest_index


def resolve_drag(snapshot: BoardSnapshot, event: DragEvent) -> Optional[Move]:
    """
    Resolve a drag event against a snapshot without touching any state.

    Returns None for a cancelled gesture. The source index must be exact
    (a clamped source would move the wrong task); the destination index
    comes from pointer geometry and is clamped into [0, L], where L is the
    destination length after the source removal.
    """
    if event.destination is None:
        return None

    source_tasks = snapshot.column(event.source.column_id)
    dest_tasks = snapshot.column(event.destination.column_id)

    if not 0 <= event.source.index < len(source_tasks):
        raise IndexOutOfRange(event.source.column_id, event.source.index, len(source_tasks) - 1)

    same_column = event.source.column_id == event.destination.column_id
    upper = len(dest_tasks) - 1 if same_column else len(dest_tasks)
    dest_index = min(max(event.destination.index, 0), upper)
    if dest_index != event.destination.index:
        logger.warning(
            f"Clamped drag destination {event.destination.column_id}[{event.destination.index}] "
            f"to {dest_index}"
        )

    return Move(
        source_column=event.source.column_id,
        source_index=event.source.index,
        dest_column=event.destination.column_id,
        dest_index=dest_index,
    )


def reorder(snapshot: BoardSnapshot, event: DragEvent) -> BoardSnapshot:
    """The board as it would look after the drag; the input snapshot is untouched."""
    move = resolve_drag(snapshot, event)
    if move is None or move.is_noop:
        return snapshot
    columns = {name: list(tasks) for name, tasks in snapshot.columns.items()}
    task = columns[move.source_column].pop(move.source_index)
    columns[move.dest_column].insert(move.dest_index, task)
    return BoardSnapshot(columns)


def apply_drag(repository: TaskRepository, event: DragEvent) -> Optional[Move]:
    """Resolve and apply a drag. Returns the move performed, or None when cancelled."""
    move = resolve_drag(repository.snapshot(), event)
    if move is None:
        logger.debug("Drag released outside any column; board unchanged")
        return None
    if move.is_noop:
        return move
    repository.move_at(move.source_column, move.source_index, move.dest_column, move.dest_index)
    return move
