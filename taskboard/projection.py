"""
Filter/sort projection of a board snapshot.

The projection is display-only: stored column order is never touched.
Drags made against a filtered or sorted display go through
translate_drag() to get stored indices before reaching the reorder engine.
"""
import locale
import logging
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import IndexOutOfRange
from .reorder import DragEvent, DragLocation
from .schema import BoardSnapshot, Task

logger = logging.getLogger(__name__)


class SortKey(Enum):
    NONE = "none"
    TITLE = "title"
    DEADLINE = "deadline"
    PRIORITY = "priority"

    @classmethod
    def from_str(cls, value: Any) -> "SortKey":
        if isinstance(value, SortKey):
            return value
        if not value:
            return cls.NONE
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.NONE


Projection = Dict[str, Tuple[Task, ...]]


def use_system_collation() -> str:
    """Collate titles by the environment's LC_COLLATE. Returns the active collation locale."""
    try:
        return locale.setlocale(locale.LC_COLLATE, "")
    except locale.Error as e:
        logger.warning(f"Unsupported collation locale, keeping {locale.setlocale(locale.LC_COLLATE)}: {e}")
        return locale.setlocale(locale.LC_COLLATE)


def _collate(text: str) -> str:
    # strxfrm rejects embedded NULs
    return locale.strxfrm(text.replace("\x00", ""))


def _title_key(task: Task) -> Tuple[str, str]:
    # Case-insensitive under the active LC_COLLATE, case only breaks ties
    return (_collate(task.title.casefold()), _collate(task.title))


def _deadline_key(task: Task) -> Tuple[bool, date]:
    # Undated tasks sort after every dated task.
    return (task.deadline is None, task.deadline or date.min)


def _tier_key(task: Task) -> int:
    return task.tier.rank


_SORT_KEYS = {
    SortKey.TITLE: _title_key,
    SortKey.DEADLINE: _deadline_key,
    SortKey.PRIORITY: _tier_key,
}


def matches(task: Task, query: str) -> bool:
    """Case-insensitive substring match on the title."""
    return query.casefold() in task.title.casefold()


def project_column(tasks: Tuple[Task, ...], query: str = "", sort_key: SortKey = SortKey.NONE) -> Tuple[Task, ...]:
    shown: List[Task] = [t for t in tasks if matches(t, query)] if query else list(tasks)
    key = _SORT_KEYS.get(sort_key)
    if key is not None:
        shown.sort(key=key)  # list.sort is stable; ties keep filtered order
    return tuple(shown)


def project(snapshot: BoardSnapshot, query: str = "", sort_key: Optional[SortKey] = None) -> Projection:
    """Derive each column's display list from a snapshot, a title query and a sort key."""
    sort_key = SortKey.from_str(sort_key)
    query = query or ""
    return {name: project_column(tasks, query, sort_key) for name, tasks in snapshot.columns.items()}


def is_active(query: str = "", sort_key: Optional[SortKey] = None) -> bool:
    return bool(query) or SortKey.from_str(sort_key) is not SortKey.NONE


def translate_drag(
    snapshot: BoardSnapshot,
    event: DragEvent,
    query: str = "",
    sort_key: Optional[SortKey] = None,
) -> DragEvent:
    """
    Map a drag expressed in displayed indices to stored indices.

    The dragged task is the one displayed at the source index. It lands
    before the task displayed at the destination index; past the end of
    the display it lands right after the last displayed task, and into an
    empty display it lands at the stored tail.
    """
    if event.destination is None or not is_active(query, sort_key):
        return event

    view = project(snapshot, query, sort_key)
    source_col = event.source.column_id
    dest_col = event.destination.column_id
    stored_source = snapshot.column(source_col)
    shown_source = view[source_col]
    if not 0 <= event.source.index < len(shown_source):
        raise IndexOutOfRange(source_col, event.source.index, len(shown_source) - 1)

    dragged = shown_source[event.source.index]
    stored_index = stored_source.index(dragged)

    stored_dest = [t for t in snapshot.column(dest_col) if t.id != dragged.id]
    shown_dest = [t for t in view[dest_col] if t.id != dragged.id]
    position = {t.id: i for i, t in enumerate(stored_dest)}

    target = max(event.destination.index, 0)
    if target < len(shown_dest):
        dest_index = position[shown_dest[target].id]
    elif shown_dest:
        dest_index = position[shown_dest[-1].id] + 1
    else:
        dest_index = len(stored_dest)

    return DragEvent(
        source=DragLocation(source_col, stored_index),
        destination=DragLocation(dest_col, dest_index),
    )
