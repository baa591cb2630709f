"""
Task board schema.

A board is a fixed set of named columns, each owning an ordered sequence
of tasks. Tasks are immutable values; edits replace the value and keep
the id. Snapshots are read-only views handed to projection and persistence.
"""
import unicodedata
from enum import Enum
from dataclasses import dataclass
from datetime import date, datetime
from types import MappingProxyType
from typing import Optional, List, Dict, Any, Tuple, Mapping, Iterable

from .errors import InvalidColumn, ValidationError


TIER_FIELDS = ("priority", "difficulty")
TAG_MODES = ("list", "single")


class Tier(Enum):
    """The three ordered priority/difficulty tiers."""
    LOW = 1
    MEDIUM = 2
    HIGH = 3

    @property
    def rank(self) -> int:
        return self.value

    def label(self, tier_field: str = "priority") -> str:
        return _TIER_LABELS[tier_field][self]

    @classmethod
    def from_label(cls, label: str) -> "Tier":
        """Parse a label from either vocabulary (Low/Medium/High or Easy/Medium/Hard)."""
        key = str(label).strip().lower()
        for labels in _TIER_LABELS.values():
            for tier, text in labels.items():
                if text.lower() == key:
                    return tier
        raise ValueError(f"Unknown tier label: {label!r}")

    @classmethod
    def from_str(cls, value: Any) -> "Tier":
        try:
            return cls.from_label(value)
        except ValueError:
            return cls.LOW


_TIER_LABELS: Dict[str, Dict[Tier, str]] = {
    "priority": {Tier.LOW: "Low", Tier.MEDIUM: "Medium", Tier.HIGH: "High"},
    "difficulty": {Tier.LOW: "Easy", Tier.MEDIUM: "Medium", Tier.HIGH: "Hard"},
}


@dataclass(frozen=True)
class TaskVariant:
    """Field naming and validation rules for task records and forms."""
    tier_field: str = "priority"      # "priority" | "difficulty"
    tag_mode: str = "list"            # "list" -> tags: [...], "single" -> tag: "..."
    require_description: bool = True
    require_deadline: bool = False

    def __post_init__(self):
        if self.tier_field not in TIER_FIELDS:
            raise ValueError(f"tier_field must be one of {TIER_FIELDS}, got {self.tier_field!r}")
        if self.tag_mode not in TAG_MODES:
            raise ValueError(f"tag_mode must be one of {TAG_MODES}, got {self.tag_mode!r}")


@dataclass(frozen=True)
class Task:
    """A single card on the board."""

    id: str
    title: str
    description: str = ""
    deadline: Optional[date] = None
    tags: Tuple[str, ...] = ()
    tier: Tier = Tier.LOW

    def to_record(self, variant: TaskVariant) -> Dict[str, Any]:
        """Serialize to the persisted TaskRecord shape."""
        record: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
        }
        if self.deadline is not None:
            record["deadline"] = self.deadline.isoformat()
        if variant.tag_mode == "single":
            record["tag"] = self.tags[0] if self.tags else ""
        else:
            record["tags"] = list(self.tags)
        record[variant.tier_field] = self.tier.label(variant.tier_field)
        return record

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "Task":
        """Deserialize a TaskRecord. Accepts either variant's field names.

        Raises ValueError when the record has no usable id or title.
        """
        task_id = data.get("id")
        title = data.get("title")
        if not isinstance(task_id, str) or not task_id:
            raise ValueError(f"Task record without id: {dict(data)!r}")
        if not isinstance(title, str) or not title.strip():
            raise ValueError(f"Task record {task_id} without title")

        try:
            deadline = parse_deadline(data.get("deadline"))
        except ValueError:
            deadline = None

        if "tags" in data:
            tags = normalize_tags(data.get("tags"))
        else:
            tags = normalize_tags([data.get("tag") or ""])

        label = data.get("priority", data.get("difficulty"))
        return cls(
            id=task_id,
            title=title,
            description=str(data.get("description") or ""),
            deadline=deadline,
            tags=tags,
            tier=Tier.from_str(label),
        )


@dataclass(frozen=True)
class Preferences:
    """UI preference flags persisted alongside the board."""
    dark_mode: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"darkMode": self.dark_mode}

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Preferences":
        if not isinstance(data, Mapping):
            return cls()
        return cls(dark_mode=bool(data.get("darkMode", False)))


class BoardSnapshot:
    """Immutable view of the full board: column name -> tuple of tasks."""

    __slots__ = ("_columns",)

    def __init__(self, columns: Mapping[str, Iterable[Task]]):
        self._columns: Mapping[str, Tuple[Task, ...]] = MappingProxyType(
            {name: tuple(tasks) for name, tasks in columns.items()}
        )

    @property
    def columns(self) -> Mapping[str, Tuple[Task, ...]]:
        return self._columns

    @property
    def column_names(self) -> Tuple[str, ...]:
        return tuple(self._columns)

    def column(self, name: str) -> Tuple[Task, ...]:
        if name not in self._columns:
            raise InvalidColumn(name)
        return self._columns[name]

    def locate(self, task_id: str) -> Optional[Tuple[str, int]]:
        for name, tasks in self._columns.items():
            for index, task in enumerate(tasks):
                if task.id == task_id:
                    return name, index
        return None

    def get(self, task_id: str) -> Optional[Task]:
        found = self.locate(task_id)
        if found is None:
            return None
        name, index = found
        return self._columns[name][index]

    def task_ids(self) -> List[str]:
        return [task.id for tasks in self._columns.values() for task in tasks]

    def __len__(self) -> int:
        return sum(len(tasks) for tasks in self._columns.values())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BoardSnapshot):
            return NotImplemented
        return dict(self._columns) == dict(other._columns)

    def __repr__(self) -> str:
        counts = ", ".join(f"{name}: {len(tasks)}" for name, tasks in self._columns.items())
        return f"BoardSnapshot({counts})"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Form field parsing
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def parse_deadline(value: Any) -> Optional[date]:
    """ISO date string, date, or empty -> date or None. Raises ValueError on garbage."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value.strip()[:10])
    raise ValueError(f"Invalid deadline: {value!r}")


def normalize_tags(value: Any) -> Tuple[str, ...]:
    """Comma-separated string or list -> tuple of stripped, non-empty tags."""
    if value is None:
        return ()
    if isinstance(value, str):
        parts = value.split(",")
    else:
        parts = [str(v) for v in value]
    return tuple(p.strip() for p in parts if p and p.strip())


def validate_form(fields: Mapping[str, Any], variant: TaskVariant) -> Dict[str, Any]:
    """
    Validate a form-submission field bag and return Task attributes
    (everything but id).

    Raises ValidationError listing every missing or invalid field.
    """
    problems: List[str] = []

    title = str(fields.get("title") or "").strip()
    if not title or any(unicodedata.category(c) == "Cc" for c in title):
        problems.append("title")

    description = str(fields.get("description") or "")
    if variant.require_description and not description.strip():
        problems.append("description")

    deadline: Optional[date] = None
    try:
        deadline = parse_deadline(fields.get("deadline"))
    except (TypeError, ValueError):
        problems.append("deadline")
    else:
        if deadline is None and variant.require_deadline:
            problems.append("deadline")

    if variant.tag_mode == "single":
        raw_tag = fields.get("tag", fields.get("tags"))
        if isinstance(raw_tag, (list, tuple)):
            tags = normalize_tags(raw_tag)
            if len(tags) > 1:
                problems.append("tag")
        else:
            text = str(raw_tag or "").strip()
            tags = (text,) if text else ()
    else:
        tags = normalize_tags(fields.get("tags"))

    tier = Tier.LOW
    label = fields.get(variant.tier_field)
    if label is None:
        other = "difficulty" if variant.tier_field == "priority" else "priority"
        label = fields.get(other)
    if label not in (None, ""):
        try:
            tier = Tier.from_label(label)
        except ValueError:
            problems.append(variant.tier_field)

    if problems:
        raise ValidationError(problems)

    return {
        "title": title,
        "description": description,
        "deadline": deadline,
        "tags": tags,
        "tier": tier,
    }
