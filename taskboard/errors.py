"""
Board error taxonomy.

  ValidationError              - user-facing, mutation rejected
  InvalidColumn / IndexOutOfRange /
  DuplicateTask / TaskNotFound - caller contract violations
  PersistenceError             - store unreachable, quota, corrupt record
"""
from typing import Iterable, List


class BoardError(Exception):
    """Base for all board errors."""
    pass


class ValidationError(BoardError):
    """Raised when a form field bag is missing or has invalid required fields."""

    def __init__(self, fields: Iterable[str], message: str = ""):
        self.fields: List[str] = list(fields)
        super().__init__(message or f"Missing or invalid fields: {', '.join(self.fields)}")


class InvalidColumn(BoardError):
    """Raised when a column name is not one of the configured columns."""

    def __init__(self, column: str):
        self.column = column
        super().__init__(f"Unknown column: {column!r}")


class IndexOutOfRange(BoardError):
    """Raised when a position is outside the valid range for a column."""

    def __init__(self, column: str, index: int, upper: int):
        self.column = column
        self.index = index
        self.upper = upper
        super().__init__(f"Index {index} out of range for column {column!r} (0..{upper})")


class DuplicateTask(BoardError):
    """Raised when inserting a task whose id is live or was retired."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task id {task_id!r} already used")


class TaskNotFound(BoardError):
    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task {task_id!r} not found")


class PersistenceError(BoardError):
    """Raised by key-value backends; recovered by the persistence bridge."""
    pass


class QuotaExceeded(PersistenceError):
    def __init__(self, key: str, size: int, limit: int):
        self.key = key
        self.size = size
        self.limit = limit
        super().__init__(f"Record {key!r} is {size} bytes, limit is {limit}")


class ConfigError(Exception):
    """Raised when configuration is invalid or incomplete."""
    pass
