from __future__ import annotations


class CadenceError(Exception):
    """Base class for errors raised by the recurrence engine."""


class InvalidRecurrenceError(CadenceError, ValueError):
    """Rule parameters are incomplete or contradictory for the declared type."""


class RecurrenceNotFoundError(CadenceError, LookupError):
    def __init__(self, rule_id: str) -> None:
        super().__init__(f"Recurrence {rule_id} not found")
        self.rule_id = rule_id


class TaskNotFoundError(CadenceError, LookupError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class PersistenceError(CadenceError):
    """A store operation failed; the current invocation is aborted."""


class StaleRecurrenceError(CadenceError):
    """The rule changed since it was read; reload and retry the edit."""

    def __init__(self, rule_id: str, expected: int, actual: int | None = None) -> None:
        super().__init__(f"Recurrence {rule_id} changed since version {expected}")
        self.rule_id = rule_id
        self.expected = expected
        self.actual = actual
