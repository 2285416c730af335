from __future__ import annotations


class TaskEngineError(Exception):
    """Base class for errors raised by the task engine."""


class MalformedRule(TaskEngineError, ValueError):
    def __init__(self, rule: str | None, reason: str) -> None:
        super().__init__(f"Malformed recurrence rule {rule!r}: {reason}")
        self.rule = rule
        self.reason = reason


class InvalidOperation(TaskEngineError):
    pass


class PreconditionFailed(TaskEngineError):
    pass


class StorageFailure(TaskEngineError):
    pass


class InvalidOccurrenceDate(UserWarning):
    """The edited date is not one the task's rule generates."""
