from __future__ import annotations

from enum import StrEnum


class OccurrenceStatus(StrEnum):
    COMPLETED = "completed"
    SKIPPED = "skipped"
    ARCHIVED = "archived"


class EditMode(StrEnum):
    SINGLE = "single"
    FOLLOWING = "following"
    ALL = "all"


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AgendaMode(StrEnum):
    TODAY = "today"
    TOMORROW = "tomorrow"
