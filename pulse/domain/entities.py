from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Optional

from .enums import EditMode, OccurrenceStatus, Priority

VIRTUAL_ID_SEPARATOR = "_recur_"


@dataclass(frozen=True)
class TaskEntity:
    id: str
    title: str
    description: str | None = None
    priority: Priority = Priority.MEDIUM
    due_date: Optional[date] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    recurrence_rule: str | None = None
    is_completed: bool = False
    completed_at: Optional[datetime] = None
    project_id: str | None = None
    parent_id: str | None = None
    user_id: str | None = None
    sort_order: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @property
    def is_recurring(self) -> bool:
        return bool(self.recurrence_rule)

    @property
    def anchor_date(self) -> Optional[date]:
        if self.start_time is not None:
            return self.start_time.date()
        return self.due_date

    @property
    def anchor(self) -> Optional[datetime]:
        if self.start_time is not None:
            return self.start_time
        if self.due_date is not None:
            return datetime.combine(self.due_date, time.min)
        return None

    @property
    def duration(self):
        if self.start_time is None or self.end_time is None:
            return None
        return self.end_time - self.start_time


@dataclass(frozen=True)
class Occurrence:
    task: TaskEntity
    occurrence_date: Optional[date]
    due_date: Optional[date]
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    is_virtual: bool = False
    status: OccurrenceStatus | None = None

    @property
    def master_id(self) -> str:
        return self.task.id

    @property
    def id(self) -> str:
        if not self.is_virtual or self.occurrence_date is None:
            return self.task.id
        instant = self.start_time or datetime.combine(self.occurrence_date, time.min)
        return make_occurrence_id(self.task.id, instant)

    @property
    def is_completed(self) -> bool:
        if self.task.is_recurring:
            return self.status == OccurrenceStatus.COMPLETED
        return self.task.is_completed or self.status == OccurrenceStatus.COMPLETED

    @property
    def is_master(self) -> bool:
        return self.task.is_recurring and not self.is_virtual


@dataclass(frozen=True)
class EditResult:
    mode: EditMode
    master: TaskEntity | None = None
    created: TaskEntity | None = None


@dataclass(frozen=True)
class DayAgenda:
    active: list[Occurrence] = field(default_factory=list)
    completed: list[Occurrence] = field(default_factory=list)


def make_occurrence_id(master_id: str, instant: datetime) -> str:
    return f"{master_id}{VIRTUAL_ID_SEPARATOR}{int(instant.timestamp() * 1000)}"


def parse_occurrence_id(display_id: str) -> tuple[str, Optional[date]]:
    master_id, sep, suffix = display_id.partition(VIRTUAL_ID_SEPARATOR)
    if not sep:
        return display_id, None
    try:
        stamp = int(suffix)
    except ValueError:
        return master_id, None
    return master_id, datetime.fromtimestamp(stamp / 1000).date()
