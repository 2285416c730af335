from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from typing import Optional, Protocol

from .entities import TaskEntity
from .enums import OccurrenceStatus
from .overlay import OccurrenceOverlay


class TaskStore(Protocol):
    def get_task(self, task_id: str) -> Optional[TaskEntity]: ...

    def list_tasks_in_window(self, range_start: date, range_end: date) -> list[TaskEntity]: ...

    def create_task(self, data: dict) -> TaskEntity: ...

    def update_task(self, task_id: str, data: dict) -> Optional[TaskEntity]: ...

    def delete_task(self, task_id: str) -> None: ...

    def restore_task(self, task_id: str) -> Optional[TaskEntity]: ...


class OccurrenceStore(Protocol):
    def list_overrides(
        self,
        task_ids: Iterable[str],
        range_start: date | None = None,
        range_end: date | None = None,
    ) -> OccurrenceOverlay: ...

    def set_status(self, task_id: str, day: date, status: OccurrenceStatus) -> None: ...

    def set_statuses(self, task_id: str, days: Iterable[date], status: OccurrenceStatus) -> None: ...

    def clear_status(self, task_id: str, day: date) -> None: ...
