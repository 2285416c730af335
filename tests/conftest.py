from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from collections.abc import Iterable
from dataclasses import replace
from datetime import date, datetime

import pytest

from pulse.domain.entities import TaskEntity
from pulse.domain.enums import OccurrenceStatus, Priority
from pulse.domain.overlay import OccurrenceOverlay
from pulse.services.recurrence_editor import RecurrenceEditor
from pulse.services.task_service import TaskService


def _coerce(data: dict) -> dict:
    fields = dict(data)
    if fields.get("priority") is not None:
        fields["priority"] = Priority(fields["priority"])
    return fields


class FakeTaskRepo:
    def __init__(self) -> None:
        self.tasks: dict[str, TaskEntity] = {}
        self.writes: list[tuple[str, str]] = []
        self._id = 1

    def add(self, **fields) -> TaskEntity:
        fields.setdefault("id", f"task-{self._id}")
        fields.setdefault("title", "Standup")
        self._id += 1
        task = TaskEntity(**_coerce(fields))
        self.tasks[task.id] = task
        return task

    def get_task(self, task_id: str) -> TaskEntity | None:
        return self.tasks.get(task_id)

    def list_tasks_in_window(self, range_start: date, range_end: date) -> list[TaskEntity]:
        return [task for task in self.tasks.values() if task.deleted_at is None]

    def create_task(self, data: dict) -> TaskEntity:
        task = self.add(**data)
        self.writes.append(("create", task.id))
        return task

    def update_task(self, task_id: str, data: dict) -> TaskEntity | None:
        task = self.tasks.get(task_id)
        if not task:
            return None
        updated = replace(task, **_coerce(data))
        self.tasks[task_id] = updated
        self.writes.append(("update", task_id))
        return updated

    def delete_task(self, task_id: str) -> None:
        task = self.tasks.get(task_id)
        if task:
            self.tasks[task_id] = replace(task, deleted_at=datetime(2026, 1, 1))
        self.writes.append(("delete", task_id))

    def restore_task(self, task_id: str) -> TaskEntity | None:
        return self.update_task(task_id, {"deleted_at": None})


class FakeOccurrenceRepo:
    def __init__(self) -> None:
        self.overlay = OccurrenceOverlay()

    def list_overrides(
        self,
        task_ids: Iterable[str],
        range_start: date | None = None,
        range_end: date | None = None,
    ) -> OccurrenceOverlay:
        ids = set(task_ids)
        return OccurrenceOverlay(
            {
                (task_id, day): status
                for (task_id, day), status in self.overlay.items()
                if task_id in ids
                and (range_start is None or day >= range_start)
                and (range_end is None or day <= range_end)
            }
        )

    def set_status(self, task_id: str, day: date, status: OccurrenceStatus) -> None:
        self.overlay.set(task_id, day, status)

    def set_statuses(self, task_id: str, days: Iterable[date], status: OccurrenceStatus) -> None:
        for day in days:
            self.overlay.set(task_id, day, status)

    def clear_status(self, task_id: str, day: date) -> None:
        self.overlay.clear(task_id, day)


@pytest.fixture
def task_repo() -> FakeTaskRepo:
    return FakeTaskRepo()


@pytest.fixture
def occurrence_repo() -> FakeOccurrenceRepo:
    return FakeOccurrenceRepo()


@pytest.fixture
def editor(task_repo: FakeTaskRepo, occurrence_repo: FakeOccurrenceRepo) -> RecurrenceEditor:
    return RecurrenceEditor(task_repo, occurrence_repo)


@pytest.fixture
def service(task_repo: FakeTaskRepo, occurrence_repo: FakeOccurrenceRepo) -> TaskService:
    return TaskService(task_repo, occurrence_repo)
