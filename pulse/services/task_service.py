from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime

from pulse.domain import recurrence
from pulse.domain.entities import DayAgenda, EditResult, Occurrence, TaskEntity, parse_occurrence_id
from pulse.domain.enums import EditMode, OccurrenceStatus, Priority
from pulse.domain.errors import InvalidOperation
from pulse.domain.filters import AgendaFilters
from pulse.domain.ports import OccurrenceStore, TaskStore

from . import occurrences
from .recurrence_editor import RecurrenceEditor

logger = logging.getLogger(__name__)

MISSED_STATUSES = (OccurrenceStatus.COMPLETED, OccurrenceStatus.SKIPPED)


class TaskService:
    def __init__(
        self,
        tasks: TaskStore,
        occurrence_store: OccurrenceStore,
        lookback_days: int = 90,
    ) -> None:
        self._tasks = tasks
        self._occurrences = occurrence_store
        self._editor = RecurrenceEditor(tasks, occurrence_store)
        self._lookback_days = lookback_days

    def list_occurrences(
        self,
        range_start: date | datetime,
        range_end: date | datetime,
    ) -> list[Occurrence]:
        first, last = _as_day(range_start), _as_day(range_end)
        tasks = self._tasks.list_tasks_in_window(first, last)
        overlay = self._occurrences.list_overrides(_recurring_ids(tasks), first, last)
        return occurrences.expand_tasks(tasks, range_start, range_end, overlay)

    def agenda_for(self, target: date, filters: AgendaFilters | None = None) -> DayAgenda:
        if filters is None:
            filters = AgendaFilters(target_date=target, lookback_days=self._lookback_days)
        elif filters.target_date != target:
            filters = replace(filters, target_date=target)
        tasks = self._tasks.list_tasks_in_window(filters.window_start, target)
        overlay = self._occurrences.list_overrides(_recurring_ids(tasks), filters.window_start, target)
        return occurrences.expand_for_date(tasks, filters, overlay)

    def get_task(self, task_id: str) -> TaskEntity | None:
        master_id, _ = parse_occurrence_id(task_id)
        return self._tasks.get_task(master_id)

    def create_task(self, data: dict) -> TaskEntity:
        normalized = self._normalize_data(data)
        if normalized.get("due_date") is None and normalized.get("start_time") is not None:
            normalized["due_date"] = normalized["start_time"].date()
        rule = normalized.get("recurrence_rule")
        if rule:
            if normalized.get("due_date") is None:
                raise InvalidOperation("A recurring task needs a due date or start time")
            recurrence.parse(rule)
        task = self._tasks.create_task(normalized)
        logger.info("Created task %s", task.id)
        return task

    def update_task(self, task_id: str, data: dict) -> TaskEntity | None:
        task = self.get_task(task_id)
        if not task:
            return None
        normalized = self._normalize_data(data)
        completed = normalized.get("is_completed")
        if completed and "completed_at" not in normalized:
            normalized["completed_at"] = datetime.utcnow()
        if completed is False:
            normalized["completed_at"] = None
        return self._editor.update(task, normalized, mode=EditMode.ALL).master

    def delete_task(self, task_id: str) -> None:
        master_id, _ = parse_occurrence_id(task_id)
        self._tasks.delete_task(master_id)
        logger.info("Deleted task %s", master_id)

    def restore_task(self, task_id: str) -> TaskEntity | None:
        return self._tasks.restore_task(task_id)

    def mark_done(self, task_id: str, occurrence_date: date | None = None) -> TaskEntity | None:
        task, day = self._resolve(task_id, occurrence_date)
        if not task:
            return None
        if not task.is_recurring:
            return self.update_task(task.id, {"is_completed": True})
        self._occurrences.set_status(task.id, day, OccurrenceStatus.COMPLETED)
        return task

    def mark_undone(self, task_id: str, occurrence_date: date | None = None) -> TaskEntity | None:
        task, day = self._resolve(task_id, occurrence_date)
        if not task:
            return None
        if not task.is_recurring:
            return self.update_task(task.id, {"is_completed": False})
        self._occurrences.clear_status(task.id, day)
        return task

    def skip_occurrence(self, task_id: str, occurrence_date: date | None = None) -> TaskEntity | None:
        task, day = self._resolve(task_id, occurrence_date)
        if not task:
            return None
        if not task.is_recurring:
            raise InvalidOperation(f"Task {task.id} is not recurring; only occurrences can be skipped")
        self._occurrences.set_status(task.id, day, OccurrenceStatus.SKIPPED)
        return task

    def resolve_missed(
        self,
        task_id: str,
        status: OccurrenceStatus | str,
        reference: date | None = None,
    ) -> list[date]:
        """Mark every unresolved past occurrence of a series at once."""
        status = OccurrenceStatus(status)
        if status not in MISSED_STATUSES:
            raise InvalidOperation(f"Missed occurrences can only be {' or '.join(MISSED_STATUSES)}")
        task = self.get_task(task_id)
        if not task or not task.is_recurring or task.anchor_date is None:
            return []
        reference = reference or date.today()
        overlay = self._occurrences.list_overrides([task.id], task.anchor_date, reference)
        missed = occurrences.past_incomplete_dates(task, overlay, reference)
        if missed:
            self._occurrences.set_statuses(task.id, missed, status)
            logger.info("Marked %d missed occurrences of task %s as %s", len(missed), task.id, status)
        return missed

    def next_occurrence_date(self, task_id: str, after: date | datetime | None = None) -> date | None:
        task = self.get_task(task_id)
        if not task:
            return None
        return occurrences.next_occurrence_date(task, after or datetime.now())

    def edit_occurrence(
        self,
        task_id: str,
        updates: dict,
        occurrence_date: date | None = None,
        mode: EditMode | str | None = None,
    ) -> EditResult:
        task, day = self._resolve(task_id, occurrence_date, default_to_anchor=False)
        return self._editor.update(task, self._normalize_data(updates), occurrence_date=day, mode=mode)

    def delete_occurrence(
        self,
        task_id: str,
        occurrence_date: date | None = None,
        mode: EditMode | str | None = None,
    ) -> EditResult:
        task, day = self._resolve(task_id, occurrence_date, default_to_anchor=False)
        return self._editor.delete(task, occurrence_date=day, mode=mode)

    def detach_occurrence(
        self,
        task_id: str,
        occurrence_date: date | None = None,
        updates: dict | None = None,
    ) -> EditResult:
        task, day = self._resolve(task_id, occurrence_date, default_to_anchor=False)
        if day is None:
            raise InvalidOperation("Detaching needs the date of the occurrence")
        return self._editor.detach(task, day, self._normalize_data(updates or {}))

    def _resolve(
        self,
        task_id: str,
        occurrence_date: date | None,
        default_to_anchor: bool = True,
    ) -> tuple[TaskEntity | None, date | None]:
        master_id, parsed = parse_occurrence_id(task_id)
        task = self._tasks.get_task(master_id)
        day = occurrence_date or parsed
        if day is None and default_to_anchor and task is not None:
            day = task.anchor_date
        return task, day

    def _normalize_data(self, data: dict) -> dict:
        normalized = dict(data)
        if isinstance(normalized.get("priority"), Priority):
            normalized["priority"] = normalized["priority"].value
        if "recurrence_rule" in normalized and not normalized["recurrence_rule"]:
            normalized["recurrence_rule"] = None
        for key in ("start_time", "end_time"):
            if isinstance(normalized.get(key), datetime):
                normalized[key] = recurrence.as_local(normalized[key])
        return normalized


def _recurring_ids(tasks: list[TaskEntity]) -> list[str]:
    return [task.id for task in tasks if task.is_recurring]


def _as_day(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return recurrence.as_local(value).date()
    return value
