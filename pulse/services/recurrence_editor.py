from __future__ import annotations

import logging
import warnings
from dataclasses import replace
from datetime import date, datetime, time, timedelta
from typing import Callable

from pulse.domain import recurrence
from pulse.domain.entities import EditResult, TaskEntity
from pulse.domain.enums import EditMode, OccurrenceStatus
from pulse.domain.errors import (
    InvalidOccurrenceDate,
    InvalidOperation,
    MalformedRule,
    PreconditionFailed,
    StorageFailure,
)
from pulse.domain.ports import OccurrenceStore, TaskStore
from pulse.domain.recurrence import RuleSpec

logger = logging.getLogger(__name__)

COPIED_FIELDS = ("title", "description", "priority", "project_id", "parent_id", "user_id")
ONE_SECOND = timedelta(seconds=1)


class RecurrenceEditor:
    """Turns an edit or delete of one occurrence into writes on the stores.

    ``single`` edits detach the occurrence into a standalone task, ``single``
    deletes archive it in the overlay, ``following`` caps the series with an
    UNTIL bound and starts a successor series, ``all`` writes the master row.
    Writes happen in a fixed order (rule first, insert second) and are not
    rolled back if a later one fails.
    """

    def __init__(self, tasks: TaskStore, occurrences: OccurrenceStore) -> None:
        self._tasks = tasks
        self._occurrences = occurrences

    def resolve_mode(
        self,
        task: TaskEntity | None,
        occurrence_date: date | None,
        mode: EditMode | str | None = None,
    ) -> EditMode:
        task = _require(task)
        requested = EditMode(mode) if mode is not None else None
        if not task.is_recurring:
            return EditMode.ALL
        if occurrence_date is None:
            if requested in (EditMode.SINGLE, EditMode.FOLLOWING):
                raise InvalidOperation(
                    f"A '{requested}' change to task {task.id} needs an occurrence date"
                )
            return EditMode.ALL
        return requested or EditMode.SINGLE

    def update(
        self,
        task: TaskEntity | None,
        updates: dict,
        *,
        occurrence_date: date | None = None,
        mode: EditMode | str | None = None,
    ) -> EditResult:
        task = _require(task)
        resolved = self.resolve_mode(task, occurrence_date, mode)
        if resolved == EditMode.ALL:
            return EditResult(EditMode.ALL, master=self._update_series(task, updates))

        spec = _parse_for_edit(task)
        self._check_occurrence_date(task, spec, occurrence_date)
        if resolved == EditMode.SINGLE:
            return self._detach(task, occurrence_date, updates)
        return self._split(task, spec, occurrence_date, updates)

    def delete(
        self,
        task: TaskEntity | None,
        *,
        occurrence_date: date | None = None,
        mode: EditMode | str | None = None,
    ) -> EditResult:
        task = _require(task)
        resolved = self.resolve_mode(task, occurrence_date, mode)
        if resolved == EditMode.ALL:
            return self._delete_series(task)

        spec = _parse_for_edit(task)
        self._check_occurrence_date(task, spec, occurrence_date)
        if resolved == EditMode.SINGLE:
            self._occurrences.set_status(task.id, occurrence_date, OccurrenceStatus.ARCHIVED)
            logger.info("Archived occurrence %s of task %s", occurrence_date, task.id)
            return EditResult(EditMode.SINGLE, master=task)

        if occurrence_date <= task.anchor_date:
            return self._delete_series(task)
        master = self._truncate(task, _split_instant(task, occurrence_date))
        return EditResult(EditMode.FOLLOWING, master=master)

    def detach(
        self,
        task: TaskEntity | None,
        occurrence_date: date,
        updates: dict | None = None,
    ) -> EditResult:
        task = _require(task)
        if not task.is_recurring:
            raise InvalidOperation(f"Task {task.id} is not recurring; nothing to detach")
        spec = _parse_for_edit(task)
        self._check_occurrence_date(task, spec, occurrence_date)
        return self._detach(task, occurrence_date, updates or {})

    def _detach(self, task: TaskEntity, occurrence_date: date, updates: dict) -> EditResult:
        master = task
        rule = recurrence.add_exclusion_date(task.recurrence_rule, occurrence_date)
        if rule != task.recurrence_rule:
            master = self._write(task.id, {"recurrence_rule": rule})

        start, end = _times_on(task, occurrence_date)
        data = _merge_updates(
            {**_copy_fields(task), "due_date": occurrence_date, "start_time": start, "end_time": end},
            updates,
            task.duration,
        )
        data["recurrence_rule"] = None
        created = self._tasks.create_task(data)
        logger.info("Detached %s from task %s as task %s", occurrence_date, task.id, created.id)
        return EditResult(EditMode.SINGLE, master=master, created=created)

    def _split(
        self,
        task: TaskEntity,
        spec: RuleSpec,
        occurrence_date: date,
        updates: dict,
    ) -> EditResult:
        if occurrence_date <= task.anchor_date:
            logger.info("Following-edit at the start of task %s rewrites the whole series", task.id)
            return EditResult(EditMode.ALL, master=self._update_series(task, updates))

        new_rule = updates.get("recurrence_rule")
        if new_rule:
            _parse_rule(task.id, new_rule)

        split_at = _split_instant(task, occurrence_date)
        master = self._truncate(task, split_at)

        start, end = _times_on(task, occurrence_date)
        data = _merge_updates(
            {**_copy_fields(task), "due_date": occurrence_date, "start_time": start, "end_time": end},
            updates,
            task.duration,
        )
        new_anchor = data["start_time"] or datetime.combine(data["due_date"], time.min)
        if "recurrence_rule" in updates and not new_rule:
            data["recurrence_rule"] = None
        else:
            data["recurrence_rule"] = new_rule or _successor_rule(task, spec, occurrence_date, split_at, new_anchor)
        data["is_completed"] = False
        created = self._tasks.create_task(data)
        logger.info("Split task %s at %s into new series %s", task.id, occurrence_date, created.id)
        return EditResult(EditMode.FOLLOWING, master=master, created=created)

    def _truncate(self, task: TaskEntity, split_at: datetime) -> TaskEntity:
        rule = _mutate(recurrence.add_until_bound, task, split_at - ONE_SECOND)
        return self._write(task.id, {"recurrence_rule": rule})

    def _delete_series(self, task: TaskEntity) -> EditResult:
        self._tasks.delete_task(task.id)
        logger.info("Deleted task %s", task.id)
        return EditResult(EditMode.ALL)

    def _update_series(self, task: TaskEntity, updates: dict) -> TaskEntity:
        data = _localize(dict(updates))
        rule = task.recurrence_rule
        if data.get("recurrence_rule"):
            _parse_rule(task.id, data["recurrence_rule"])
            rule = data["recurrence_rule"]

        if task.is_recurring and rule and task.anchor_date is not None:
            anchor_date = task.anchor_date
            if data.get("start_time") is not None:
                # Time edits from any occurrence keep the master on its own date.
                new_start = datetime.combine(anchor_date, data["start_time"].time())
                if data.get("end_time") is not None:
                    data["end_time"] = new_start + (data["end_time"] - data["start_time"])
                elif task.duration is not None:
                    data["end_time"] = new_start + task.duration
                data["start_time"] = new_start
                data["due_date"] = anchor_date
                rule = _sync_dtstart(task.id, rule, new_start)
            elif data.get("due_date") is not None and data["due_date"] != anchor_date:
                moved_to = data["due_date"]
                rule = _mutate(recurrence.update_byday, replace(task, recurrence_rule=rule), moved_to)
                new_start = datetime.combine(moved_to, time.min)
                if task.start_time is not None:
                    new_start = datetime.combine(moved_to, task.start_time.time())
                    data["start_time"] = new_start
                    if task.duration is not None:
                        data["end_time"] = new_start + task.duration
                rule = _sync_dtstart(task.id, rule, new_start)
            if rule != task.recurrence_rule:
                data["recurrence_rule"] = rule

        if not data:
            return task
        return self._write(task.id, data)

    def _check_occurrence_date(self, task: TaskEntity, spec: RuleSpec, day: date) -> None:
        if day == task.anchor_date and day not in spec.exdates:
            return
        try:
            hits = recurrence.expand(
                spec, task.anchor, datetime.combine(day, time.min), datetime.combine(day, time.max)
            )
        except (ValueError, TypeError):
            hits = []
        if not hits:
            message = f"{day.isoformat()} is not an occurrence of task {task.id}"
            logger.warning(message)
            warnings.warn(message, InvalidOccurrenceDate, stacklevel=3)

    def _write(self, task_id: str, data: dict) -> TaskEntity:
        updated = self._tasks.update_task(task_id, data)
        if updated is None:
            raise StorageFailure(f"Task {task_id} no longer exists")
        return updated


def _require(task: TaskEntity | None) -> TaskEntity:
    if task is None:
        raise PreconditionFailed("The task must be loaded before it can be edited")
    return task


def _parse_rule(task_id: str, rule: str) -> RuleSpec:
    try:
        return recurrence.parse(rule)
    except MalformedRule as exc:
        raise InvalidOperation(f"Task {task_id} has an unreadable recurrence rule: {exc.reason}") from exc


def _parse_for_edit(task: TaskEntity) -> RuleSpec:
    spec = _parse_rule(task.id, task.recurrence_rule)
    if task.anchor is None:
        raise InvalidOperation(f"Recurring task {task.id} has no due date to anchor its rule")
    return spec


def _mutate(fn: Callable[[str, object], str], task: TaskEntity, arg: object) -> str:
    try:
        return fn(task.recurrence_rule, arg)
    except MalformedRule as exc:
        raise InvalidOperation(f"Task {task.id} has an unreadable recurrence rule: {exc.reason}") from exc


def _sync_dtstart(task_id: str, rule: str, start: datetime) -> str:
    if _parse_rule(task_id, rule).dtstart is None:
        return rule
    return recurrence.set_dtstart(rule, start)


def _successor_rule(
    task: TaskEntity,
    spec: RuleSpec,
    occurrence_date: date,
    split_at: datetime,
    new_anchor: datetime,
) -> str:
    successor = spec
    if spec.count is not None:
        remaining = spec.count - recurrence.count_before(spec, task.anchor, split_at)
        successor = successor.with_part("COUNT", str(max(remaining, 1)))
    successor = replace(successor, exdates=tuple(d for d in spec.exdates if d >= occurrence_date))
    if (
        new_anchor.weekday() != occurrence_date.weekday()
        and successor.freq == "WEEKLY"
        and len(successor.byday) == 1
    ):
        successor = successor.with_part("BYDAY", recurrence.WEEKDAY_CODES[new_anchor.weekday()])
    if successor.dtstart is not None:
        successor = replace(successor, dtstart=f"DTSTART:{recurrence.format_ical_datetime(new_anchor)}")
    return recurrence.serialize(successor)


def _split_instant(task: TaskEntity, occurrence_date: date) -> datetime:
    start, _ = _times_on(task, occurrence_date)
    return start or datetime.combine(occurrence_date, time.min)


def _times_on(task: TaskEntity, day: date) -> tuple[datetime | None, datetime | None]:
    if task.start_time is None:
        return None, None
    start = datetime.combine(day, task.start_time.time())
    duration = task.duration
    return start, start + duration if duration is not None else None


def _copy_fields(task: TaskEntity) -> dict:
    return {name: getattr(task, name) for name in COPIED_FIELDS}


def _localize(data: dict) -> dict:
    for key in ("start_time", "end_time"):
        if isinstance(data.get(key), datetime):
            data[key] = recurrence.as_local(data[key])
    return data


def _merge_updates(data: dict, updates: dict, duration: timedelta | None) -> dict:
    changes = _localize(dict(updates))
    merged = {**data, **changes}
    new_start = changes.get("start_time")
    if new_start is not None:
        if "end_time" not in changes:
            merged["end_time"] = new_start + duration if duration is not None else None
        if "due_date" not in changes:
            merged["due_date"] = new_start.date()
    elif changes.get("due_date") is not None and merged.get("start_time") is not None:
        moved = datetime.combine(changes["due_date"], merged["start_time"].time())
        if "end_time" not in changes:
            merged["end_time"] = moved + duration if duration is not None else None
        merged["start_time"] = moved
    return merged
