from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime, time, timedelta

from pulse.domain import recurrence
from pulse.domain.entities import DayAgenda, Occurrence, TaskEntity
from pulse.domain.errors import MalformedRule
from pulse.domain.filters import AgendaFilters
from pulse.domain.overlay import OccurrenceOverlay

logger = logging.getLogger(__name__)


def generate(
    task: TaskEntity,
    range_start: date | datetime,
    range_end: date | datetime,
    overlay: OccurrenceOverlay | None = None,
) -> list[Occurrence]:
    """Expand ``task`` into its occurrences inside the inclusive window.

    The anchor date (``start_time`` or ``due_date``) is always the master
    occurrence: it is emitted once whenever it falls inside the window and is
    neither excluded nor archived, even if the rule's BY-parts would skip it.
    A broken rule degrades to the single master occurrence.
    """
    overlay = overlay if overlay is not None else OccurrenceOverlay()
    if not task.is_recurring:
        return [_single(task, overlay)]

    dtstart = task.anchor
    if dtstart is None:
        logger.warning("Recurring task %s has no due_date/start_time anchor", task.id)
        return [_single(task, overlay)]

    try:
        spec = recurrence.parse(task.recurrence_rule)
        start, end = _window(range_start, range_end)
        instants = recurrence.expand(spec, dtstart, start, end)
    except (MalformedRule, ValueError, TypeError) as exc:
        logger.warning("Falling back to a single occurrence for task %s: %s", task.id, exc)
        return [_single(task, overlay)]

    anchor_date = dtstart.date()
    if (
        start <= dtstart <= end
        and anchor_date not in spec.exdates
        and not any(instant.date() == anchor_date for instant in instants)
    ):
        instants.insert(0, dtstart)

    duration = task.duration
    occurrences: list[Occurrence] = []
    seen: set[date] = set()
    for instant in instants:
        day = instant.date()
        if day in seen or overlay.is_suppressed(task.id, day):
            continue
        seen.add(day)
        start_time = instant if task.start_time is not None else None
        end_time = start_time + duration if start_time is not None and duration is not None else None
        occurrences.append(
            Occurrence(
                task=task,
                occurrence_date=day,
                due_date=day,
                start_time=start_time,
                end_time=end_time,
                is_virtual=day != anchor_date,
                status=overlay.status_for(task.id, day),
            )
        )
    return occurrences


def expand_tasks(
    tasks: Iterable[TaskEntity],
    range_start: date | datetime,
    range_end: date | datetime,
    overlay: OccurrenceOverlay | None = None,
) -> list[Occurrence]:
    occurrences = [
        occurrence
        for task in tasks
        for occurrence in generate(task, range_start, range_end, overlay)
    ]
    occurrences.sort(key=_sort_key)
    return occurrences


def next_occurrence_date(task: TaskEntity, after: date | datetime) -> date | None:
    """Date of the first occurrence strictly after ``after``.

    A plain date means "after that whole day".
    """
    if not task.is_recurring or task.anchor is None:
        return None
    if not isinstance(after, datetime):
        after = datetime.combine(after, time.max)
    after = recurrence.as_local(after)
    try:
        spec = recurrence.parse(task.recurrence_rule)
        if task.anchor > after and task.anchor.date() not in spec.exdates:
            return task.anchor.date()
        found = recurrence.next_after(spec, task.anchor, after)
    except (MalformedRule, ValueError) as exc:
        logger.warning("Cannot compute next occurrence for task %s: %s", task.id, exc)
        return None
    return found.date() if found is not None else None


def past_incomplete_dates(
    task: TaskEntity,
    overlay: OccurrenceOverlay | None,
    reference: date,
) -> list[date]:
    anchor_date = task.anchor_date
    if not task.is_recurring or anchor_date is None or anchor_date >= reference:
        return []
    occurrences = generate(task, anchor_date, reference - timedelta(days=1), overlay)
    return [o.occurrence_date for o in occurrences if o.status is None]


def expand_for_date(
    tasks: Iterable[TaskEntity],
    filters: AgendaFilters,
    overlay: OccurrenceOverlay | None = None,
) -> DayAgenda:
    target = filters.target_date
    agenda = DayAgenda()
    for task in tasks:
        if task.is_recurring:
            candidates = generate(task, filters.window_start, target, overlay)
        else:
            candidates = [_single(task, overlay or OccurrenceOverlay())]

        for occurrence in candidates:
            day = occurrence.due_date
            if day is None:
                continue
            if day == target:
                if occurrence.is_completed:
                    if filters.show_completed:
                        agenda.completed.append(occurrence)
                elif occurrence.status is None:
                    agenda.active.append(occurrence)
            elif filters.includes_overdue and day < target and _is_unresolved(occurrence):
                agenda.active.append(occurrence)

    agenda.active.sort(key=_sort_key)
    agenda.completed.sort(key=_sort_key)
    return agenda


def _single(task: TaskEntity, overlay: OccurrenceOverlay) -> Occurrence:
    day = task.anchor_date
    return Occurrence(
        task=task,
        occurrence_date=day,
        due_date=task.due_date if task.due_date is not None else day,
        start_time=task.start_time,
        end_time=task.end_time,
        is_virtual=False,
        status=overlay.status_for(task.id, day),
    )


def _is_unresolved(occurrence: Occurrence) -> bool:
    return occurrence.status is None and not occurrence.is_completed


def _window(range_start: date | datetime, range_end: date | datetime) -> tuple[datetime, datetime]:
    if isinstance(range_start, datetime):
        start = recurrence.as_local(range_start)
    else:
        start = datetime.combine(range_start, time.min)
    if isinstance(range_end, datetime):
        end = recurrence.as_local(range_end)
    else:
        end = datetime.combine(range_end, time.max)
    return start, end


def _sort_key(occurrence: Occurrence) -> tuple:
    return (
        occurrence.due_date or date.max,
        occurrence.start_time or datetime.min,
        occurrence.task.title,
    )
