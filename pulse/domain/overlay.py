from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from datetime import date

from .enums import OccurrenceStatus

OverlayKey = tuple[str, date]


class OccurrenceOverlay(Mapping[OverlayKey, OccurrenceStatus]):
    def __init__(self, entries: Mapping[OverlayKey, OccurrenceStatus] | None = None) -> None:
        self._entries: dict[OverlayKey, OccurrenceStatus] = {}
        for (task_id, day), status in (entries or {}).items():
            self.set(task_id, day, status)

    @classmethod
    def from_rows(cls, rows: Iterable[tuple[str, date, str]]) -> OccurrenceOverlay:
        overlay = cls()
        for task_id, day, status in rows:
            overlay.set(task_id, day, status)
        return overlay

    @classmethod
    def from_mapping(cls, mapping: Mapping[object, str]) -> OccurrenceOverlay:
        """Accept ``{(task_id, date): status}`` or ``{"<task_id>_<YYYY-MM-DD>": status}``."""
        overlay = cls()
        for key, status in mapping.items():
            if isinstance(key, tuple):
                task_id, day = key
            else:
                task_id, _, day_text = str(key).rpartition("_")
                day = date.fromisoformat(day_text)
            overlay.set(task_id, day, status)
        return overlay

    def __getitem__(self, key: OverlayKey) -> OccurrenceStatus:
        return self._entries[key]

    def __iter__(self) -> Iterator[OverlayKey]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"OccurrenceOverlay({len(self._entries)} entries)"

    def status_for(self, task_id: str, day: date | None) -> OccurrenceStatus | None:
        if day is None:
            return None
        return self._entries.get((task_id, day))

    def is_suppressed(self, task_id: str, day: date | None) -> bool:
        return self.status_for(task_id, day) == OccurrenceStatus.ARCHIVED

    def set(self, task_id: str, day: date, status: OccurrenceStatus | str) -> None:
        self._entries[(task_id, day)] = OccurrenceStatus(status)

    def clear(self, task_id: str, day: date) -> None:
        self._entries.pop((task_id, day), None)

    def for_task(self, task_id: str) -> dict[date, OccurrenceStatus]:
        return {day: status for (owner, day), status in self._entries.items() if owner == task_id}
