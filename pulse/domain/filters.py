from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta

from .enums import AgendaMode


@dataclass(frozen=True)
class AgendaFilters:
    target_date: date
    mode: AgendaMode = AgendaMode.TODAY
    lookback_days: int = 90
    show_completed: bool = True

    @property
    def window_start(self) -> date:
        if self.mode == AgendaMode.TODAY:
            return self.target_date - timedelta(days=self.lookback_days)
        return self.target_date

    @property
    def includes_overdue(self) -> bool:
        return self.mode == AgendaMode.TODAY
