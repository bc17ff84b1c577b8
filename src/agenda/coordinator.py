"""Explicit refresh entry point for the calendar screens.

Screens raise plain calls instead of relying on focus listeners: after every
fetch they call :meth:`AgendaCoordinator.refresh`, after a create/edit they
call :meth:`on_event_saved`, after a delete :meth:`on_event_deleted`, and on
logout :meth:`on_logout`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import date

from agenda.calendar.aggregator import (
    DEFAULT_PALETTE,
    CalendarMark,
    MarkPalette,
    build_marks,
    overlay_selection,
)
from agenda.calendar.daykey import DayKey, MeetingSpanPolicy
from agenda.calendar.filter import filter_by_day
from agenda.events import EventKey, Meeting, Task
from agenda.notifications.scheduler import ReminderScheduler, ScheduleResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgendaSnapshot:
    """What the calendar screen renders: overlaid marks and the selected day's events."""

    selected_day: DayKey
    marks: dict[DayKey, CalendarMark] = field(default_factory=dict)
    visible: list[Task | Meeting] = field(default_factory=list)


class AgendaCoordinator:
    def __init__(
        self,
        scheduler: ReminderScheduler,
        *,
        policy: MeetingSpanPolicy = MeetingSpanPolicy.boundary_days,
        palette: MarkPalette = DEFAULT_PALETTE,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._scheduler = scheduler
        self._policy = policy
        self._palette = palette
        self._events: list[Task | Meeting] = []
        self._marks: dict[DayKey, CalendarMark] = {}
        self._selected_day: DayKey = today()

    @property
    def selected_day(self) -> DayKey:
        return self._selected_day

    @property
    def events(self) -> list[Task | Meeting]:
        return list(self._events)

    def snapshot(self) -> AgendaSnapshot:
        return AgendaSnapshot(
            selected_day=self._selected_day,
            marks=overlay_selection(
                self._marks, self._selected_day, selected_color=self._palette.selected
            ),
            visible=filter_by_day(self._events, self._selected_day, policy=self._policy),
        )

    def refresh(self, events: Iterable[Task | Meeting]) -> AgendaSnapshot:
        """Replace the event collection and recompute marks and the visible list."""
        self._events = list(events)
        self._marks = build_marks(self._events, policy=self._policy, palette=self._palette)
        logger.debug(
            "Refreshed agenda: %d event(s) over %d marked day(s)",
            len(self._events),
            len(self._marks),
        )
        return self.snapshot()

    def select_day(self, day: DayKey) -> AgendaSnapshot:
        self._selected_day = day
        return self.snapshot()

    async def on_event_saved(self, event: Task | Meeting) -> ScheduleResult:
        """Create/edit hook: (re)schedule the reminder of the one changed event."""
        return await self._scheduler.schedule_reminder(event)

    async def on_event_deleted(self, key: EventKey) -> bool:
        return await self._scheduler.cancel_reminder(key)

    async def on_logout(self) -> bool:
        """Cancel every reminder and forget the cached collection."""
        cancelled = await self._scheduler.cancel_all()
        self._events = []
        self._marks = {}
        return cancelled
