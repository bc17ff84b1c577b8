"""Fold domain events into per-day calendar marks.

Merge rule for days shared by several events: the input sequence is processed
in order, the *last* contributing event decides ``dot_color``, and
``contributing_event_ids`` accumulates every contributor.  Callers that want a
particular kind to win (e.g. meetings over tasks) order their input
accordingly.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import tzinfo

from agenda.calendar.daykey import DayKey, MeetingSpanPolicy, event_days
from agenda.errors import InvalidTimestampError
from agenda.events import EventKey, Meeting, Task, TaskStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MarkPalette:
    """Dot and selection colors used by the calendar display."""

    completed: str = "#4CAF50"
    in_progress: str = "#2196F3"
    pending: str = "#FFC107"
    unknown: str = "#757575"
    meeting: str = "#007AFF"
    selected: str = "#007AFF"

    def task_color(self, status: TaskStatus) -> str:
        return {
            TaskStatus.completed: self.completed,
            TaskStatus.in_progress: self.in_progress,
            TaskStatus.pending: self.pending,
        }.get(status, self.unknown)

    def color_for(self, event: Task | Meeting) -> str:
        if isinstance(event, Meeting):
            return self.meeting
        return self.task_color(event.status)


DEFAULT_PALETTE = MarkPalette()


@dataclass(frozen=True)
class CalendarMark:
    """Display metadata for one calendar day.

    ``selected`` and ``selected_color`` are only ever set by
    :func:`overlay_selection`; ``build_marks`` leaves them at their defaults.
    """

    has_marker: bool = False
    dot_color: str | None = None
    contributing_event_ids: frozenset[EventKey] = field(default_factory=frozenset)
    selected: bool = False
    selected_color: str | None = None


def build_marks(
    events: Iterable[Task | Meeting],
    *,
    policy: MeetingSpanPolicy = MeetingSpanPolicy.boundary_days,
    palette: MarkPalette = DEFAULT_PALETTE,
    tz: tzinfo | None = None,
) -> dict[DayKey, CalendarMark]:
    """Return a fresh ``day -> CalendarMark`` mapping for *events*.

    Events whose timestamps cannot be placed on a day are skipped with a
    warning; the remaining events are still aggregated.
    """
    colors: dict[DayKey, str] = {}
    members: dict[DayKey, set[EventKey]] = {}

    for event in events:
        try:
            days = event_days(event, policy, tz)
        except InvalidTimestampError as exc:
            logger.warning("Excluding event from calendar marks: %s", exc)
            continue
        color = palette.color_for(event)
        for day in days:
            colors[day] = color
            members.setdefault(day, set()).add(event.key)

    return {
        day: CalendarMark(
            has_marker=True,
            dot_color=color,
            contributing_event_ids=frozenset(members[day]),
        )
        for day, color in colors.items()
    }


def overlay_selection(
    marks: Mapping[DayKey, CalendarMark],
    selected_day: DayKey,
    *,
    selected_color: str = DEFAULT_PALETTE.selected,
) -> dict[DayKey, CalendarMark]:
    """Return a copy of *marks* with *selected_day* flagged as selected.

    Any existing marker data for that day is kept; a day without marks gets a
    new entry with ``has_marker=False``.  *marks* itself is left untouched.
    """
    overlaid = dict(marks)
    base = overlaid.get(selected_day, CalendarMark())
    overlaid[selected_day] = replace(base, selected=True, selected_color=selected_color)
    return overlaid
