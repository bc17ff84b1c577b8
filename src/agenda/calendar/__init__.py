"""Calendar day aggregation: day keys, per-day marks and day filtering.

Everything in this sub-package is pure and synchronous.
"""

from __future__ import annotations

from agenda.calendar.aggregator import (
    DEFAULT_PALETTE,
    CalendarMark,
    MarkPalette,
    build_marks,
    overlay_selection,
)
from agenda.calendar.daykey import DayKey, MeetingSpanPolicy, day_key_of, event_days
from agenda.calendar.filter import filter_by_day

__all__ = [
    "DEFAULT_PALETTE",
    "CalendarMark",
    "DayKey",
    "MarkPalette",
    "MeetingSpanPolicy",
    "build_marks",
    "day_key_of",
    "event_days",
    "filter_by_day",
    "overlay_selection",
]
