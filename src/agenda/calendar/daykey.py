"""Local calendar-day keys.

``day_key_of`` is the only function that decides which calendar day an instant
belongs to.  ``event_days`` builds on it, and both the aggregator and the day
filter call ``event_days``, so calendar dots and the filtered list can never
disagree about day membership.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, tzinfo
from enum import StrEnum
from typing import TypeAlias

from agenda.errors import InvalidTimestampError
from agenda.events import Meeting, Task

DayKey: TypeAlias = date


class MeetingSpanPolicy(StrEnum):
    """Which days a multi-day meeting belongs to."""

    # Start day and end day only; interior days are not marked.
    boundary_days = "boundary_days"
    # Every calendar day from start to end inclusive.
    all_days = "all_days"


def day_key_of(instant: datetime, tz: tzinfo | None = None) -> DayKey:
    """Map *instant* to its calendar day in *tz* (the device's local zone by default).

    Naive datetimes are taken as wall-clock time in the device's local zone.
    """
    if instant.tzinfo is None or instant.utcoffset() is None:
        instant = instant.astimezone()
    return instant.astimezone(tz).date()


def event_days(
    event: Task | Meeting,
    policy: MeetingSpanPolicy = MeetingSpanPolicy.boundary_days,
    tz: tzinfo | None = None,
) -> tuple[DayKey, ...]:
    """Return the day keys *event* belongs to, in chronological order.

    Raises:
        InvalidTimestampError: if a meeting's interval is empty or inverted.
    """
    if isinstance(event, Task):
        return (day_key_of(event.deadline, tz),)

    if event.start_at >= event.end_at:
        raise InvalidTimestampError(
            f"Meeting {event.id!r} has an empty or inverted interval "
            f"({event.start_at.isoformat()} .. {event.end_at.isoformat()})"
        )
    start_day = day_key_of(event.start_at, tz)
    end_day = day_key_of(event.end_at, tz)
    if start_day == end_day:
        return (start_day,)
    if policy == MeetingSpanPolicy.all_days:
        span = (end_day - start_day).days
        return tuple(start_day + timedelta(days=offset) for offset in range(span + 1))
    return (start_day, end_day)
