"""Select the events that belong to one calendar day."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import tzinfo

from agenda.calendar.daykey import DayKey, MeetingSpanPolicy, event_days
from agenda.errors import InvalidTimestampError
from agenda.events import Meeting, Task

logger = logging.getLogger(__name__)


def filter_by_day(
    events: Iterable[Task | Meeting],
    day: DayKey,
    *,
    policy: MeetingSpanPolicy = MeetingSpanPolicy.boundary_days,
    tz: tzinfo | None = None,
) -> list[Task | Meeting]:
    """Return the events on *day*, preserving input order.

    Membership comes from :func:`event_days`, the same function
    :func:`~agenda.calendar.aggregator.build_marks` uses, so the result is
    non-empty exactly when *day* carries a mark.
    """
    selected: list[Task | Meeting] = []
    for event in events:
        try:
            days = event_days(event, policy, tz)
        except InvalidTimestampError as exc:
            logger.warning("Excluding event from day filter: %s", exc)
            continue
        if day in days:
            selected.append(event)
    return selected
