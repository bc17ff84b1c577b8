"""Local reminder notifications: permission gate, backend contract and scheduler."""

from __future__ import annotations

from agenda.notifications.backend import (
    InMemoryNotificationBackend,
    NotificationBackend,
    NotificationChannel,
    PermissionState,
    ReminderTrigger,
)
from agenda.notifications.gate import PermissionGate
from agenda.notifications.scheduler import (
    ReminderKey,
    ReminderScheduler,
    ScheduleResult,
    ScheduleStatus,
    SkipReason,
)

__all__ = [
    "InMemoryNotificationBackend",
    "NotificationBackend",
    "NotificationChannel",
    "PermissionGate",
    "PermissionState",
    "ReminderKey",
    "ReminderScheduler",
    "ReminderTrigger",
    "ScheduleResult",
    "ScheduleStatus",
    "SkipReason",
]
