"""Contract with the platform notification subsystem.

The backend owns every pending trigger.  The rest of the package keeps no copy
of that set; it only derives deterministic notification ids and issues
cancel/create calls against this interface.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum

from agenda.errors import SchedulingError

logger = logging.getLogger(__name__)


class PermissionState(StrEnum):
    """Process-wide notification authorization state."""

    unknown = "unknown"
    granted = "granted"
    denied = "denied"


class ChannelImportance(StrEnum):
    default = "default"
    high = "high"


@dataclass(frozen=True)
class NotificationChannel:
    """A notification channel; ``id`` is the idempotency key on creation."""

    id: str
    name: str
    importance: ChannelImportance = ChannelImportance.high


@dataclass(frozen=True)
class ReminderTrigger:
    """A one-shot timestamp trigger handed to the platform."""

    notification_id: str
    fire_at: datetime
    title: str
    body: str
    channel_id: str


class NotificationBackend(abc.ABC):
    """Platform operations the reminder core is allowed to perform."""

    @abc.abstractmethod
    async def request_permission(self) -> PermissionState:
        """Ask the user/OS for notification authorization.

        Resolves immediately when the platform has already decided.
        """
        ...

    @abc.abstractmethod
    async def create_channel(self, channel: NotificationChannel) -> str:
        """Create (or reuse) *channel* and return its id.  Must be idempotent."""
        ...

    @abc.abstractmethod
    async def create_trigger_notification(self, trigger: ReminderTrigger) -> None:
        """Register *trigger*; an existing trigger with the same id is overwritten."""
        ...

    @abc.abstractmethod
    async def cancel_trigger_notification(self, notification_id: str) -> None:
        """Remove a pending trigger.  Unknown ids are a no-op."""
        ...

    @abc.abstractmethod
    async def cancel_all_notifications(self) -> None:
        """Remove every pending trigger."""
        ...

    @abc.abstractmethod
    async def get_trigger_notification_ids(self) -> list[str]:
        """Return the ids of all pending triggers."""
        ...


class InMemoryNotificationBackend(NotificationBackend):
    """Process-local backend for development, dry runs and tests.

    ``permission`` is the answer the simulated user gives on the first prompt;
    later prompts return the recorded decision, like a real platform.
    ``fail_on`` holds notification ids whose create/cancel calls raise
    :class:`SchedulingError`.
    """

    def __init__(
        self,
        *,
        permission: PermissionState = PermissionState.granted,
        fail_on: set[str] | None = None,
    ) -> None:
        self._answer = permission
        self._decided: PermissionState | None = None
        self.prompt_count = 0
        self.fail_on: set[str] = set(fail_on or ())
        self.channels: dict[str, NotificationChannel] = {}
        self.pending: dict[str, ReminderTrigger] = {}
        self.delivered: list[ReminderTrigger] = []

    async def request_permission(self) -> PermissionState:
        if self._decided is None:
            self.prompt_count += 1
            self._decided = self._answer
        return self._decided

    async def create_channel(self, channel: NotificationChannel) -> str:
        self.channels.setdefault(channel.id, channel)
        return channel.id

    async def create_trigger_notification(self, trigger: ReminderTrigger) -> None:
        if trigger.notification_id in self.fail_on:
            raise SchedulingError(f"Trigger store rejected {trigger.notification_id}")
        if trigger.channel_id not in self.channels:
            raise SchedulingError(f"Unknown notification channel: {trigger.channel_id}")
        self.pending[trigger.notification_id] = trigger

    async def cancel_trigger_notification(self, notification_id: str) -> None:
        if notification_id in self.fail_on:
            raise SchedulingError(f"Trigger store rejected cancel of {notification_id}")
        self.pending.pop(notification_id, None)

    async def cancel_all_notifications(self) -> None:
        self.pending.clear()

    async def get_trigger_notification_ids(self) -> list[str]:
        return sorted(self.pending)

    def fire_due(self, now: datetime | None = None) -> list[ReminderTrigger]:
        """Deliver every trigger whose ``fire_at`` has passed and drop it from ``pending``."""
        now = now or datetime.now(UTC)
        due = sorted(
            (trigger for trigger in self.pending.values() if trigger.fire_at <= now),
            key=lambda trigger: trigger.fire_at,
        )
        for trigger in due:
            del self.pending[trigger.notification_id]
            self.delivered.append(trigger)
            logger.info("Delivered reminder %s: %s", trigger.notification_id, trigger.title)
        return due
