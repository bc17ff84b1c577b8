"""Reminder scheduling: one local trigger per event, fired a lead time before it starts.

Per-key lifecycle::

    NoTrigger -> Scheduled -> Fired | Cancelled | Replaced -> Scheduled

Idempotence relies only on the deterministic notification id derived from the
event's ``(kind, id)`` and on cancelling that id before every create.  The
scheduler never keeps its own list of pending triggers; the backend is the
single source of truth.

Scheduling outcomes are returned as :class:`ScheduleResult` values.  Nothing
in this module raises into the caller's create/edit/delete path: backend
errors and timeouts become ``failed`` results and are logged.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import TypeAlias, TypeVar

from agenda.core.metrics import ReminderMetrics
from agenda.errors import SchedulingError
from agenda.events import EventKey, EventKind, Meeting, Task, start_of_event
from agenda.notifications.backend import NotificationBackend, ReminderTrigger
from agenda.notifications.gate import PermissionGate

logger = logging.getLogger(__name__)

T = TypeVar("T")

ReminderKey: TypeAlias = EventKey

DEFAULT_LEAD_TIME = timedelta(minutes=10)
DEFAULT_OPERATION_TIMEOUT_SECONDS = 5.0

REMINDER_TITLES = {
    EventKind.task: "Reminder: task",
    EventKind.meeting: "Reminder: meeting",
}
REMINDER_BODIES = {
    EventKind.task: 'Task "{title}" starts in {minutes} minutes',
    EventKind.meeting: 'Meeting "{title}" starts in {minutes} minutes',
}


class ScheduleStatus(StrEnum):
    scheduled = "scheduled"
    skipped = "skipped"
    failed = "failed"


class SkipReason(StrEnum):
    """Why a schedule call deliberately created nothing (not an error)."""

    past_deadline = "past_deadline"
    permission_denied = "permission_denied"


@dataclass(frozen=True)
class ScheduleResult:
    """Outcome of one schedule call."""

    key: ReminderKey
    status: ScheduleStatus
    fire_at: datetime | None = None
    reason: SkipReason | None = None
    error: str | None = None

    @classmethod
    def scheduled(cls, key: ReminderKey, fire_at: datetime) -> ScheduleResult:
        return cls(key=key, status=ScheduleStatus.scheduled, fire_at=fire_at)

    @classmethod
    def skipped(cls, key: ReminderKey, reason: SkipReason) -> ScheduleResult:
        return cls(key=key, status=ScheduleStatus.skipped, reason=reason)

    @classmethod
    def failed(cls, key: ReminderKey, error: str) -> ScheduleResult:
        return cls(key=key, status=ScheduleStatus.failed, error=error)


def reminder_key(event: Task | Meeting) -> ReminderKey:
    return event.key


def notification_id(key: ReminderKey) -> str:
    """Platform notification id for *key* (e.g. ``"task:42"``)."""
    return str(key)


def reminder_body(event: Task | Meeting, lead_time: timedelta) -> str:
    if not event.title:
        return ""
    minutes = int(lead_time.total_seconds() // 60)
    return REMINDER_BODIES[event.key.kind].format(title=event.title, minutes=minutes)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ReminderScheduler:
    """Creates, replaces and cancels reminder triggers through a notification backend.

    Operations on the same key are serialized with a per-key lock so that a
    cancel issued for an older call can never land after a newer create.
    Operations on different keys run concurrently.
    """

    def __init__(
        self,
        backend: NotificationBackend,
        gate: PermissionGate,
        *,
        lead_time: timedelta = DEFAULT_LEAD_TIME,
        operation_timeout: float = DEFAULT_OPERATION_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
        metrics: ReminderMetrics | None = None,
    ) -> None:
        if lead_time < timedelta(0):
            raise ValueError("lead_time must not be negative")
        if operation_timeout <= 0:
            raise ValueError("operation_timeout must be positive")
        self._backend = backend
        self._gate = gate
        self._lead_time = lead_time
        self._timeout = operation_timeout
        self._clock = clock
        self._metrics = metrics or ReminderMetrics()
        # Locks exist only while a call for the key holds or awaits one.
        self._locks: dict[ReminderKey, asyncio.Lock] = {}
        self._lock_users: dict[ReminderKey, int] = {}

    @property
    def lead_time(self) -> timedelta:
        return self._lead_time

    @asynccontextmanager
    async def _key_lock(self, key: ReminderKey) -> AsyncIterator[None]:
        """Hold the per-key lock; the lock is dropped once no caller uses it."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    async def _call(self, operation: Awaitable[T], description: str) -> T:
        """Await a backend call with the configured timeout.

        Raises:
            SchedulingError: on timeout or any backend failure.
        """
        try:
            return await asyncio.wait_for(operation, timeout=self._timeout)
        except TimeoutError as exc:
            raise SchedulingError(f"{description} timed out after {self._timeout}s") from exc
        except SchedulingError:
            raise
        except Exception as exc:
            raise SchedulingError(f"{description} failed: {exc}") from exc

    async def schedule_reminder(
        self,
        event: Task | Meeting,
        lead_time: timedelta | None = None,
    ) -> ScheduleResult:
        """Schedule (or reschedule) the reminder for *event*.

        ``fire_at = start_of_event(event) - lead_time``.  When ``fire_at`` is
        not strictly in the future no trigger is created and any stale trigger
        left by an earlier schedule is removed.
        """
        key = reminder_key(event)
        kind = str(key.kind)
        lead = self._lead_time if lead_time is None else lead_time
        nid = notification_id(key)

        async with self._key_lock(key):
            fire_at = start_of_event(event) - lead
            if fire_at <= self._clock():
                logger.info("Skipping reminder %s: fire time %s already passed", nid, fire_at)
                try:
                    await self._call(
                        self._backend.cancel_trigger_notification(nid), f"cancel {nid}"
                    )
                except SchedulingError as exc:
                    logger.warning("Could not drop stale reminder %s: %s", nid, exc)
                    self._metrics.record_failed(kind, "cancel")
                self._metrics.record_skipped(kind, SkipReason.past_deadline)
                return ScheduleResult.skipped(key, SkipReason.past_deadline)

            try:
                await self._call(self._backend.cancel_trigger_notification(nid), f"cancel {nid}")
            except SchedulingError as exc:
                logger.warning("Reminder %s not scheduled: %s", nid, exc)
                self._metrics.record_failed(kind, "cancel")
                return ScheduleResult.failed(key, str(exc))

            try:
                channel_id = await self._call(
                    self._gate.ensure_channel(), f"create channel for {nid}"
                )
            except SchedulingError as exc:
                logger.warning("Reminder %s not scheduled: %s", nid, exc)
                self._metrics.record_failed(kind, "channel")
                return ScheduleResult.failed(key, str(exc))
            if channel_id is None or not self._gate.is_granted:
                logger.info(
                    "Skipping reminder %s: permission=%s channel=%s",
                    nid,
                    self._gate.state,
                    channel_id,
                )
                self._metrics.record_skipped(kind, SkipReason.permission_denied)
                return ScheduleResult.skipped(key, SkipReason.permission_denied)

            trigger = ReminderTrigger(
                notification_id=nid,
                fire_at=fire_at,
                title=REMINDER_TITLES[key.kind],
                body=reminder_body(event, lead),
                channel_id=channel_id,
            )
            try:
                await self._call(
                    self._backend.create_trigger_notification(trigger), f"create {nid}"
                )
            except SchedulingError as exc:
                logger.warning("Reminder %s not scheduled: %s", nid, exc)
                self._metrics.record_failed(kind, "create")
                return ScheduleResult.failed(key, str(exc))

        logger.info("Scheduled reminder %s at %s", nid, fire_at.isoformat())
        self._metrics.record_scheduled(kind)
        return ScheduleResult.scheduled(key, fire_at)

    async def schedule_many(self, events: Iterable[Task | Meeting]) -> list[ScheduleResult]:
        """Schedule a batch concurrently; one failure never blocks the others.

        Results are returned in input order.
        """
        batch = list(events)
        outcomes = await asyncio.gather(
            *(self.schedule_reminder(event) for event in batch),
            return_exceptions=True,
        )
        results: list[ScheduleResult] = []
        for event, outcome in zip(batch, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                logger.error("Unexpected error scheduling %s", event.key, exc_info=outcome)
                results.append(ScheduleResult.failed(event.key, str(outcome)))
            else:
                results.append(outcome)
        return results

    async def cancel_reminder(self, key: ReminderKey) -> bool:
        """Remove the pending trigger for *key*, if any.

        Returns ``False`` (after logging) when the backend call failed.
        """
        nid = notification_id(key)
        async with self._key_lock(key):
            try:
                await self._call(self._backend.cancel_trigger_notification(nid), f"cancel {nid}")
            except SchedulingError as exc:
                logger.warning("Could not cancel reminder %s: %s", nid, exc)
                self._metrics.record_failed(str(key.kind), "cancel")
                return False
        logger.info("Cancelled reminder %s", nid)
        self._metrics.record_cancelled("single")
        return True

    async def cancel_all(self) -> bool:
        """Remove every pending trigger (logout/reset).

        Waits for in-flight per-key operations so none of them re-creates a
        trigger after the wipe.
        """
        async with AsyncExitStack() as stack:
            for key in sorted(self._locks, key=str):
                await stack.enter_async_context(self._key_lock(key))
            try:
                await self._call(self._backend.cancel_all_notifications(), "cancel all")
            except SchedulingError as exc:
                logger.warning("Could not cancel all reminders: %s", exc)
                self._metrics.record_failed("all", "cancel_all")
                return False
        logger.info("Cancelled all reminders")
        self._metrics.record_cancelled("all")
        return True

    async def pending_reminders(self) -> list[str]:
        """Notification ids of the triggers the backend still holds."""
        return await self._call(self._backend.get_trigger_notification_ids(), "list pending")
