"""Shared fixtures for the agenda test suite."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from agenda.notifications.backend import InMemoryNotificationBackend, PermissionState
from agenda.notifications.gate import PermissionGate
from agenda.notifications.scheduler import ReminderScheduler

# Fixed "now" used by scheduler tests: 2024-05-01 08:00 UTC.
NOW = datetime(2024, 5, 1, 8, 0, tzinfo=UTC)


class FakeClock:
    """Settable clock for deterministic scheduling tests."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend() -> InMemoryNotificationBackend:
    return InMemoryNotificationBackend(permission=PermissionState.granted)


@pytest.fixture
def gate(backend: InMemoryNotificationBackend) -> PermissionGate:
    return PermissionGate(backend)


@pytest.fixture
async def granted_gate(gate: PermissionGate) -> PermissionGate:
    await gate.request_permission()
    return gate


@pytest.fixture
def scheduler(
    backend: InMemoryNotificationBackend,
    granted_gate: PermissionGate,
    clock: FakeClock,
) -> ReminderScheduler:
    return ReminderScheduler(backend, granted_gate, clock=clock, operation_timeout=1.0)
