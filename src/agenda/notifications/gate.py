"""One-time notification permission and the single default channel."""

from __future__ import annotations

import asyncio
import logging

from agenda.notifications.backend import (
    ChannelImportance,
    NotificationBackend,
    NotificationChannel,
    PermissionState,
)

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL_ID = "default"
DEFAULT_CHANNEL_NAME = "Default Channel"


class PermissionGate:
    """Caches the permission decision and the default channel id.

    Nothing here raises: a failed permission query resolves to ``denied`` and
    a failed channel creation yields ``None``.
    """

    def __init__(
        self,
        backend: NotificationBackend,
        *,
        channel_id: str = DEFAULT_CHANNEL_ID,
        channel_name: str = DEFAULT_CHANNEL_NAME,
    ) -> None:
        self._backend = backend
        self._channel = NotificationChannel(
            id=channel_id, name=channel_name, importance=ChannelImportance.high
        )
        self._state = PermissionState.unknown
        self._channel_id: str | None = None
        self._permission_lock = asyncio.Lock()
        self._channel_lock = asyncio.Lock()
        self._query_in_flight = False

    @property
    def state(self) -> PermissionState:
        """Current state; ``unknown`` until a query has resolved."""
        return self._state

    @property
    def is_granted(self) -> bool:
        return self._state == PermissionState.granted and not self._query_in_flight

    async def request_permission(self) -> PermissionState:
        """Resolve the permission state, prompting at most once.

        Concurrent callers wait on the same query.  Terminal states are cached
        until :meth:`reset` is called.
        """
        if self._state != PermissionState.unknown:
            return self._state

        async with self._permission_lock:
            if self._state != PermissionState.unknown:
                return self._state
            self._query_in_flight = True
            try:
                state = await self._backend.request_permission()
            except Exception:
                logger.warning(
                    "Notification permission query failed; treating as denied", exc_info=True
                )
                state = PermissionState.denied
            finally:
                self._query_in_flight = False

            if state not in (PermissionState.granted, PermissionState.denied):
                logger.warning("Permission query returned %r; treating as denied", state)
                state = PermissionState.denied
            self._state = state
            logger.info("Notification permission resolved: %s", state)
            return state

    def reset(self) -> None:
        """Forget the cached decision so the next request re-queries the platform."""
        self._state = PermissionState.unknown

    async def ensure_channel(self) -> str | None:
        """Create the default high-importance channel once and return its id."""
        if self._channel_id is not None:
            return self._channel_id

        async with self._channel_lock:
            if self._channel_id is not None:
                return self._channel_id
            try:
                self._channel_id = await self._backend.create_channel(self._channel)
            except Exception:
                logger.warning(
                    "Could not create notification channel %s", self._channel.id, exc_info=True
                )
                return None
            logger.debug("Notification channel ready: %s", self._channel_id)
            return self._channel_id
