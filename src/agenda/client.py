"""HTTP client for the task/meeting backend.

Only the read side the calendar needs lives here: fetching the current task
and meeting collections.  Credentials are passed in explicitly as a
:class:`SessionCredentials` value; the client holds no global session state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from agenda.errors import AgendaError
from agenda.events import EventKind, Meeting, Task, collection_members, parse_events

logger = logging.getLogger(__name__)

JSON_LD_CONTENT_TYPE = "application/ld+json"
TASKS_PATH = "/task"
MEETINGS_PATH = "/meet"
DEFAULT_TIMEOUT_SECONDS = 20.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 10.0


class AgendaApiError(AgendaError):
    """Raised when the backend request fails or returns an unusable body."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class SessionExpiredError(AgendaApiError):
    """Raised on HTTP 401; the caller should send the user back to sign-in."""


@dataclass(frozen=True)
class SessionCredentials:
    """Bearer token of the signed-in user (``None`` when signed out)."""

    token: str | None = None
    account: str | None = None

    def auth_header(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def __repr__(self) -> str:
        masked = "***" if self.token else None
        return f"SessionCredentials(token={masked!r}, account={self.account!r})"


class AgendaApiClient:
    """Fetches task and meeting collections as domain events."""

    def __init__(
        self,
        base_url: str,
        credentials: SessionCredentials,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._credentials = credentials
        self._owns_http_client = http_client is None
        self._http_client = (
            http_client
            if http_client is not None
            else httpx.AsyncClient(
                timeout=httpx.Timeout(timeout, connect=DEFAULT_CONNECT_TIMEOUT_SECONDS)
            )
        )

    async def __aenter__(self) -> AgendaApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": JSON_LD_CONTENT_TYPE, **self._credentials.auth_header()}

    async def _get_collection(self, path: str) -> list[Any]:
        url = f"{self._base_url}{path}"
        try:
            response = await self._http_client.get(url, headers=self._headers())
        except httpx.HTTPError as exc:
            raise AgendaApiError(f"Request to {url} failed: {exc}") from exc

        if response.status_code == httpx.codes.UNAUTHORIZED:
            raise SessionExpiredError("Session expired; sign in again", status_code=401)
        if response.is_error:
            raise AgendaApiError(
                f"GET {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return collection_members(response.json())
        except ValueError as exc:
            raise AgendaApiError(f"GET {path} returned an unusable body: {exc}") from exc

    async def fetch_tasks(self) -> list[Task | Meeting]:
        members = await self._get_collection(TASKS_PATH)
        events = parse_events(members, kind=EventKind.task)
        logger.debug("Fetched %d task(s) (%d dropped)", len(events), len(members) - len(events))
        return events

    async def fetch_meetings(self) -> list[Task | Meeting]:
        members = await self._get_collection(MEETINGS_PATH)
        events = parse_events(members, kind=EventKind.meeting)
        logger.debug(
            "Fetched %d meeting(s) (%d dropped)", len(events), len(members) - len(events)
        )
        return events

    async def fetch_events(self) -> list[Task | Meeting]:
        """Tasks followed by meetings, so meeting colors win on shared days."""
        return [*await self.fetch_tasks(), *await self.fetch_meetings()]
