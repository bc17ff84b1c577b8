"""Domain events consumed by the reminder scheduler and the calendar aggregator.

Two kinds of event exist:

- ``Task``: a single instant (the deadline) plus an optional status.
- ``Meeting``: a half-open interval ``[start_at, end_at)``.

Models accept both the Python field names and the backend's JSON-LD field
names (``name``, ``deadLine``, ``startDate``, ``endDate``, ``employeeId``).
Naive timestamps are read as device-local wall-clock time and normalized to
aware datetimes so that every later comparison is well defined.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from agenda.errors import InvalidTimestampError

logger = logging.getLogger(__name__)

# JSON-LD collection keys used by the backend for list endpoints.
_COLLECTION_KEYS = ("member", "hydra:member")


class EventKind(StrEnum):
    """Variant of a domain event."""

    task = "task"
    meeting = "meeting"


class TaskStatus(StrEnum):
    """Task progress states; anything unrecognized collapses to ``unknown``."""

    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"
    unknown = "unknown"


@dataclass(frozen=True)
class EventKey:
    """Identity of an event across edits: ids are only unique within a kind."""

    kind: EventKind
    id: str

    @classmethod
    def of(cls, kind: EventKind | str, event_id: str | int) -> EventKey:
        return cls(kind=EventKind(kind), id=str(event_id))

    def __str__(self) -> str:
        return f"{self.kind}:{self.id}"


def _as_local_aware(value: datetime) -> datetime:
    if value.tzinfo is None or value.utcoffset() is None:
        return value.astimezone()
    return value


class _EventBase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str
    title: str = Field(default="", alias="name")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return value
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("id must be a non-empty string")
        return normalized

    @field_validator("title", mode="before")
    @classmethod
    def _normalize_title(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, str):
            return value.strip()
        return value


class Task(_EventBase):
    """A task with a single deadline instant."""

    kind: Literal["task"] = "task"
    deadline: datetime = Field(alias="deadLine")
    status: TaskStatus = TaskStatus.unknown
    employee_id: int | None = Field(default=None, alias="employeeId")

    @field_validator("deadline")
    @classmethod
    def _normalize_deadline(cls, value: datetime) -> datetime:
        return _as_local_aware(value)

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> TaskStatus:
        if isinstance(value, TaskStatus):
            return value
        if not isinstance(value, str):
            return TaskStatus.unknown
        try:
            return TaskStatus(value.strip().lower())
        except ValueError:
            return TaskStatus.unknown

    @property
    def key(self) -> EventKey:
        return EventKey(EventKind.task, self.id)

    @property
    def starts_at(self) -> datetime:
        return self.deadline


class Meeting(_EventBase):
    """A meeting occupying the half-open interval ``[start_at, end_at)``."""

    kind: Literal["meeting"] = "meeting"
    start_at: datetime = Field(alias="startDate")
    end_at: datetime = Field(alias="endDate")

    @field_validator("start_at", "end_at")
    @classmethod
    def _normalize_boundary(cls, value: datetime) -> datetime:
        return _as_local_aware(value)

    @model_validator(mode="after")
    def _validate_interval(self) -> Meeting:
        if self.start_at >= self.end_at:
            raise ValueError("start_at must be strictly before end_at")
        return self

    @property
    def key(self) -> EventKey:
        return EventKey(EventKind.meeting, self.id)

    @property
    def starts_at(self) -> datetime:
        return self.start_at


DomainEvent = Annotated[Task | Meeting, Field(discriminator="kind")]

_EVENT_ADAPTER: TypeAdapter[Task | Meeting] = TypeAdapter(DomainEvent)


def start_of_event(event: Task | Meeting) -> datetime:
    """Return the instant a reminder counts back from: deadline or meeting start."""
    return event.starts_at


def parse_event(
    payload: Mapping[str, Any], *, kind: EventKind | str | None = None
) -> Task | Meeting:
    """Validate one backend payload into a domain event.

    Raises:
        InvalidTimestampError: when the payload is missing a usable deadline or
            interval (or is otherwise malformed).
    """
    data = dict(payload)
    if kind is not None:
        data["kind"] = str(EventKind(kind))
    try:
        return _EVENT_ADAPTER.validate_python(data)
    except ValidationError as exc:
        raise InvalidTimestampError(
            f"Invalid {data.get('kind', 'event')} payload (id={data.get('id')!r}): "
            f"{exc.error_count()} validation error(s)"
        ) from exc


def parse_events(
    payloads: Iterable[Mapping[str, Any]],
    *,
    kind: EventKind | str | None = None,
) -> list[Task | Meeting]:
    """Validate a sequence of payloads, dropping malformed items with a warning.

    One malformed item never prevents the rest of the collection from being
    parsed; input order is preserved for the survivors.
    """
    events: list[Task | Meeting] = []
    for index, payload in enumerate(payloads):
        if not isinstance(payload, Mapping):
            logger.warning("Skipping non-object event payload at index %d", index)
            continue
        try:
            events.append(parse_event(payload, kind=kind))
        except InvalidTimestampError as exc:
            logger.warning("Excluding event at index %d: %s", index, exc)
    return events


def collection_members(document: Any) -> list[Any]:
    """Extract the item list from a JSON-LD collection document (or a bare list)."""
    if isinstance(document, list):
        return document
    if isinstance(document, Mapping):
        for key in _COLLECTION_KEYS:
            members = document.get(key)
            if isinstance(members, list):
                return members
    raise ValueError("Expected a JSON list or a collection object with a 'member' list")
