"""CLI for Agenda: fetch events, then inspect calendar marks, day lists and reminder plans."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

import click

from agenda import __version__
from agenda.calendar.aggregator import build_marks, overlay_selection
from agenda.calendar.daykey import MeetingSpanPolicy
from agenda.calendar.filter import filter_by_day
from agenda.client import AgendaApiClient, AgendaApiError, SessionCredentials
from agenda.config import AgendaConfig, ConfigError, default_config, load_config
from agenda.core.logging import configure_logging
from agenda.core.metrics import init_metrics
from agenda.events import EventKind, Meeting, Task, collection_members, parse_events
from agenda.notifications.backend import InMemoryNotificationBackend
from agenda.notifications.gate import PermissionGate
from agenda.notifications.scheduler import ReminderScheduler, ScheduleResult, ScheduleStatus

logger = logging.getLogger(__name__)


def _load_config(config_path: Path | None) -> AgendaConfig:
    if config_path is None:
        return default_config()
    try:
        return load_config(config_path)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc


def _load_events(events_path: Path) -> list[Task | Meeting]:
    """Read ``{"tasks": [...], "meetings": [...]}``; tasks come first."""
    try:
        document = json.loads(events_path.read_text())
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"Invalid JSON in {events_path}: {exc}") from exc
    if not isinstance(document, dict):
        raise click.ClickException("Events file must hold an object with 'tasks'/'meetings'")

    events: list[Task | Meeting] = []
    for section, kind in (("tasks", EventKind.task), ("meetings", EventKind.meeting)):
        raw = document.get(section, [])
        try:
            members = collection_members(raw)
        except ValueError as exc:
            raise click.ClickException(f"'{section}': {exc}") from exc
        events.extend(parse_events(members, kind=kind))
    return events


def _describe(event: Task | Meeting) -> str:
    if isinstance(event, Task):
        return f"[task {event.id}] {event.title} (due {event.deadline.isoformat()}, {event.status})"
    return (
        f"[meeting {event.id}] {event.title} "
        f"({event.start_at.isoformat()} -> {event.end_at.isoformat()})"
    )


def _describe_result(result: ScheduleResult) -> str:
    if result.status == ScheduleStatus.scheduled:
        fire_at = result.fire_at.isoformat() if result.fire_at is not None else "-"
        return f"{result.key}: fires at {fire_at}"
    if result.status == ScheduleStatus.skipped:
        return f"{result.key}: skipped ({result.reason})"
    return f"{result.key}: failed ({result.error})"


_events_argument = click.argument(
    "events_path", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
_policy_option = click.option(
    "--policy",
    type=click.Choice([p.value for p in MeetingSpanPolicy]),
    default=None,
    help="Override which days a multi-day meeting marks",
)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to agenda.toml (or a directory containing it)",
)
@click.option(
    "--log-level",
    default=None,
    help="Root log level [default: agenda.logging.level with --config, else WARNING]",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, log_level: str | None) -> None:
    """Agenda: task and meeting reminders with calendar day marks."""
    config = _load_config(config_path)
    if log_level is None:
        log_level = config.logging.level if config_path is not None else "WARNING"
    configure_logging(
        level=log_level,
        fmt=config.logging.format,
        log_root=Path(config.logging.log_root) if config.logging.log_root else None,
    )
    init_metrics("agenda")
    ctx.obj = config


@cli.command()
@_events_argument
@click.option("--day", type=click.DateTime(formats=["%Y-%m-%d"]), default=None)
@_policy_option
@click.option("--json", "as_json", is_flag=True, help="Emit JSON instead of text")
@click.pass_obj
def marks(
    config: AgendaConfig,
    events_path: Path,
    day: datetime | None,
    policy: str | None,
    as_json: bool,
) -> None:
    """Print the per-day calendar marks for EVENTS_PATH."""
    span_policy = MeetingSpanPolicy(policy) if policy else config.meeting_span_policy
    events = _load_events(events_path)
    day_marks = build_marks(events, policy=span_policy, palette=config.palette)
    if day is not None:
        day_marks = overlay_selection(
            day_marks, day.date(), selected_color=config.palette.selected
        )

    if as_json:
        payload: dict[str, Any] = {
            key.isoformat(): {
                "marked": mark.has_marker,
                "dotColor": mark.dot_color,
                "events": sorted(str(ref) for ref in mark.contributing_event_ids),
                **(
                    {"selected": True, "selectedColor": mark.selected_color}
                    if mark.selected
                    else {}
                ),
            }
            for key, mark in sorted(day_marks.items())
        }
        click.echo(json.dumps(payload, indent=2))
        return

    if not day_marks:
        click.echo("No marked days.")
        return
    for key, mark in sorted(day_marks.items()):
        flags = " (selected)" if mark.selected else ""
        color = mark.dot_color or "-"
        refs = ", ".join(sorted(str(ref) for ref in mark.contributing_event_ids)) or "-"
        click.echo(f"{key.isoformat()}  {color:<8} {refs}{flags}")


@cli.command()
@_events_argument
@click.argument("day", type=click.DateTime(formats=["%Y-%m-%d"]))
@_policy_option
@click.pass_obj
def day(config: AgendaConfig, events_path: Path, day: datetime, policy: str | None) -> None:
    """List the events of EVENTS_PATH that fall on DAY (YYYY-MM-DD)."""
    span_policy = MeetingSpanPolicy(policy) if policy else config.meeting_span_policy
    selected: date = day.date()
    matches = filter_by_day(_load_events(events_path), selected, policy=span_policy)
    if not matches:
        click.echo(f"No events on {selected.isoformat()}.")
        return
    for event in matches:
        click.echo(_describe(event))


@cli.command()
@_events_argument
@click.option(
    "--now",
    "now_raw",
    default=None,
    help="Reference instant (ISO 8601); defaults to the current time",
)
@click.pass_obj
def reminders(config: AgendaConfig, events_path: Path, now_raw: str | None) -> None:
    """Dry-run reminder scheduling for EVENTS_PATH and print each outcome."""
    now = datetime.now(UTC)
    if now_raw is not None:
        try:
            now = datetime.fromisoformat(now_raw)
        except ValueError as exc:
            raise click.BadParameter(f"not an ISO 8601 instant: {now_raw}") from exc
        if now.tzinfo is None:
            now = now.astimezone()

    events = _load_events(events_path)
    results = asyncio.run(_plan_reminders(events, config, now))
    if not results:
        click.echo("No events.")
        return
    for result in results:
        click.echo(_describe_result(result))


@cli.command()
@click.argument("output", type=click.Path(dir_okay=False, writable=True, path_type=Path))
@click.option(
    "--token",
    envvar="AGENDA_TOKEN",
    default=None,
    help="Bearer token of the signed-in user (or set AGENDA_TOKEN)",
)
@click.pass_obj
def fetch(config: AgendaConfig, output: Path, token: str | None) -> None:
    """Download tasks and meetings from agenda.api_url into OUTPUT.

    OUTPUT is written in the events-file shape the other commands read.
    """
    try:
        events = asyncio.run(_fetch_events(config.api_url, SessionCredentials(token=token)))
    except AgendaApiError as exc:
        raise click.ClickException(str(exc)) from exc

    document: dict[str, list[dict[str, Any]]] = {"tasks": [], "meetings": []}
    for event in events:
        section = "tasks" if isinstance(event, Task) else "meetings"
        document[section].append(event.model_dump(mode="json", by_alias=True, exclude={"kind"}))
    output.write_text(json.dumps(document, indent=2))
    click.echo(
        f"Wrote {len(document['tasks'])} task(s) and "
        f"{len(document['meetings'])} meeting(s) to {output}"
    )


async def _fetch_events(api_url: str, credentials: SessionCredentials) -> list[Task | Meeting]:
    async with AgendaApiClient(api_url, credentials) as client:
        return await client.fetch_events()


async def _plan_reminders(
    events: list[Task | Meeting], config: AgendaConfig, now: datetime
) -> list[ScheduleResult]:
    backend = InMemoryNotificationBackend()
    gate = PermissionGate(
        backend,
        channel_id=config.notifications.channel_id,
        channel_name=config.notifications.channel_name,
    )
    await gate.request_permission()
    scheduler = ReminderScheduler(
        backend,
        gate,
        lead_time=config.lead_time,
        operation_timeout=config.operation_timeout_seconds,
        clock=lambda: now,
    )
    return await scheduler.schedule_many(events)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
