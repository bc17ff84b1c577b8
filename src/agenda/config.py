"""Agenda configuration loading and validation.

Reads ``agenda.toml``, resolves ``${VAR}`` references from the environment and
returns a validated :class:`AgendaConfig` dataclass.  Every section is
optional; :func:`default_config` yields the built-in defaults.
"""

from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass, field, fields
from datetime import timedelta
from pathlib import Path
from typing import Any

from agenda.calendar.aggregator import MarkPalette
from agenda.calendar.daykey import MeetingSpanPolicy
from agenda.errors import ConfigError
from agenda.notifications.gate import DEFAULT_CHANNEL_ID, DEFAULT_CHANNEL_NAME
from agenda.notifications.scheduler import DEFAULT_LEAD_TIME, DEFAULT_OPERATION_TIMEOUT_SECONDS

DEFAULT_CONFIG_FILENAME = "agenda.toml"
DEFAULT_API_URL = "http://127.0.0.1:8082/api"

# Pattern matching ${VAR_NAME} with alphanumeric + underscore variable names.
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
_COLOR_PATTERN = re.compile(r"^#(?:[0-9A-Fa-f]{3}|[0-9A-Fa-f]{6})$")
_LOG_FORMATS = ("text", "json")


@dataclass
class LoggingConfig:
    """Logging configuration from [agenda.logging]."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    log_root: str | None = None


@dataclass
class NotificationConfig:
    """Default channel settings from [agenda.notifications]."""

    channel_id: str = DEFAULT_CHANNEL_ID
    channel_name: str = DEFAULT_CHANNEL_NAME


@dataclass
class AgendaConfig:
    """Fully parsed agenda configuration."""

    api_url: str = DEFAULT_API_URL
    lead_time: timedelta = DEFAULT_LEAD_TIME
    operation_timeout_seconds: float = DEFAULT_OPERATION_TIMEOUT_SECONDS
    meeting_span_policy: MeetingSpanPolicy = MeetingSpanPolicy.boundary_days
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    palette: MarkPalette = field(default_factory=MarkPalette)


def default_config() -> AgendaConfig:
    return AgendaConfig()


def resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${VAR_NAME}`` references in parsed TOML values.

    Raises
    ------
    ConfigError
        If a referenced environment variable is not set.
    """
    if isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}

    if isinstance(value, list):
        return [resolve_env_vars(item) for item in value]

    if isinstance(value, str):
        return _resolve_string(value)

    return value


def _resolve_string(s: str) -> str:
    missing: list[str] = []

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            missing.append(var_name)
            return match.group(0)
        return env_value

    result = _ENV_VAR_PATTERN.sub(_replace, s)

    if missing:
        vars_str = ", ".join(missing)
        raise ConfigError(
            f"Unresolved environment variable(s) in config value: {vars_str} (original: {s!r})"
        )

    return result


def _section(parent: dict[str, Any], name: str, path: str) -> dict[str, Any]:
    value = parent.get(name, {})
    if not isinstance(value, dict):
        raise ConfigError(f"[{path}] must be a table")
    return value


def _positive_number(raw: Any, path: str, *, allow_zero: bool = False) -> float:
    if isinstance(raw, bool) or not isinstance(raw, int | float):
        raise ConfigError(f"{path} must be a number, got {raw!r}")
    if raw < 0 or (raw == 0 and not allow_zero):
        qualifier = "non-negative" if allow_zero else "positive"
        raise ConfigError(f"{path} must be {qualifier}, got {raw!r}")
    return float(raw)


def _parse_logging(section: dict[str, Any]) -> LoggingConfig:
    level = str(section.get("level", "INFO")).strip().upper()
    fmt = str(section.get("format", "text")).strip().lower()
    if fmt not in _LOG_FORMATS:
        raise ConfigError(f"agenda.logging.format must be one of {_LOG_FORMATS}, got {fmt!r}")
    log_root = section.get("log_root")
    if log_root is not None and not isinstance(log_root, str):
        raise ConfigError("agenda.logging.log_root must be a string when set")
    return LoggingConfig(level=level, format=fmt, log_root=log_root or None)


def _parse_notifications(section: dict[str, Any]) -> NotificationConfig:
    parsed = NotificationConfig()
    for name in ("channel_id", "channel_name"):
        raw = section.get(name)
        if raw is None:
            continue
        if not isinstance(raw, str) or not raw.strip():
            raise ConfigError(f"agenda.notifications.{name} must be a non-empty string")
        setattr(parsed, name, raw.strip())
    return parsed


def _parse_palette(section: dict[str, Any]) -> MarkPalette:
    known = {f.name for f in fields(MarkPalette)}
    unknown = sorted(set(section) - known)
    if unknown:
        raise ConfigError(f"Unknown color key(s) in [agenda.colors]: {', '.join(unknown)}")
    colors: dict[str, str] = {}
    for name, raw in section.items():
        if not isinstance(raw, str) or _COLOR_PATTERN.fullmatch(raw.strip()) is None:
            raise ConfigError(f"agenda.colors.{name} must be a hex color like '#4CAF50'")
        colors[name] = raw.strip()
    return MarkPalette(**colors)


def parse_config(data: dict[str, Any]) -> AgendaConfig:
    """Validate an already-decoded TOML document."""
    data = resolve_env_vars(data)
    agenda_section = _section(data, "agenda", "agenda")

    api_url = str(agenda_section.get("api_url", DEFAULT_API_URL)).strip().rstrip("/")
    if not api_url:
        raise ConfigError("agenda.api_url must be a non-empty string")

    lead_minutes = _positive_number(
        agenda_section.get("lead_time_minutes", DEFAULT_LEAD_TIME.total_seconds() / 60),
        "agenda.lead_time_minutes",
        allow_zero=True,
    )
    timeout = _positive_number(
        agenda_section.get("operation_timeout_seconds", DEFAULT_OPERATION_TIMEOUT_SECONDS),
        "agenda.operation_timeout_seconds",
    )

    policy_raw = agenda_section.get("meeting_span_policy", MeetingSpanPolicy.boundary_days)
    try:
        policy = MeetingSpanPolicy(str(policy_raw).strip().lower())
    except ValueError as exc:
        choices = ", ".join(p.value for p in MeetingSpanPolicy)
        raise ConfigError(
            f"agenda.meeting_span_policy must be one of: {choices} (got {policy_raw!r})"
        ) from exc

    return AgendaConfig(
        api_url=api_url,
        lead_time=timedelta(minutes=lead_minutes),
        operation_timeout_seconds=timeout,
        meeting_span_policy=policy,
        logging=_parse_logging(_section(agenda_section, "logging", "agenda.logging")),
        notifications=_parse_notifications(
            _section(agenda_section, "notifications", "agenda.notifications")
        ),
        palette=_parse_palette(_section(agenda_section, "colors", "agenda.colors")),
    )


def load_config(path: Path) -> AgendaConfig:
    """Load and validate an agenda config.

    *path* may be the TOML file itself or a directory containing
    ``agenda.toml``.

    Raises
    ------
    ConfigError
        If the file is missing, contains invalid TOML, or holds invalid values.
    """
    toml_path = path / DEFAULT_CONFIG_FILENAME if path.is_dir() else path

    if not toml_path.exists():
        raise ConfigError(f"Config file not found: {toml_path}")

    try:
        with toml_path.open("rb") as f:
            data = tomllib.load(f)
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Invalid TOML in {toml_path}: {exc}") from exc

    return parse_config(data)
