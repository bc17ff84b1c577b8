"""Tests for agenda configuration loading and validation."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from agenda.calendar.daykey import MeetingSpanPolicy
from agenda.config import (
    DEFAULT_API_URL,
    AgendaConfig,
    ConfigError,
    default_config,
    load_config,
    parse_config,
    resolve_env_vars,
)
from agenda.errors import AgendaError

pytestmark = pytest.mark.unit

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

FULL_TOML = """\
[agenda]
api_url = "https://planner.example.com/api/"
lead_time_minutes = 15
operation_timeout_seconds = 2.5
meeting_span_policy = "all_days"

[agenda.logging]
level = "debug"
format = "json"
log_root = "/var/log/agenda"

[agenda.notifications]
channel_id = "reminders"
channel_name = "Reminders"

[agenda.colors]
completed = "#00FF00"
meeting = "#123"
"""


def _write_toml(tmp_path: Path, content: str, filename: str = "agenda.toml") -> Path:
    """Write *content* to a TOML file inside *tmp_path* and return the directory."""
    (tmp_path / filename).write_text(content)
    return tmp_path


# ---------------------------------------------------------------------------
# Happy-path tests
# ---------------------------------------------------------------------------


def test_load_full_config(tmp_path: Path):
    cfg = load_config(_write_toml(tmp_path, FULL_TOML))

    assert isinstance(cfg, AgendaConfig)
    assert cfg.api_url == "https://planner.example.com/api"
    assert cfg.lead_time == timedelta(minutes=15)
    assert cfg.operation_timeout_seconds == 2.5
    assert cfg.meeting_span_policy is MeetingSpanPolicy.all_days
    assert cfg.logging.level == "DEBUG"
    assert cfg.logging.format == "json"
    assert cfg.logging.log_root == "/var/log/agenda"
    assert cfg.notifications.channel_id == "reminders"
    assert cfg.notifications.channel_name == "Reminders"
    assert cfg.palette.completed == "#00FF00"
    assert cfg.palette.meeting == "#123"
    assert cfg.palette.pending == "#FFC107"


def test_load_config_accepts_file_path(tmp_path: Path):
    directory = _write_toml(tmp_path, "[agenda]\nlead_time_minutes = 5\n", "custom.toml")
    cfg = load_config(directory / "custom.toml")
    assert cfg.lead_time == timedelta(minutes=5)


def test_empty_document_yields_defaults(tmp_path: Path):
    cfg = load_config(_write_toml(tmp_path, ""))
    assert cfg == default_config()
    assert cfg.api_url == DEFAULT_API_URL
    assert cfg.lead_time == timedelta(minutes=10)
    assert cfg.meeting_span_policy is MeetingSpanPolicy.boundary_days
    assert cfg.notifications.channel_id == "default"
    assert cfg.logging.log_root is None


def test_zero_lead_time_allowed():
    cfg = parse_config({"agenda": {"lead_time_minutes": 0}})
    assert cfg.lead_time == timedelta(0)


def test_env_vars_resolved(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("AGENDA_HOST", "planner.internal")
    cfg = parse_config({"agenda": {"api_url": "https://${AGENDA_HOST}/api"}})
    assert cfg.api_url == "https://planner.internal/api"


def test_resolve_env_vars_walks_lists(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("A", "1")
    assert resolve_env_vars({"x": ["${A}", 2, {"y": "${A}${A}"}]}) == {
        "x": ["1", 2, {"y": "11"}]
    }


# ---------------------------------------------------------------------------
# Error cases
# ---------------------------------------------------------------------------


def test_missing_file_raises(tmp_path: Path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path)


def test_invalid_toml_raises(tmp_path: Path):
    with pytest.raises(ConfigError, match="Invalid TOML"):
        load_config(_write_toml(tmp_path, "[agenda\nlead_time_minutes = 5"))


def test_unset_env_var_raises(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("AGENDA_MISSING", raising=False)
    with pytest.raises(ConfigError, match="AGENDA_MISSING"):
        parse_config({"agenda": {"api_url": "${AGENDA_MISSING}"}})


@pytest.mark.parametrize("value", [-1, "ten", True])
def test_invalid_lead_time(value):
    with pytest.raises(ConfigError, match="lead_time_minutes"):
        parse_config({"agenda": {"lead_time_minutes": value}})


@pytest.mark.parametrize("value", [0, -2.5])
def test_non_positive_timeout(value):
    with pytest.raises(ConfigError, match="operation_timeout_seconds must be positive"):
        parse_config({"agenda": {"operation_timeout_seconds": value}})


def test_unknown_policy():
    with pytest.raises(ConfigError, match="boundary_days, all_days"):
        parse_config({"agenda": {"meeting_span_policy": "weekdays"}})


def test_invalid_log_format():
    with pytest.raises(ConfigError, match="agenda.logging.format"):
        parse_config({"agenda": {"logging": {"format": "xml"}}})


def test_section_must_be_table():
    with pytest.raises(ConfigError, match=r"\[agenda.logging\] must be a table"):
        parse_config({"agenda": {"logging": "debug"}})


def test_blank_channel_id():
    with pytest.raises(ConfigError, match="channel_id"):
        parse_config({"agenda": {"notifications": {"channel_id": "  "}}})


def test_unknown_color_key():
    with pytest.raises(ConfigError, match="Unknown color key"):
        parse_config({"agenda": {"colors": {"overdue": "#FF0000"}}})


@pytest.mark.parametrize("value", ["green", "#12345", 0x4CAF50])
def test_invalid_color_value(value):
    with pytest.raises(ConfigError, match="hex color"):
        parse_config({"agenda": {"colors": {"completed": value}}})


def test_non_utf8_file_raises_config_error(tmp_path: Path):
    (tmp_path / "agenda.toml").write_bytes(b'[agenda]\napi_url = "\xff\xfe"\n')
    with pytest.raises(ConfigError, match="Invalid TOML"):
        load_config(tmp_path)


def test_config_error_is_agenda_error(tmp_path: Path):
    assert issubclass(ConfigError, AgendaError)
    with pytest.raises(AgendaError):
        load_config(tmp_path)
