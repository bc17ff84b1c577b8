"""Tests for the CLI commands."""

import json
import logging

import httpx
import pytest
from click.testing import CliRunner

from agenda.cli import cli
from agenda.client import AgendaApiClient

pytestmark = pytest.mark.unit

EVENTS = {
    "tasks": {
        "member": [
            {
                "id": 1,
                "name": "Report",
                "deadLine": "2024-05-01T10:00:00",
                "status": "completed",
            },
            {"id": 2, "name": "Invoice", "deadLine": "2024-05-03T17:00:00", "status": "pending"},
            {"id": 3, "name": "Broken", "deadLine": "yesterday"},
        ]
    },
    "meetings": [
        {
            "id": 1,
            "name": "Offsite",
            "startDate": "2024-05-01T09:00:00",
            "endDate": "2024-05-03T11:00:00",
        }
    ],
}


@pytest.fixture(autouse=True)
def _reset_root_logging(monkeypatch):
    monkeypatch.delenv("OTEL_EXPORTER_OTLP_ENDPOINT", raising=False)
    monkeypatch.delenv("AGENDA_TOKEN", raising=False)
    yield
    root = logging.getLogger()
    for handler in root.handlers:
        handler.close()
    root.handlers.clear()
    root.setLevel(logging.WARNING)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def events_file(tmp_path):
    path = tmp_path / "events.json"
    path.write_text(json.dumps(EVENTS))
    return path


class TestVersion:
    def test_version_flag(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestMarks:
    def test_text_output(self, runner, events_file):
        result = runner.invoke(cli, ["marks", str(events_file)])
        assert result.exit_code == 0, result.output
        assert "2024-05-01  #007AFF  meeting:1, task:1" in result.output
        assert "2024-05-03  #007AFF  meeting:1, task:2" in result.output
        assert "2024-05-02" not in result.output

    def test_all_days_policy(self, runner, events_file):
        result = runner.invoke(cli, ["marks", str(events_file), "--policy", "all_days"])
        assert result.exit_code == 0, result.output
        assert "2024-05-02  #007AFF  meeting:1" in result.output

    def test_json_with_selection(self, runner, events_file):
        result = runner.invoke(
            cli, ["marks", str(events_file), "--day", "2024-05-02", "--json"]
        )
        assert result.exit_code == 0, result.output
        start = result.output.index("{")
        payload = json.loads(result.output[start : result.output.rindex("}") + 1])
        assert payload["2024-05-02"] == {
            "marked": False,
            "dotColor": None,
            "events": [],
            "selected": True,
            "selectedColor": "#007AFF",
        }
        assert payload["2024-05-01"]["events"] == ["meeting:1", "task:1"]
        assert "selected" not in payload["2024-05-01"]

    def test_empty_file(self, runner, tmp_path):
        path = tmp_path / "empty.json"
        path.write_text("{}")
        result = runner.invoke(cli, ["marks", str(path)])
        assert result.exit_code == 0
        assert "No marked days." in result.output

    def test_invalid_json(self, runner, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        result = runner.invoke(cli, ["marks", str(path)])
        assert result.exit_code != 0
        assert "Invalid JSON" in result.output

    def test_custom_palette_from_config(self, runner, events_file, tmp_path):
        config = tmp_path / "agenda.toml"
        config.write_text('[agenda.colors]\nmeeting = "#ABCDEF"\n')
        result = runner.invoke(cli, ["--config", str(config), "marks", str(events_file)])
        assert result.exit_code == 0, result.output
        assert "#ABCDEF" in result.output

    def test_invalid_config_reported(self, runner, events_file, tmp_path):
        config = tmp_path / "agenda.toml"
        config.write_text('[agenda]\nmeeting_span_policy = "weekdays"\n')
        result = runner.invoke(cli, ["--config", str(config), "marks", str(events_file)])
        assert result.exit_code != 0
        assert "meeting_span_policy" in result.output


class TestDay:
    def test_lists_events_on_day(self, runner, events_file):
        result = runner.invoke(cli, ["day", str(events_file), "2024-05-03"])
        assert result.exit_code == 0, result.output
        assert "[task 2] Invoice" in result.output
        assert "[meeting 1] Offsite" in result.output
        assert "[task 1]" not in result.output

    def test_no_events(self, runner, events_file):
        result = runner.invoke(cli, ["day", str(events_file), "2024-05-02"])
        assert result.exit_code == 0
        assert "No events on 2024-05-02." in result.output


class TestReminders:
    def test_dry_run_outcomes(self, runner, events_file):
        result = runner.invoke(
            cli, ["reminders", str(events_file), "--now", "2024-05-02T12:00:00"]
        )
        assert result.exit_code == 0, result.output
        assert "task:1: skipped (past_deadline)" in result.output
        assert "task:2: fires at 2024-05-03T16:50:00" in result.output
        assert "meeting:1: skipped (past_deadline)" in result.output

    def test_lead_time_from_config(self, runner, events_file, tmp_path):
        config = tmp_path / "agenda.toml"
        config.write_text("[agenda]\nlead_time_minutes = 60\n")
        result = runner.invoke(
            cli,
            [
                "--config",
                str(config),
                "reminders",
                str(events_file),
                "--now",
                "2024-05-02T12:00:00",
            ],
        )
        assert result.exit_code == 0, result.output
        assert "task:2: fires at 2024-05-03T16:00:00" in result.output

    def test_bad_now(self, runner, events_file):
        result = runner.invoke(cli, ["reminders", str(events_file), "--now", "soon"])
        assert result.exit_code != 0
        assert "ISO 8601" in result.output

    def test_no_events(self, runner, tmp_path):
        path = tmp_path / "empty.json"
        path.write_text('{"tasks": [], "meetings": []}')
        result = runner.invoke(cli, ["reminders", str(path)])
        assert result.exit_code == 0
        assert "No events." in result.output


class TestConfiguredLogging:
    def test_json_format_from_config(self, runner, events_file, tmp_path):
        config = tmp_path / "agenda.toml"
        config.write_text('[agenda.logging]\nlevel = "WARNING"\nformat = "json"\n')
        result = runner.invoke(cli, ["--config", str(config), "marks", str(events_file)])
        assert result.exit_code == 0, result.output

        records = [
            json.loads(line) for line in result.output.splitlines() if line.startswith("{")
        ]
        warnings = [r for r in records if "Excluding event" in r["event"]]
        assert len(warnings) == 1
        assert warnings[0]["level"] == "warning"
        assert warnings[0]["logger"] == "agenda.events"

    def test_log_root_from_config(self, runner, events_file, tmp_path):
        log_dir = tmp_path / "logs"
        config = tmp_path / "agenda.toml"
        config.write_text(f'[agenda.logging]\nlevel = "INFO"\nlog_root = "{log_dir.as_posix()}"\n')
        result = runner.invoke(cli, ["--config", str(config), "marks", str(events_file)])
        assert result.exit_code == 0, result.output
        for handler in logging.getLogger().handlers:
            handler.flush()

        lines = (log_dir / "agenda.log").read_text().strip().splitlines()
        events = [json.loads(line)["event"] for line in lines]
        assert any("Excluding event" in event for event in events)

    def test_log_level_flag_overrides_config(self, runner, events_file, tmp_path):
        config = tmp_path / "agenda.toml"
        config.write_text('[agenda.logging]\nlevel = "DEBUG"\n')
        result = runner.invoke(
            cli, ["--config", str(config), "--log-level", "ERROR", "marks", str(events_file)]
        )
        assert result.exit_code == 0, result.output
        assert logging.getLogger().level == logging.ERROR
        assert "Excluding event" not in result.output


class TestFetch:
    @pytest.fixture
    def api(self, monkeypatch):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.path.endswith("/task"):
                return httpx.Response(200, json=EVENTS["tasks"])
            if request.url.path.endswith("/meet"):
                return httpx.Response(200, json={"member": EVENTS["meetings"]})
            return httpx.Response(404)

        def make_client(base_url, credentials):
            http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
            return AgendaApiClient(base_url, credentials, http_client=http_client)

        monkeypatch.setattr("agenda.cli.AgendaApiClient", make_client)
        return seen

    def test_writes_events_file_from_configured_api(self, runner, api, tmp_path):
        config = tmp_path / "agenda.toml"
        config.write_text('[agenda]\napi_url = "https://planner.test/api"\n')
        output = tmp_path / "events.json"

        result = runner.invoke(
            cli,
            ["--config", str(config), "fetch", str(output)],
            env={"AGENDA_TOKEN": "secret-token"},
        )
        assert result.exit_code == 0, result.output
        assert "Wrote 2 task(s) and 1 meeting(s)" in result.output
        assert str(api[0].url) == "https://planner.test/api/task"
        assert api[0].headers["Authorization"] == "Bearer secret-token"

        document = json.loads(output.read_text())
        assert [task["name"] for task in document["tasks"]] == ["Report", "Invoice"]
        assert document["meetings"][0]["startDate"].startswith("2024-05-01T09:00:00")

        marks = runner.invoke(cli, ["marks", str(output)])
        assert "2024-05-01  #007AFF  meeting:1, task:1" in marks.output

    def test_api_error_reported(self, runner, monkeypatch, tmp_path):
        def make_client(base_url, credentials):
            transport = httpx.MockTransport(lambda request: httpx.Response(401))
            http_client = httpx.AsyncClient(transport=transport)
            return AgendaApiClient(base_url, credentials, http_client=http_client)

        monkeypatch.setattr("agenda.cli.AgendaApiClient", make_client)
        output = tmp_path / "events.json"
        result = runner.invoke(cli, ["fetch", str(output)])
        assert result.exit_code != 0
        assert "Session expired" in result.output
        assert not output.exists()
