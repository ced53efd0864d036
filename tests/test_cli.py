"""Tests for the waypoint command-line interface."""

import json

import pytest
from typer.testing import CliRunner

from conftest import make_sample
from waypoint import __version__
from waypoint.cli import app
from waypoint.config import get_settings
from waypoint.sync.queue import SampleQueue

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point every command at a throwaway data dir and config file."""
    monkeypatch.setenv("WAYPOINT_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("WAYPOINT_CONFIG_FILE", str(tmp_path / "missing.yaml"))
    monkeypatch.delenv("WAYPOINT_TOKEN", raising=False)
    get_settings.cache_clear()
    yield tmp_path / "data"
    get_settings.cache_clear()


def _seed(data_dir, count=2, quarantine=0):
    with SampleQueue(data_dir / "queue.db") as queue:
        ids = [queue.enqueue(make_sample(i)) for i in range(count)]
        for entry_id in ids[:quarantine]:
            queue.quarantine(entry_id, "rejected")
    return ids


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


class TestQueueCommands:
    def test_list_empty(self):
        result = runner.invoke(app, ["queue", "list"])
        assert result.exit_code == 0
        assert "Queue is empty." in result.output

    def test_list_json_in_capture_order(self, isolated_settings):
        ids = _seed(isolated_settings, count=3)
        result = runner.invoke(app, ["queue", "list", "--json"])

        assert result.exit_code == 0
        entries = json.loads(result.output)
        assert [e["id"] for e in entries] == ids
        assert entries[0]["timestamp"] == make_sample(0).captured_at.isoformat()

    def test_list_limit(self, isolated_settings):
        _seed(isolated_settings, count=3)
        result = runner.invoke(app, ["queue", "list", "--limit", "1"])
        assert result.exit_code == 0
        assert "... and 2 more" in result.output

    def test_stats_json(self, isolated_settings):
        _seed(isolated_settings, count=3, quarantine=1)
        result = runner.invoke(app, ["queue", "stats", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["pending"] == 2
        assert data["dead_letter"] == 1

    def test_clear_with_yes(self, isolated_settings):
        _seed(isolated_settings, count=2)
        result = runner.invoke(app, ["queue", "clear", "--yes", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.output) == {"status": "cleared", "removed": 2}
        with SampleQueue(isolated_settings / "queue.db") as queue:
            assert queue.count() == 0

    def test_clear_aborts_without_confirmation(self, isolated_settings):
        _seed(isolated_settings, count=1)
        result = runner.invoke(app, ["queue", "clear"], input="n\n")

        assert result.exit_code == 1
        with SampleQueue(isolated_settings / "queue.db") as queue:
            assert queue.count() == 1

    def test_dead_letter_and_requeue(self, isolated_settings):
        _seed(isolated_settings, count=2, quarantine=1)

        listed = runner.invoke(app, ["queue", "dead-letter", "--json"])
        assert listed.exit_code == 0
        assert [d["reason"] for d in json.loads(listed.output)] == ["rejected"]

        requeued = runner.invoke(app, ["queue", "requeue", "--json"])
        assert json.loads(requeued.output) == {"status": "requeued", "count": 1}
        with SampleQueue(isolated_settings / "queue.db") as queue:
            assert queue.count() == 2
            assert queue.list_dead_letter() == []


class TestStatusCommand:
    def test_not_running_without_queue(self):
        result = runner.invoke(app, ["status", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["running"] is False
        assert data["queue_pending"] == 0

    def test_reports_pending_samples(self, isolated_settings):
        _seed(isolated_settings, count=2)
        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "Queue: 2 pending uploads" in result.output
        assert "Not running" in result.output

    def test_stale_pid_file_is_ignored(self, isolated_settings):
        isolated_settings.mkdir(parents=True)
        (isolated_settings / "agent.pid").write_text("not-a-pid")

        result = runner.invoke(app, ["status", "--json"])

        assert json.loads(result.output)["running"] is False
        assert not (isolated_settings / "agent.pid").exists()


class TestConfigCommand:
    def test_show_never_prints_token(self, monkeypatch):
        monkeypatch.setenv("WAYPOINT_TOKEN", "super-secret")
        monkeypatch.setenv("WAYPOINT_SYNC_INTERVAL", "120")
        get_settings.cache_clear()

        result = runner.invoke(app, ["config", "show", "--json"])

        assert result.exit_code == 0
        assert "super-secret" not in result.output
        data = json.loads(result.output)
        assert data["token_configured"] is True
        assert data["sync_interval"] == 120.0


class TestTrackCommands:
    def test_stop_when_not_running(self):
        result = runner.invoke(app, ["track", "stop", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output)["status"] == "not_running"

    def test_start_requires_existing_replay_file(self, tmp_path):
        result = runner.invoke(
            app, ["track", "start", "--replay", str(tmp_path / "nope.jsonl")]
        )
        assert result.exit_code != 0


def test_summary_rejects_bad_date():
    result = runner.invoke(app, ["summary", "24/01/2026"])
    assert result.exit_code == 2
    assert "Invalid date" in result.output


def test_summary_configures_logging(monkeypatch):
    from waypoint.cli_commands import remote

    calls = []

    async def fake_fetch(settings, day):
        return [{"latitude": 1.0, "longitude": 2.0, "timestamp": "2026-01-24T12:00:00Z"}]

    monkeypatch.setattr(remote, "setup_logging", lambda *args: calls.append(args))
    monkeypatch.setattr(remote, "_fetch_summary", fake_fetch)

    result = runner.invoke(app, ["summary", "2026-01-24", "--json"])

    assert result.exit_code == 0
    assert json.loads(result.output)["locations"][0]["latitude"] == 1.0
    assert calls == [("INFO", None)]
