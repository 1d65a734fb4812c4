"""Tests for the background daemon and its periodic jobs."""

import json
import os
import signal
import threading
from unittest.mock import MagicMock, patch

import pytest

from blackout.daemon import BlackoutDaemon, PeriodicJob, daemon_status, stop_daemon
from blackout.errors import AcquisitionFailed
from blackout.ingest.cache_manager import CacheManager
from blackout.notify.engine import NotificationEngine


@pytest.fixture
def tmp_data(tmp_path, monkeypatch):
    """Redirect PID/state files to temp directory."""
    pid_file = tmp_path / "daemon.pid"
    state_file = tmp_path / "daemon_state.json"
    monkeypatch.setattr("blackout.daemon.PID_FILE", pid_file)
    monkeypatch.setattr("blackout.daemon.PID_DIR", tmp_path)
    monkeypatch.setattr("blackout.daemon.STATE_FILE", state_file)
    return {"pid": pid_file, "state": state_file, "dir": tmp_path}


@pytest.fixture
def daemon(default_config, db_path) -> BlackoutDaemon:
    return BlackoutDaemon(
        default_config,
        str(db_path),
        cache=MagicMock(spec=CacheManager),
        engine=MagicMock(spec=NotificationEngine),
    )


class TestPeriodicJob:
    def test_success_counted(self):
        job = PeriodicJob("test", 60, MagicMock(), threading.Event())
        assert job.run_once() is True
        assert job.total_runs == 1
        assert job.total_successes == 1
        assert job.last_run_at is not None

    def test_failure_counted_not_raised(self):
        func = MagicMock(side_effect=AcquisitionFailed("portal down"))
        job = PeriodicJob("test", 60, func, threading.Event())
        assert job.run_once() is False
        assert job.total_failures == 1

    def test_unexpected_errors_survive(self):
        job = PeriodicJob("test", 60, MagicMock(side_effect=RuntimeError("boom")), threading.Event())
        assert job.run_once() is False

    def test_running_flag_cleared_after_failure(self):
        seen = []
        job = PeriodicJob("test", 60, MagicMock(), threading.Event())
        job.func.side_effect = lambda: seen.append(job.running) or 1 / 0
        job.run_once()
        assert seen == [True]
        assert job.running is False

    def test_run_stops_on_event(self):
        stop = threading.Event()
        calls = []

        def func():
            calls.append(1)
            if len(calls) == 3:
                stop.set()

        PeriodicJob("test", 0, func, stop).run()
        assert len(calls) == 3

    def test_continues_after_failure(self):
        stop = threading.Event()
        outcomes = [RuntimeError("first"), None]

        def func():
            outcome = outcomes.pop(0)
            if not outcomes:
                stop.set()
            if outcome:
                raise outcome

        job = PeriodicJob("test", 0, func, stop)
        job.run()
        assert job.total_failures == 1
        assert job.total_successes == 1


class TestBlackoutDaemon:
    def test_jobs_use_configured_intervals(self, daemon: BlackoutDaemon):
        intervals = {job.name: job.interval for job in daemon.jobs}
        assert intervals == {"acquisition": 300, "notification": 60}

    def test_acquisition_forces_refresh(self, daemon: BlackoutDaemon):
        daemon.cache.get_snapshot.return_value = MagicMock(groups={"21": None})
        daemon.jobs[0].run_once()
        daemon.cache.get_snapshot.assert_called_once_with(force_refresh=True)

    def test_notification_evaluates(self, daemon: BlackoutDaemon):
        daemon.jobs[1].run_once()
        daemon.engine.evaluate.assert_called_once_with()

    def test_start_and_stop(self, tmp_data, daemon: BlackoutDaemon):
        daemon.stop()
        with patch.object(daemon, "_setup_signals"):
            daemon.start()

        # PID file cleaned up, state persisted
        assert not tmp_data["pid"].exists()
        state = json.loads(tmp_data["state"].read_text())
        assert set(state["jobs"]) == {"acquisition", "notification"}

    def test_prevents_duplicate_start(self, tmp_data, daemon: BlackoutDaemon):
        tmp_data["pid"].write_text(str(os.getpid()))
        with pytest.raises(SystemExit):
            daemon._check_not_already_running()

    def test_unverifiable_pid_blocks_start(self, tmp_data, daemon: BlackoutDaemon, monkeypatch):
        tmp_data["pid"].write_text("1")
        monkeypatch.setattr(
            "blackout.daemon.os.kill", MagicMock(side_effect=PermissionError)
        )
        with pytest.raises(SystemExit):
            daemon._check_not_already_running()
        assert tmp_data["pid"].exists()

    def test_cleans_stale_pid(self, tmp_data, daemon: BlackoutDaemon):
        tmp_data["pid"].write_text("999999999")
        daemon._check_not_already_running()
        assert not tmp_data["pid"].exists()

    def test_saves_state(self, tmp_data, daemon: BlackoutDaemon):
        daemon._started_at = "2026-10-19T00:00:00+00:00"
        daemon.jobs[0].total_runs = 5
        daemon.jobs[0].total_failures = 1
        daemon._save_state()

        state = json.loads(tmp_data["state"].read_text())
        assert state["started_at"] == "2026-10-19T00:00:00+00:00"
        assert state["jobs"]["acquisition"]["total_runs"] == 5
        assert state["jobs"]["acquisition"]["interval"] == 300
        assert state["jobs"]["notification"]["interval"] == 60


class TestDaemonControl:
    def test_stop_without_pid_file(self, tmp_data):
        assert stop_daemon() == 1

    def test_stop_stale_pid(self, tmp_data):
        tmp_data["pid"].write_text("999999999")
        assert stop_daemon() == 0
        assert not tmp_data["pid"].exists()

    def test_status_without_state(self, tmp_data):
        assert daemon_status() == 1

    def test_status_reports_jobs(self, tmp_data, capsys):
        tmp_data["state"].write_text(json.dumps({
            "pid": 999999999,
            "started_at": "2026-10-19T00:00:00+00:00",
            "jobs": {"acquisition": {"interval": 300, "total_runs": 3}},
        }))
        assert daemon_status() == 0
        out = capsys.readouterr().out
        assert "stopped" in out
        assert "acquisition: every 300s, 3 runs" in out

    def test_corrupt_pid_file_removed(self, tmp_data):
        tmp_data["pid"].write_text("not-a-pid")
        assert stop_daemon() == 1
        assert not tmp_data["pid"].exists()

    def test_stop_reports_final_job_counters(self, tmp_data, monkeypatch, capsys):
        tmp_data["pid"].write_text("4242")
        tmp_data["state"].write_text(json.dumps({
            "pid": 4242,
            "jobs": {
                "acquisition": {"interval": 300, "total_runs": 12, "total_successes": 11,
                                "total_failures": 1},
                "notification": {"interval": 60, "total_runs": 60, "total_successes": 60},
            },
        }))
        signals = []

        def fake_kill(pid, sig):
            if sig == 0 and signal.SIGTERM in signals:
                raise ProcessLookupError
            signals.append(sig)

        monkeypatch.setattr("blackout.daemon.os.kill", fake_kill)
        with patch("time.sleep"):
            assert stop_daemon() == 0

        out = capsys.readouterr().out
        assert signals == [0, signal.SIGTERM]
        assert "Daemon stopped" in out
        assert "acquisition: every 300s, 12 runs, 11 ok, 1 failed" in out
        assert "notification: every 60s, 60 runs, 60 ok, 0 failed" in out
        assert not tmp_data["pid"].exists()

    def test_stop_escalates_to_sigkill(self, tmp_data, monkeypatch):
        tmp_data["pid"].write_text("4242")
        signals = []
        monkeypatch.setattr("blackout.daemon.os.kill", lambda pid, sig: signals.append(sig))
        with patch("time.sleep"):
            assert stop_daemon(timeout=3) == 0
        assert signals[1] == signal.SIGTERM
        assert signals[-1] == signal.SIGKILL
        assert signals.count(0) == 4
